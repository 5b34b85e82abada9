import sys
import textwrap
import xml.etree.ElementTree as ET
from collections.abc import Callable
from pathlib import Path

import pytest

PROJECT_DIR = Path(__file__).resolve().parent.parent
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

import vkspec  # noqa: E402


def header_lines(text: str) -> list[str]:
    return textwrap.dedent(text).strip("\n").splitlines()


@pytest.fixture
def make_cursor() -> Callable[[str], vkspec.RegistryCursor]:
    def _make_cursor(xml: str) -> vkspec.RegistryCursor:
        root = ET.fromstring(xml.strip())
        return vkspec.RegistryCursor(vkspec.iter_element_tokens(root))

    return _make_cursor


@pytest.fixture
def parse_section(
    make_cursor: Callable[[str], vkspec.RegistryCursor],
) -> Callable[..., vkspec.RegistrySection]:
    def _parse_section(
        section_xml: str,
        parser: Callable[[vkspec.RegistryCursor, str], vkspec.RegistrySection],
        api: str = "vulkan",
    ) -> vkspec.RegistrySection:
        cursor = make_cursor(section_xml)
        section = cursor.next_element()
        assert section is not None
        return parser(cursor, api)

    return _parse_section


@pytest.fixture
def scan() -> Callable[[str], dict[str, vkspec.Type]]:
    def _scan(text: str) -> dict[str, vkspec.Type]:
        return vkspec.scan_header(header_lines(text))

    return _scan


@pytest.fixture
def write_inputs(tmp_path: Path) -> Callable[[str, str], tuple[Path, Path]]:
    def _write_inputs(header_text: str, registry_xml: str) -> tuple[Path, Path]:
        header = tmp_path / "vulkan_core.h"
        header.write_text("\n".join(header_lines(header_text)) + "\n", encoding="utf-8")
        registry = tmp_path / "vk.xml"
        registry.write_text(textwrap.dedent(registry_xml).strip() + "\n", encoding="utf-8")
        return header, registry

    return _write_inputs
