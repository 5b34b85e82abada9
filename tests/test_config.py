from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest

import vkspec


@pytest.fixture
def install_dirs(tmp_path: Path) -> tuple[Path, Path]:
    headers_dir = tmp_path / "Vulkan-Headers"
    docs_dir = tmp_path / "Vulkan-Docs"
    (headers_dir / "include" / "vulkan").mkdir(parents=True)
    (headers_dir / "include" / "vulkan" / "vulkan_core.h").write_text("", encoding="utf-8")
    (docs_dir / "xml").mkdir(parents=True)
    (docs_dir / "xml" / "vk.xml").write_text("<registry/>\n", encoding="utf-8")
    return headers_dir, docs_dir


def test_config_from_install_dirs_resolves_standard_layout(
    install_dirs: tuple[Path, Path],
) -> None:
    headers_dir, docs_dir = install_dirs

    config = vkspec.config_from_install_dirs(headers_dir, docs_dir)

    assert config == vkspec.ParseConfig(
        header=headers_dir / "include" / "vulkan" / "vulkan_core.h",
        registry=docs_dir / "xml" / "vk.xml",
        api="vulkan",
    )


def test_build_config_missing_header_reports_path_not_found(
    install_dirs: tuple[Path, Path], tmp_path: Path
) -> None:
    _, docs_dir = install_dirs

    with pytest.raises(vkspec.ConfigError) as exc_info:
        vkspec.build_config(tmp_path / "missing.h", docs_dir / "xml" / "vk.xml")

    assert exc_info.value.code == "PATH_NOT_FOUND"
    assert "Vulkan-Headers" in (exc_info.value.suggestion or "")


def test_build_config_missing_registry_reports_path_not_found(
    install_dirs: tuple[Path, Path], tmp_path: Path
) -> None:
    headers_dir, _ = install_dirs

    with pytest.raises(vkspec.ConfigError) as exc_info:
        vkspec.build_config(
            headers_dir / "include" / "vulkan" / "vulkan_core.h", tmp_path / "vk.xml"
        )

    assert exc_info.value.code == "PATH_NOT_FOUND"
    assert "Vulkan-Docs" in (exc_info.value.suggestion or "")


@pytest.mark.parametrize("api", ["", "Vulkan", "vulkan,vulkansc", "1vk"])
def test_build_config_rejects_malformed_api(
    install_dirs: tuple[Path, Path], api: str
) -> None:
    headers_dir, docs_dir = install_dirs

    with pytest.raises(vkspec.ConfigError) as exc_info:
        vkspec.config_from_install_dirs(headers_dir, docs_dir, api)

    assert exc_info.value.code == "INVALID_API"


def test_config_is_frozen(install_dirs: tuple[Path, Path]) -> None:
    config = vkspec.config_from_install_dirs(*install_dirs, api="vulkansc")

    assert config.api == "vulkansc"
    with pytest.raises(FrozenInstanceError):
        config.api = "vulkan"  # type: ignore[misc]


@pytest.mark.parametrize(
    ("error_type", "code"),
    [(vkspec.SpecError, "NOT_A_CODE"), (vkspec.ConfigError, "IO_ERROR")],
)
def test_error_types_reject_unknown_codes(error_type: type, code: str) -> None:
    with pytest.raises(ValueError):
        error_type(code, "message")


def test_spec_error_message_carries_location() -> None:
    err = vkspec.SpecError("STRUCTURE_VIOLATION", "bad layout", "vk.xml")

    assert str(err) == "vk.xml: bad layout"
    assert err.message == "bad layout"
    assert err.location == "vk.xml"
