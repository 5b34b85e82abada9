"""Vulkan specification model extracted from vulkan_core.h and vk.xml.

Scans the reference header for field layouts and walks the registry for
handles, commands and extensions, then normalizes both into one `Data`
value for the binding generator.

Usage:
    config = vkspec.config_from_install_dirs(headers_dir, docs_dir)
    data = vkspec.parse(config)
"""

import logging
import re
import xml.etree.ElementTree as ET
from bisect import bisect_left
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_API = "vulkan"
HEADER_RELPATH = Path("include") / "vulkan" / "vulkan_core.h"
REGISTRY_RELPATH = Path("xml") / "vk.xml"


# ===--- Errors ---=== #

VALID_SPEC_ERROR_CODES = {
    "IO_ERROR",
    "STRUCTURE_VIOLATION",
    "CONSISTENCY_VIOLATION",
}

VALID_CONFIG_ERROR_CODES = {
    "PATH_NOT_FOUND",
    "INVALID_API",
}


class SpecError(Exception):
    def __init__(self, code: str, message: str, location: str | None = None):
        if code not in VALID_SPEC_ERROR_CODES:
            raise ValueError(f"Unknown spec error code: {code}")
        super().__init__(f"{location}: {message}" if location else message)
        self.code = code
        self.message = message
        self.location = location


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_CONFIG_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


# ===--- Config ---=== #

_API_NAME_RE = re.compile(r"^[a-z][a-z0-9]*$")


@dataclass(frozen=True)
class ParseConfig:
    header: Path
    registry: Path
    api: str = DEFAULT_API


def validate_path_exists(path: Path, label: str, suggestion: str) -> Path:
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {label} does not exist: {path}",
        suggestion,
    )


def validate_api_name(api: str) -> str:
    if _API_NAME_RE.match(api):
        return api
    raise ConfigError(
        "INVALID_API",
        f"Invalid API name: {api!r}",
        "Use a registry API identifier such as vulkan or vulkansc.",
    )


def build_config(header: Path, registry: Path, api: str = DEFAULT_API) -> ParseConfig:
    header = validate_path_exists(
        Path(header),
        "header",
        "Clone Vulkan-Headers:\n"
        "  git clone https://github.com/KhronosGroup/Vulkan-Headers.git\n"
        f"and pass <checkout>/{HEADER_RELPATH.as_posix()}",
    )
    registry = validate_path_exists(
        Path(registry),
        "registry",
        "Clone Vulkan-Docs:\n"
        "  git clone https://github.com/KhronosGroup/Vulkan-Docs.git\n"
        f"and pass <checkout>/{REGISTRY_RELPATH.as_posix()}",
    )
    return ParseConfig(header=header, registry=registry, api=validate_api_name(api))


def config_from_install_dirs(
    headers_dir: Path, docs_dir: Path, api: str = DEFAULT_API
) -> ParseConfig:
    """Build a config from Vulkan-Headers and Vulkan-Docs install roots.

    Args:
        headers_dir: Root holding include/vulkan/vulkan_core.h.
        docs_dir: Root holding xml/vk.xml.
        api: Registry API identifier the model is built for.

    Returns:
        Validated ParseConfig.

    Raises:
        ConfigError: PATH_NOT_FOUND or INVALID_API.
    """
    return build_config(
        Path(headers_dir) / HEADER_RELPATH,
        Path(docs_dir) / REGISTRY_RELPATH,
        api,
    )


# ===--- Data model ---=== #


@dataclass
class Type:
    name: str
    alias: str = ""
    declaration: list[str] = field(default_factory=list)


@dataclass
class Handle:
    name: str
    type_name: str = ""
    alias: str = ""
    parent: str = ""


@dataclass(frozen=True)
class CommandParam:
    type_name: str
    is_read_only: bool
    is_pointer: bool
    var_name: str


@dataclass
class Command:
    name: str
    return_type: str = ""
    alias: str = ""
    params: list[CommandParam] = field(default_factory=list)


@dataclass
class Extension:
    name: str
    kind: str = ""
    platform: str = ""
    promoted: str = ""
    deprecated: str = ""
    valid: bool = False
    provisional: bool = False
    depends: list[str] = field(default_factory=list)
    types: list[str] = field(default_factory=list)
    handles: list[str] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)
    extends: dict[str, list[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class Data:
    """Unified model handed to the binding generator.

    Attributes:
        types: Header types keyed by name, aliases carrying their target's
            declaration.
        handles: Registry handles keyed by name.
        commands: Registry commands keyed by name.
        extensions: Registry extensions keyed by name.
        header_version: VK_HEADER_VERSION from the header, "" when absent.
    """

    types: dict[str, Type]
    handles: dict[str, Handle]
    commands: dict[str, Command]
    extensions: dict[str, Extension]
    header_version: str = ""


# ===--- Alias resolution ---=== #

E = TypeVar("E", Type, Handle, Command)


def _find_terminal(entities: dict[str, E], entity: E) -> E | None:
    visited = {entity.name}
    target = entities.get(entity.alias)
    while target is not None and target.alias:
        if target.name in visited:
            raise SpecError(
                "CONSISTENCY_VIOLATION",
                f"alias cycle through {target.name}",
                entity.name,
            )
        visited.add(target.name)
        target = entities.get(target.alias)
    return target


def resolve_aliases(entities: dict[str, E], copy_payload: Callable[[E, E], None]) -> None:
    """Copy each terminal definition's payload onto every alias that reaches it.

    Chains of any depth are followed to the first entity without an alias.
    A chain whose target is missing simply ends and the alias keeps its own
    (empty) payload. Running it twice gives the same result.

    Args:
        entities: Collection to resolve in place.
        copy_payload: Called as copy_payload(terminal, alias).

    Raises:
        SpecError: CONSISTENCY_VIOLATION when a chain loops back on itself.
    """
    for entity in entities.values():
        if not entity.alias:
            continue
        terminal = _find_terminal(entities, entity)
        if terminal is not None:
            copy_payload(terminal, entity)


def _copy_type(src: Type, dst: Type) -> None:
    dst.declaration = list(src.declaration)


def _copy_handle(src: Handle, dst: Handle) -> None:
    dst.type_name = src.type_name
    dst.parent = src.parent


def _copy_command(src: Command, dst: Command) -> None:
    dst.return_type = src.return_type
    dst.params = list(src.params)


# ===--- Header scanner ---=== #

MAX_ENUM_MARKER = "MAX_ENUM"
FLAG_BITS = "FlagBits"
FLAGS = "Flags"
LONG_LITERAL_SUFFIX = "ULL"
STRUCTURE_TYPE = "VkStructureType"
STYPE_FIELD = "VkStructureType sType"
PNEXT_TYPE = "void*"
PNEXT_FIELD = "void* pNext"
BOOL_TYPE = "VkBool32"
FEATURES_ROOT = "VkPhysicalDeviceFeatures2"
FEATURES_BASE = "VkPhysicalDeviceFeatures"
HEADER_VERSION_DEFINE = "VK_HEADER_VERSION"

# Must stay sorted, it is searched with bisect.
LEGACY_FEATURE_ALIASES = (
    "VkPhysicalDeviceBufferAddressFeaturesEXT",
    "VkPhysicalDeviceFeatures2KHR",
    "VkPhysicalDeviceFloat16Int8FeaturesKHR",
    "VkPhysicalDeviceShaderDrawParameterFeatures",
    "VkPhysicalDeviceVariablePointerFeatures",
    "VkPhysicalDeviceVariablePointerFeaturesKHR",
)


def is_legacy_feature_alias(name: str) -> bool:
    i = bisect_left(LEGACY_FEATURE_ALIASES, name)
    return i < len(LEGACY_FEATURE_ALIASES) and LEGACY_FEATURE_ALIASES[i] == name


def normalize_flags_name(name: str) -> str:
    return name.replace(FLAG_BITS, FLAGS)


def strip_long_suffix(line: str) -> str:
    """Drop a trailing ULL from `NAME = 0...ULL` enumerator lines.

    Only values that start with 0 (hex or zero constants) are touched.
    """
    _, _, value = line.partition(" = ")
    if value.startswith("0") and line.endswith(LONG_LITERAL_SUFFIX):
        return line[: -len(LONG_LITERAL_SUFFIX)]
    return line


class HeaderScanner:
    """Single pass over vulkan_core.h collecting enum, flag and struct bodies.

    The type under construction is held in `current`; each scan routine
    appends to it and the outer loop only decides which routine runs next.
    """

    def __init__(self, lines: Iterable[str], source: str = "<header>"):
        self._lines = iter(lines)
        self.source = source
        self.line_number = 0
        self.types: dict[str, Type] = {}
        self.current: Type | None = None
        self.header_version = ""

    def _next_line(self) -> str | None:
        line = next(self._lines, None)
        if line is None:
            return None
        self.line_number += 1
        return line.rstrip("\r\n")

    def _location(self) -> str:
        return f"{self.source}:{self.line_number}"

    def _open(self, name: str) -> Type:
        self.current = Type(name=name)
        self.types[name] = self.current
        return self.current

    def _append(self, declaration: str) -> None:
        assert self.current is not None
        self.current.declaration.append(declaration)

    def _require_line(self) -> str:
        line = self._next_line()
        if line is None:
            name = self.current.name if self.current else "?"
            raise SpecError(
                "STRUCTURE_VIOLATION",
                f"unexpected end of header inside {name}",
                self._location(),
            )
        return line

    def _skip_body(self) -> None:
        while "}" not in self._require_line():
            pass

    def scan(self) -> dict[str, Type]:
        while (raw := self._next_line()) is not None:
            line = raw.rstrip(" ,;{\n").strip()

            if line.startswith("typedef enum "):
                self._open(normalize_flags_name(line.removeprefix("typedef enum ")))
                self._scan_enum()
                continue

            if line.startswith("typedef VkFlags64 "):
                bits = line.removeprefix("typedef VkFlags64 ")
                if FLAG_BITS in bits:
                    self._open(normalize_flags_name(bits))
                    self._scan_flags(bits)
                    continue

            if "Features" in line:
                if line.startswith("typedef VkPhysicalDevice"):
                    self._register_feature_alias(line)
                    continue
                if line.startswith("typedef struct VkPhysicalDevice"):
                    self._open(line.split()[2])
                    self._scan_feature_struct()
                    continue

            if line.startswith("typedef struct "):
                self._open(line.removeprefix("typedef struct "))
                self._scan_struct()
                continue

            if line.startswith("#define "):
                fields = line.split()
                if len(fields) == 3 and fields[1] == HEADER_VERSION_DEFINE:
                    self.header_version = fields[2]

        self.current = None
        resolve_aliases(self.types, _copy_type)
        return self.types

    def _scan_enum(self) -> None:
        while (raw := self._next_line()) is not None:
            line = raw.rstrip(" ,;\n").strip()
            if "=" in line:
                self._append(strip_long_suffix(line))
            if MAX_ENUM_MARKER in line:
                return

    def _scan_flags(self, bits_name: str) -> None:
        # No terminator: the block ends at the first line not naming the type.
        while (raw := self._next_line()) is not None:
            line = raw.rstrip(" ,;\n").strip()
            if "#" in line or "//" in line:
                continue
            if bits_name not in line:
                return
            if "=" in line:
                self._append(strip_long_suffix(line))

    def _register_feature_alias(self, line: str) -> None:
        fields = line.split()
        if len(fields) < 3:
            return
        target, name = fields[1], fields[2]
        if is_legacy_feature_alias(name):
            logger.debug("Ignoring legacy feature alias %s", name)
            return
        self.types[name] = Type(name=name, alias=target)

    def _scan_feature_struct(self) -> None:
        assert self.current is not None
        name = self.current.name
        if name == FEATURES_ROOT:
            self._skip_body()
            return
        if name != FEATURES_BASE:
            line = self._require_line().strip()
            if not line.startswith(STRUCTURE_TYPE):
                raise SpecError(
                    "CONSISTENCY_VIOLATION",
                    f"{name}: expected {STRUCTURE_TYPE} first, got {line!r}",
                    self._location(),
                )
            self._append(STYPE_FIELD)
            line = self._require_line().strip()
            if not line.startswith(PNEXT_TYPE):
                raise SpecError(
                    "CONSISTENCY_VIOLATION",
                    f"{name}: expected {PNEXT_TYPE} second, got {line!r}",
                    self._location(),
                )
            self._append(PNEXT_FIELD)

        while True:
            member = self._require_line().strip().removesuffix(";")
            if "}" in member:
                return
            if not member.startswith(BOOL_TYPE):
                raise SpecError(
                    "CONSISTENCY_VIOLATION",
                    f"{name}: feature field is not {BOOL_TYPE}: {member!r}",
                    self._location(),
                )
            self._append(member)

    def _scan_struct(self) -> None:
        assert self.current is not None
        name = self.current.name
        if not self._require_line().strip().startswith(STRUCTURE_TYPE):
            # Untagged aggregates are not modeled.
            self._skip_body()
            del self.types[name]
            self.current = None
            return
        self._append(STYPE_FIELD)
        while True:
            member = self._require_line().strip().removesuffix(";")
            if "}" in member:
                return
            self._append(member)


def scan_header(lines: Iterable[str], source: str = "<header>") -> dict[str, Type]:
    return HeaderScanner(lines, source).scan()


def read_header(path: Path) -> HeaderScanner:
    """Scan the header at path and return the finished scanner.

    Raises:
        SpecError: IO_ERROR when the file cannot be read, or any scan error.
    """
    try:
        with open(path, encoding="utf-8") as f:
            scanner = HeaderScanner(f, str(path))
            scanner.scan()
    except OSError as err:
        raise SpecError("IO_ERROR", f"cannot read header: {err}", str(path)) from err
    except UnicodeDecodeError as err:
        raise SpecError(
            "IO_ERROR", f"header is not valid UTF-8: {err}", str(path)
        ) from err
    logger.debug("Scanned %d header types from %s", len(scanner.types), path)
    return scanner


# ===--- Registry tokens ---=== #


class StartTag(NamedTuple):
    name: str
    attrs: dict[str, str]


class EndTag(NamedTuple):
    name: str


class CharData(NamedTuple):
    text: str


Token = StartTag | EndTag | CharData


def iter_element_tokens(element: ET.Element) -> Iterator[Token]:
    """Yield the start/text/end token stream of an element in document order.

    The element's own tail is not part of its stream.
    """
    yield StartTag(element.tag, dict(element.attrib))
    if element.text:
        yield CharData(element.text)
    for child in element:
        yield from iter_element_tokens(child)
        if child.tail:
            yield CharData(child.tail)
    yield EndTag(element.tag)


def read_registry_tokens(path: Path) -> Iterator[Token]:
    """Parse the registry at path and return its token stream.

    The document is loaded whole with ElementTree and the tree is replayed
    as tokens; nothing is streamed from disk. Read and XML errors therefore
    surface here, before the first token is consumed.
    """
    try:
        root = ET.parse(path).getroot()
    except OSError as err:
        raise SpecError("IO_ERROR", f"cannot read registry: {err}", str(path)) from err
    except ET.ParseError as err:
        raise SpecError(
            "STRUCTURE_VIOLATION", f"malformed registry: {err}", str(path)
        ) from err
    return iter_element_tokens(root)


# ===--- Registry cursor ---=== #


class RegistryCursor:
    """Forward-only cursor over a registry token stream.

    The cursor keeps at most one pushed-back token, left behind when
    next_text() meets something that is not character data.
    """

    def __init__(self, tokens: Iterable[Token]):
        self._tokens = iter(tokens)
        self._pending: Token | None = None

    def _next_token(self) -> Token | None:
        if self._pending is not None:
            token, self._pending = self._pending, None
            return token
        return next(self._tokens, None)

    def next_element(self) -> StartTag | None:
        """Advance to the next start tag inside the current element.

        Returns None, after consuming it, when the end tag of the current
        element comes first, and also at the end of the stream.
        """
        while (token := self._next_token()) is not None:
            if isinstance(token, StartTag):
                return token
            if isinstance(token, EndTag):
                return None
        return None

    def next_text(self) -> str | None:
        token = self._next_token()
        if isinstance(token, CharData):
            return token.text
        self._pending = token
        return None

    def end_element(self) -> EndTag:
        depth = 0
        while (token := self._next_token()) is not None:
            if isinstance(token, StartTag):
                depth += 1
            elif isinstance(token, EndTag):
                if depth == 0:
                    return token
                depth -= 1
        raise SpecError("STRUCTURE_VIOLATION", "unexpected end of registry stream")

    def skip(self) -> None:
        self.end_element()

    @staticmethod
    def attribute(start: StartTag, name: str) -> str:
        return start.attrs.get(name, "")


def _unexpected(expected: str, got: StartTag | None, where: str) -> SpecError:
    found = got.name if got is not None else "end of element"
    return SpecError(
        "STRUCTURE_VIOLATION",
        f"unexpected xml structure: expected <{expected}>, found {found}",
        where,
    )


def _read_text_element(cursor: RegistryCursor, expected: str, where: str) -> str:
    start = cursor.next_element()
    if start is None or start.name != expected:
        raise _unexpected(expected, start, where)
    text = cursor.next_text()
    if text is None:
        raise SpecError(
            "STRUCTURE_VIOLATION", f"<{expected}> has no text", where
        )
    cursor.end_element()
    return text


def _api_listed(value: str, api: str) -> bool:
    return api in value.split(",")


# ===--- Handles ---=== #

OBJECT_TYPE_ENUM = "VkObjectType"
OBJECT_TYPE_PREFIX = "VK_OBJECT_TYPE_"


def extract_handle(
    cursor: RegistryCursor, start: StartTag, handles: dict[str, Handle]
) -> None:
    """Record one <type category="handle"> element.

    On every path the cursor is left before the element's end tag; the
    caller consumes it.
    """
    if not cursor.attribute(start, "objtypeenum"):
        name = cursor.attribute(start, "name")
        if name:
            handles[name] = Handle(name=name, alias=cursor.attribute(start, "alias"))
        # Alias entries have no children; the end tag is still the caller's.
        return

    parent = cursor.attribute(start, "parent")
    where = cursor.attribute(start, "objtypeenum")
    type_name = _read_text_element(cursor, "type", where)
    name = _read_text_element(cursor, "name", where)
    if not name:
        raise SpecError("STRUCTURE_VIOLATION", "handle with empty name", where)
    handles[name] = Handle(name=name, type_name=type_name, parent=parent)


# ===--- Commands ---=== #


def _parse_command_param(cursor: RegistryCursor, where: str) -> CommandParam:
    lead = cursor.next_text()
    is_read_only = lead is not None and lead.strip() == "const"
    type_name = _read_text_element(cursor, "type", where)
    tail = cursor.next_text()
    is_pointer = tail is not None and tail.strip() == "*"
    var_name = _read_text_element(cursor, "name", where)
    cursor.end_element()
    return CommandParam(
        type_name=type_name,
        is_read_only=is_read_only,
        is_pointer=is_pointer,
        var_name=var_name,
    )


def _parse_command(cursor: RegistryCursor, api: str, where: str) -> Command:
    proto = cursor.next_element()
    if proto is None or proto.name != "proto":
        raise _unexpected("proto", proto, where)
    return_type = _read_text_element(cursor, "type", where)
    name = _read_text_element(cursor, "name", where)
    cursor.end_element()

    cmd = Command(name=name, return_type=return_type)
    while (child := cursor.next_element()) is not None:
        if child.name != "param":
            cursor.skip()
            continue
        param_api = cursor.attribute(child, "api")
        if param_api and not _api_listed(param_api, api):
            cursor.skip()
            continue
        cmd.params.append(_parse_command_param(cursor, name))
    return cmd


# ===--- Extensions ---=== #


def flatten_depends(expr: str) -> list[str]:
    """Flatten a depends expression into an ordered list of names.

    Purely textual: parentheses are dropped and both "," and "+" separate
    entries, so "(A+B),C" gives ["A", "B", "C"]. Callers treat the result
    as prerequisites to satisfy in order.
    """
    flat = expr.replace("(", "").replace(")", "").replace(",", "+")
    if not flat:
        return []
    return flat.split("+")


def _parse_require(cursor: RegistryCursor, ext: Extension) -> None:
    while (item := cursor.next_element()) is not None:
        cursor.end_element()
        name = cursor.attribute(item, "name")
        if item.name == "enum":
            extends = cursor.attribute(item, "extends")
            if extends == OBJECT_TYPE_ENUM:
                ext.handles.append(name)
            elif extends:
                ext.extends.setdefault(extends, []).append(name)
        elif item.name == "type":
            if name:
                ext.types.append(name)
        elif item.name == "command":
            if name:
                ext.commands.append(name)


def _parse_extension(cursor: RegistryCursor, start: StartTag, api: str) -> Extension:
    attr = cursor.attribute
    name = attr(start, "name")
    ext = Extension(
        name=name,
        kind=attr(start, "type"),
        platform=attr(start, "platform"),
        promoted=attr(start, "promotedto"),
        valid=_api_listed(attr(start, "supported"), api),
        provisional=attr(start, "provisional") == "true",
        depends=flatten_depends(attr(start, "depends")),
    )
    deprecated = attr(start, "deprecatedby")
    if deprecated:
        if ext.promoted:
            raise SpecError(
                "CONSISTENCY_VIOLATION",
                f"extension is both promoted to {ext.promoted} "
                f"and deprecated by {deprecated}",
                name,
            )
        ext.deprecated = deprecated

    while (node := cursor.next_element()) is not None:
        if node.name == "require":
            _parse_require(cursor, ext)
        else:
            cursor.skip()
    return ext


def canonical_handle_name(enumerator: str, type_names: Iterable[str]) -> str:
    """Map VK_OBJECT_TYPE_FOO_BAR to the matching type name, e.g. VkFooBar.

    The first case-insensitive match wins; with none the enumerator is
    returned unchanged.
    """
    target = "VK" + enumerator.removeprefix(OBJECT_TYPE_PREFIX).replace("_", "")
    for type_name in type_names:
        if target == type_name.upper():
            return type_name
    return enumerator


def canonicalize_extension_handles(extensions: dict[str, Extension]) -> None:
    for ext in extensions.values():
        ext.handles = [canonical_handle_name(h, ext.types) for h in ext.handles]


# ===--- Registry sections ---=== #


@dataclass(frozen=True)
class HandleSection:
    handles: dict[str, Handle]

    def merge_into(self, registry: "RegistryData") -> None:
        registry.handles.update(self.handles)


@dataclass(frozen=True)
class CommandSection:
    commands: dict[str, Command]

    def merge_into(self, registry: "RegistryData") -> None:
        registry.commands.update(self.commands)


@dataclass(frozen=True)
class ExtensionSection:
    extensions: dict[str, Extension]

    def merge_into(self, registry: "RegistryData") -> None:
        registry.extensions.update(self.extensions)


RegistrySection = HandleSection | CommandSection | ExtensionSection


def parse_types_section(cursor: RegistryCursor, api: str = DEFAULT_API) -> HandleSection:
    handles: dict[str, Handle] = {}
    while (start := cursor.next_element()) is not None:
        if cursor.attribute(start, "category") == "handle":
            extract_handle(cursor, start, handles)
            cursor.end_element()
        else:
            cursor.skip()
    resolve_aliases(handles, _copy_handle)
    logger.debug("Parsed %d handles", len(handles))
    return HandleSection(handles)


def parse_commands_section(
    cursor: RegistryCursor, api: str = DEFAULT_API
) -> CommandSection:
    commands: dict[str, Command] = {}
    while (start := cursor.next_element()) is not None:
        name = cursor.attribute(start, "name")
        export = cursor.attribute(start, "export")
        cmd_api = cursor.attribute(start, "api")
        if (export and not _api_listed(export, api)) or (
            cmd_api and not _api_listed(cmd_api, api)
        ):
            logger.debug("Skipping command %s not exported to %s", name or "?", api)
            cursor.skip()
            continue

        alias = cursor.attribute(start, "alias")
        if alias:
            commands[name] = Command(name=name, alias=alias)
            cursor.end_element()
            continue

        cmd = _parse_command(cursor, api, name or "<command>")
        commands[cmd.name] = cmd

    # Targets may come after their aliases, so this runs once the section is done.
    resolve_aliases(commands, _copy_command)
    logger.debug("Parsed %d commands", len(commands))
    return CommandSection(commands)


def parse_extensions_section(
    cursor: RegistryCursor, api: str = DEFAULT_API
) -> ExtensionSection:
    extensions: dict[str, Extension] = {}
    while (start := cursor.next_element()) is not None:
        ext = _parse_extension(cursor, start, api)
        extensions[ext.name] = ext
    canonicalize_extension_handles(extensions)
    logger.debug("Parsed %d extensions", len(extensions))
    return ExtensionSection(extensions)


SECTION_PARSERS: dict[str, Callable[[RegistryCursor, str], RegistrySection]] = {
    "types": parse_types_section,
    "commands": parse_commands_section,
    "extensions": parse_extensions_section,
}


# ===--- Orchestration ---=== #


@dataclass(frozen=True)
class RegistryData:
    handles: dict[str, Handle]
    commands: dict[str, Command]
    extensions: dict[str, Extension]


def parse_registry(tokens: Iterable[Token], api: str = DEFAULT_API) -> RegistryData:
    """Walk a registry token stream and collect its three entity sections.

    Sections other than types, commands and extensions are skipped whole.

    Args:
        tokens: Registry token stream, e.g. from read_registry_tokens.
        api: API identifier used for export/supported filtering.

    Returns:
        RegistryData with aliases resolved and handle names canonicalized.

    Raises:
        SpecError: STRUCTURE_VIOLATION when the root is not <registry> or an
            element breaks the expected layout; CONSISTENCY_VIOLATION for
            contradictory metadata or alias cycles.
    """
    cursor = RegistryCursor(tokens)
    root = cursor.next_element()
    if root is None or root.name != "registry":
        found = root.name if root is not None else "nothing"
        raise SpecError(
            "STRUCTURE_VIOLATION", f"unknown xml format: root is {found}", "registry"
        )

    registry = RegistryData(handles={}, commands={}, extensions={})
    while (start := cursor.next_element()) is not None:
        section_parser = SECTION_PARSERS.get(start.name)
        if section_parser is None:
            cursor.skip()
            continue
        section_parser(cursor, api).merge_into(registry)

    # An alias and its target may sit in different sections of the same kind.
    resolve_aliases(registry.handles, _copy_handle)
    resolve_aliases(registry.commands, _copy_command)
    return registry


def parse(config: ParseConfig) -> Data:
    """Build the unified model from the header and registry named by config.

    Args:
        config: Validated ParseConfig from build_config.

    Returns:
        Data with all four collections populated.

    Raises:
        SpecError: On unreadable input, unexpected layout or inconsistent
            metadata. No partial Data is returned.
    """
    scanner = read_header(config.header)
    registry = parse_registry(read_registry_tokens(config.registry), config.api)
    data = Data(
        types=scanner.types,
        handles=registry.handles,
        commands=registry.commands,
        extensions=registry.extensions,
        header_version=scanner.header_version,
    )
    logger.info(
        "Parsed %s: %d types, %d handles, %d commands, %d extensions",
        config.api,
        len(data.types),
        len(data.handles),
        len(data.commands),
        len(data.extensions),
    )
    return data


# ===--- Summary ---=== #


@dataclass(frozen=True)
class DataSummary:
    """Per-collection counts for one parsed model.

    Attributes:
        types: Header types including aliases.
        aliased_types: Header types that are aliases.
        handles: Registry handles including aliases.
        commands: Registry commands including aliases.
        extensions: All registry extensions.
        valid_extensions: Extensions supported by the parsed API.
        header_version: VK_HEADER_VERSION, "" when unknown.
    """

    types: int
    aliased_types: int
    handles: int
    commands: int
    extensions: int
    valid_extensions: int
    header_version: str


def build_data_summary(data: Data) -> DataSummary:
    return DataSummary(
        types=len(data.types),
        aliased_types=sum(1 for t in data.types.values() if t.alias),
        handles=len(data.handles),
        commands=len(data.commands),
        extensions=len(data.extensions),
        valid_extensions=sum(1 for e in data.extensions.values() if e.valid),
        header_version=data.header_version,
    )


def format_data_summary(summary: DataSummary) -> str:
    """Render a DataSummary as a fixed multi-line report ending in a newline."""
    version = summary.header_version or "unknown"
    lines = [
        f"Vulkan spec model (header version {version}):",
        "",
        f"  Types:      {summary.types:>6}  ({summary.aliased_types} aliases)",
        f"  Handles:    {summary.handles:>6}",
        f"  Commands:   {summary.commands:>6}",
        f"  Extensions: {summary.extensions:>6}  ({summary.valid_extensions} valid)",
        "",
    ]
    return "\n".join(lines)
