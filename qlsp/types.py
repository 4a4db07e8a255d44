"""
qlsp.types - Typed LSP parameter and result shapes

Each LSP method the server understands has a dataclass describing its
parameters, and each result it can return has one describing the result.
decode() and encode() move between these dataclasses and plain JSON
values, driven by the dataclass type hints:

- snake_case field names map to camelCase JSON keys
- Optional fields default to None and are omitted from the output when None
- unknown JSON keys are ignored
- scalars are type checked (a bool is not accepted where an int is expected)
- enums are written as their values

Only the subset of the LSP schema used by the server lives here.
"""

import dataclasses
import functools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union, get_args, get_origin, get_type_hints

from qlsp.protocol import MarkupKind, MessageType, TextDocumentSyncKind

_NoneType = type(None)


class ParamsError(ValueError):
    """A JSON value does not match the expected shape."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


# =============================================================================
# Marshalling
# =============================================================================


def json_name(f: dataclasses.Field) -> str:
    """The JSON key for a dataclass field."""
    if "json" in f.metadata:
        return f.metadata["json"]
    head, *rest = f.name.split("_")
    return head + "".join(part.title() for part in rest)


@functools.lru_cache(maxsize=None)
def _hints(cls: type) -> dict[str, Any]:
    return get_type_hints(cls)


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def decode(tp: Any, value: Any, path: str = "params") -> Any:
    """
    Decode a JSON value into an instance of ``tp``.

    Raises:
        ParamsError: If the value does not fit the type.
    """
    if tp is Any:
        return value

    origin = get_origin(tp)

    if origin is Union:
        args = get_args(tp)
        if value is None and _NoneType in args:
            return None
        candidates = [a for a in args if a is not _NoneType]
        if len(candidates) == 1:
            return decode(candidates[0], value, path)
        for candidate in candidates:
            try:
                return decode(candidate, value, path)
            except ParamsError:
                continue
        raise ParamsError(path, f"unexpected {_type_name(value)}")

    if origin is list:
        if not isinstance(value, list):
            raise ParamsError(path, f"expected array, got {_type_name(value)}")
        (item_type,) = get_args(tp) or (Any,)
        return [decode(item_type, item, f"{path}[{i}]") for i, item in enumerate(value)]

    if origin is dict or tp is dict:
        if not isinstance(value, dict):
            raise ParamsError(path, f"expected object, got {_type_name(value)}")
        args = get_args(tp)
        value_type = args[1] if args else Any
        return {k: decode(value_type, v, f"{path}.{k}") for k, v in value.items()}

    if dataclasses.is_dataclass(tp):
        return _decode_dataclass(tp, value, path)

    if isinstance(tp, type) and issubclass(tp, Enum):
        if isinstance(value, bool):
            raise ParamsError(path, "expected enum value, got boolean")
        try:
            return tp(value)
        except ValueError:
            raise ParamsError(path, f"{value!r} is not a valid {tp.__name__}")

    if tp is bool:
        if not isinstance(value, bool):
            raise ParamsError(path, f"expected boolean, got {_type_name(value)}")
        return value

    if tp is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ParamsError(path, f"expected integer, got {_type_name(value)}")
        return value

    if tp is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ParamsError(path, f"expected number, got {_type_name(value)}")
        return float(value)

    if tp is str:
        if not isinstance(value, str):
            raise ParamsError(path, f"expected string, got {_type_name(value)}")
        return value

    raise TypeError(f"Cannot decode into {tp!r}")


def _decode_dataclass(cls: type, value: Any, path: str) -> Any:
    if not isinstance(value, dict):
        raise ParamsError(path, f"expected object, got {_type_name(value)}")

    hints = _hints(cls)
    kwargs = {}
    for f in dataclasses.fields(cls):
        key = json_name(f)
        if key not in value:
            if (
                f.default is dataclasses.MISSING
                and f.default_factory is dataclasses.MISSING
            ):
                raise ParamsError(path, f"missing required field {key!r}")
            continue
        kwargs[f.name] = decode(hints[f.name], value[key], f"{path}.{key}")

    obj = cls(**kwargs)
    validate = getattr(obj, "validate", None)
    if validate is not None:
        validate(path)
    return obj


def encode(obj: Any) -> Any:
    """Encode a dataclass (or plain value) as JSON-compatible data."""
    if obj is None:
        return None
    if isinstance(obj, Enum):
        return obj.value
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        result = {}
        for f in dataclasses.fields(obj):
            item = getattr(obj, f.name)
            if item is None:
                continue
            result[json_name(f)] = encode(item)
        return result
    if isinstance(obj, (list, tuple)):
        return [encode(item) for item in obj]
    if isinstance(obj, dict):
        return {key: encode(item) for key, item in obj.items()}
    return obj


# =============================================================================
# Basic Structures
# =============================================================================


@dataclass
class Position:
    """A zero-based line and character offset in a document."""

    line: int
    character: int

    def validate(self, path: str = "params") -> None:
        # LSP positions are unsigned
        for name in ("line", "character"):
            if getattr(self, name) < 0:
                raise ParamsError(f"{path}.{name}", "must not be negative")


@dataclass
class Range:
    start: Position
    end: Position


@dataclass
class TextDocumentIdentifier:
    uri: str


@dataclass
class VersionedTextDocumentIdentifier:
    uri: str
    version: Optional[int] = None


@dataclass
class TextDocumentItem:
    """An open document, with its full text."""

    uri: str
    language_id: str
    version: int
    text: str


@dataclass
class MarkupContent:
    kind: MarkupKind
    value: str


# =============================================================================
# Lifecycle
# =============================================================================


@dataclass
class ClientInfo:
    name: str
    version: Optional[str] = None


@dataclass
class WorkspaceFolder:
    uri: str
    name: str


@dataclass
class InitializeParams:
    """
    Parameters of the initialize request.

    Every field is optional: the server answers initialize the same way
    whatever the client sends. Client capabilities are kept as raw JSON.
    """

    process_id: Optional[int] = None
    client_info: Optional[ClientInfo] = None
    locale: Optional[str] = None
    root_path: Optional[str] = None
    root_uri: Optional[str] = None
    initialization_options: Any = None
    capabilities: dict[str, Any] = field(default_factory=dict)
    trace: Optional[str] = None
    workspace_folders: Optional[list[WorkspaceFolder]] = None


@dataclass
class InitializedParams:
    pass


@dataclass
class DocumentLinkOptions:
    resolve_provider: Optional[bool] = None


@dataclass
class ServerCapabilities:
    """The optional features a server declares in its initialize result."""

    text_document_sync: Optional[TextDocumentSyncKind] = None
    hover_provider: Optional[bool] = None
    document_link_provider: Optional[DocumentLinkOptions] = None


@dataclass
class ServerInfo:
    name: str
    version: Optional[str] = None


@dataclass
class InitializeResult:
    capabilities: ServerCapabilities = field(default_factory=ServerCapabilities)
    server_info: Optional[ServerInfo] = None


# =============================================================================
# Document Synchronization
# =============================================================================


@dataclass
class DidOpenTextDocumentParams:
    text_document: TextDocumentItem


@dataclass
class TextDocumentContentChangeEvent:
    """
    A change to a document.

    Without a range, text is the new full content of the document.
    """

    text: str
    range: Optional[Range] = None
    range_length: Optional[int] = None


@dataclass
class DidChangeTextDocumentParams:
    """
    Parameters of textDocument/didChange under full document sync.

    The server only declares TextDocumentSyncKind.FULL, so exactly one
    change carrying the whole new text is accepted. Anything else is
    rejected rather than partially applied.
    """

    text_document: VersionedTextDocumentIdentifier
    content_changes: list[TextDocumentContentChangeEvent]

    def validate(self, path: str = "params") -> None:
        if len(self.content_changes) != 1:
            raise ParamsError(
                f"{path}.contentChanges",
                "full document sync expects exactly one change, "
                f"got {len(self.content_changes)}",
            )
        if self.content_changes[0].range is not None:
            raise ParamsError(
                f"{path}.contentChanges[0]",
                "incremental change received under full document sync",
            )

    @property
    def text(self) -> str:
        """The new full text of the document."""
        return self.content_changes[0].text


# =============================================================================
# Language Features
# =============================================================================


@dataclass
class HoverParams:
    text_document: TextDocumentIdentifier
    position: Position
    work_done_token: Optional[Union[int, str]] = None


@dataclass
class Hover:
    contents: MarkupContent
    range: Optional[Range] = None


# =============================================================================
# Window
# =============================================================================


@dataclass
class LogMessageParams:
    type: MessageType
    message: str


def make_position(line: int, character: int) -> Position:
    """Create a Position (0-based line and character)."""
    return Position(line=line, character=character)


def make_range(start_line: int, start_char: int, end_line: int, end_char: int) -> Range:
    """Create a Range."""
    return Range(
        start=make_position(start_line, start_char),
        end=make_position(end_line, end_char),
    )


def make_hover(contents: str, range_: Optional[Range] = None) -> Hover:
    """Create a Hover with markdown contents."""
    return Hover(
        contents=MarkupContent(kind=MarkupKind.MARKDOWN, value=contents),
        range=range_,
    )
