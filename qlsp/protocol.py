"""
qlsp.protocol - JSON-RPC 2.0 message codec for LSP

This module provides low-level JSON-RPC 2.0 protocol handling for the
Language Server Protocol. It handles:
- Message framing with Content-Length headers
- Classifying decoded messages into requests, notifications and responses
- Building response and notification envelopes
- Error codes and errors as defined by JSON-RPC 2.0

The LSP uses JSON-RPC 2.0 over stdio with HTTP-style headers:
    Content-Length: <length>\r\n
    \r\n
    <JSON body>

A framing failure (bad header, truncated body) loses byte alignment with
the client, so it is raised as FramingError and must be treated as fatal
to the connection. A body that is framed correctly but is not valid JSON
is raised as a plain JsonRpcError; the next frame can still be read.
"""

import json
import threading
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Iterator, Optional, Union

JSONRPC_VERSION = "2.0"

# =============================================================================
# JSON-RPC Error Codes
# =============================================================================


class ErrorCode(IntEnum):
    """JSON-RPC and LSP error codes."""

    # JSON-RPC defined errors
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # LSP defined errors
    SERVER_NOT_INITIALIZED = -32002


class JsonRpcError(Exception):
    """Exception representing a JSON-RPC error."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-RPC error object."""
        error: dict[str, Any] = {
            "code": int(self.code),
            "message": self.message,
        }
        if self.data is not None:
            error["data"] = self.data
        return error


class FramingError(JsonRpcError):
    """
    The byte stream can no longer be split into frames.

    Raised for a missing or invalid Content-Length, undecodable headers,
    or a stream that ends in the middle of a frame. The connection cannot
    recover from this.
    """

    def __init__(self, message: str, code: int = ErrorCode.PARSE_ERROR):
        super().__init__(code, message)


# =============================================================================
# Message Types
# =============================================================================


@dataclass
class Request:
    """A JSON-RPC request message."""

    id: Union[int, str]
    method: str
    params: Any = None


@dataclass
class Response:
    """A JSON-RPC response message."""

    id: Union[int, str, None]
    result: Any = None
    error: Optional[dict[str, Any]] = None


@dataclass
class Notification:
    """A JSON-RPC notification message (no id, no response expected)."""

    method: str
    params: Any = None


Message = Union[Request, Response, Notification]


def parse_message(message: Any) -> Message:
    """
    Classify a decoded JSON value as a request, notification or response.

    Raises:
        JsonRpcError: INVALID_REQUEST if the value is not a JSON-RPC message.
    """
    if not isinstance(message, dict):
        raise JsonRpcError(
            ErrorCode.INVALID_REQUEST,
            "Message must be a JSON object",
        )

    method = message.get("method")
    if method is None:
        if "result" in message or "error" in message:
            return Response(
                id=message.get("id"),
                result=message.get("result"),
                error=message.get("error"),
            )
        raise JsonRpcError(ErrorCode.INVALID_REQUEST, "Missing method field")

    if not isinstance(method, str):
        raise JsonRpcError(ErrorCode.INVALID_REQUEST, "Method must be a string")

    if "id" in message:
        msg_id = message["id"]
        if isinstance(msg_id, bool) or not isinstance(msg_id, (int, str)):
            raise JsonRpcError(
                ErrorCode.INVALID_REQUEST,
                f"Invalid request id: {msg_id!r}",
            )
        return Request(id=msg_id, method=method, params=message.get("params"))

    return Notification(method=method, params=message.get("params"))


def make_response(msg_id: Union[int, str, None], result: Any) -> dict[str, Any]:
    """Create a JSON-RPC success response."""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": msg_id,
        "result": result,
    }


def make_error_response(
    msg_id: Union[int, str, None],
    code: int,
    message: str,
    data: Any = None,
) -> dict[str, Any]:
    """Create a JSON-RPC error response."""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": msg_id,
        "error": JsonRpcError(code, message, data).to_dict(),
    }


def make_notification(method: str, params: Any = None) -> dict[str, Any]:
    """Create a JSON-RPC notification."""
    message: dict[str, Any] = {
        "jsonrpc": JSONRPC_VERSION,
        "method": method,
    }
    if params is not None:
        message["params"] = params
    return message


# =============================================================================
# Protocol Transport
# =============================================================================


class ProtocolReader:
    """
    Reads LSP messages from an input stream.

    LSP messages have HTTP-style headers followed by a JSON body:
        Content-Length: <length>\r\n
        \r\n
        <JSON body>
    """

    def __init__(self, stream):
        """
        Initialize the reader.

        Args:
            stream: Anything with binary read() and readline() methods.
        """
        self.input = stream
        self._lock = threading.Lock()

    def read_message(self) -> Optional[Any]:
        """
        Read and parse a single LSP message.

        Returns:
            The parsed JSON value, or None on a clean EOF between frames.

        Raises:
            FramingError: If the frame is malformed or truncated.
            JsonRpcError: If the body is not valid JSON.
        """
        with self._lock:
            try:
                content_length = self._read_headers()
                if content_length is None:
                    return None

                body = self.input.read(content_length)
            except OSError as e:
                raise FramingError(
                    f"Error reading message: {e}", ErrorCode.INTERNAL_ERROR
                ) from e

            if len(body) < content_length:
                raise FramingError(
                    f"Truncated body: expected {content_length} bytes, "
                    f"got {len(body)}"
                )

            try:
                return json.loads(body.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise JsonRpcError(
                    ErrorCode.PARSE_ERROR,
                    f"Invalid JSON: {e}",
                ) from e

    def messages(self) -> Iterator[Any]:
        """Yield messages until the stream is exhausted."""
        while True:
            message = self.read_message()
            if message is None:
                return
            yield message

    def _read_headers(self) -> Optional[int]:
        """
        Read LSP headers and return the Content-Length.

        Returns:
            The content length, or None if EOF before any header.
        """
        content_length = None
        seen_header = False

        while True:
            raw = self.input.readline()
            if not raw:
                if seen_header:
                    raise FramingError("Stream closed inside message headers")
                return None
            seen_header = True

            try:
                line = raw.decode("ascii").strip()
            except UnicodeDecodeError:
                raise FramingError(f"Non-ASCII header line: {raw!r}")

            if not line:
                # Empty line marks end of headers
                break

            if line.lower().startswith("content-length:"):
                try:
                    content_length = int(line.split(":", 1)[1].strip())
                except ValueError:
                    raise FramingError(f"Invalid Content-Length: {line}")
                if content_length < 0:
                    raise FramingError(f"Invalid Content-Length: {line}")
            # Ignore other headers (like Content-Type)

        if content_length is None:
            raise FramingError("Missing Content-Length header")

        return content_length


class ProtocolWriter:
    """
    Writes LSP messages to an output stream.

    Formats messages with proper Content-Length headers.
    """

    def __init__(self, stream):
        """
        Initialize the writer.

        Args:
            stream: Anything with binary write() and flush() methods.
        """
        self.output = stream
        self._lock = threading.Lock()

    def write_message(self, message: dict[str, Any]) -> None:
        """
        Write a JSON-RPC message with proper LSP framing.

        Args:
            message: The message to write as a dict.
        """
        body = encode_body(message)
        header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")

        with self._lock:
            self.output.write(header + body)
            self.output.flush()


def encode_body(message: Any) -> bytes:
    """Serialize a message body as compact UTF-8 JSON."""
    return json.dumps(message, ensure_ascii=False, separators=(",", ":")).encode(
        "utf-8"
    )


# =============================================================================
# LSP-Specific Types
# =============================================================================


class MessageType(IntEnum):
    """LSP window/logMessage message types."""

    ERROR = 1
    WARNING = 2
    INFO = 3
    LOG = 4


class TextDocumentSyncKind(IntEnum):
    """LSP text document sync kinds."""

    NONE = 0
    FULL = 1
    INCREMENTAL = 2


class MarkupKind(str, Enum):
    """LSP markup content kinds."""

    PLAINTEXT = "plaintext"
    MARKDOWN = "markdown"
