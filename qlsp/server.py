"""
qlsp.server - Method dispatch and the backend contract

This module provides the generic part of a qlsp language server:

- Backend: the operations a concrete server implements
- BaseServer: a Backend whose operations only log, to be subclassed
- METHODS: the table mapping LSP method names to typed backend operations
- Dispatcher: decodes each inbound message, calls the backend and builds
  the response
- serve(): runs a backend over stdio until the client goes away

Requests are handled one at a time, each to completion before the next
message is read. Every dispatched method is announced to the client with
a window/logMessage naming it, sent before the handler runs.

Usage:
    class MyServer(BaseServer):
        def hover(self, conn, params):
            return make_hover("hello")

    sys.exit(serve(MyServer()))
"""

import sys
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from qlsp.config import ServerConfig
from qlsp.connection import Connection, MessageLog
from qlsp.protocol import (
    ErrorCode,
    FramingError,
    JsonRpcError,
    Request,
    Response,
    make_error_response,
    make_response,
    parse_message,
)
from qlsp.stream import StdioStream
from qlsp.types import (
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Hover,
    HoverParams,
    InitializedParams,
    InitializeParams,
    InitializeResult,
    ParamsError,
    ServerCapabilities,
    ServerInfo,
    decode,
    encode,
)

# =============================================================================
# Backend Contract
# =============================================================================


class Backend(ABC):
    """
    The operations a language server backend provides.

    Each operation receives the live Connection first, so it can send
    notifications (for example conn.log_message) while it runs. Raising
    JsonRpcError answers the request with that error; any other exception
    is reported to the client as an internal error carrying its message.
    """

    @abstractmethod
    def initialize(
        self, conn: Connection, params: InitializeParams
    ) -> InitializeResult:
        """Declare the server's capabilities. Called once, first."""

    @abstractmethod
    def initialized(self, conn: Connection, params: InitializedParams) -> None:
        """The client finished the initialize handshake."""

    @abstractmethod
    def hover(self, conn: Connection, params: HoverParams) -> Optional[Hover]:
        """Content to show for a position, or None for nothing."""

    @abstractmethod
    def did_open(self, conn: Connection, params: DidOpenTextDocumentParams) -> None:
        """A document was opened with the given full text."""

    @abstractmethod
    def did_change(
        self, conn: Connection, params: DidChangeTextDocumentParams
    ) -> None:
        """A document's full text was replaced."""


class BaseServer(Backend):
    """
    Backend whose operations do nothing but tell the client they ran.

    Subclass it and override only the operations you need; the rest stay
    harmless. initialize() reports no optional capabilities.
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config if config is not None else ServerConfig()

    def initialize(
        self, conn: Connection, params: InitializeParams
    ) -> InitializeResult:
        self._not_implemented(conn, "Initialize")
        return InitializeResult(
            capabilities=ServerCapabilities(),
            server_info=self.server_info(),
        )

    def initialized(self, conn: Connection, params: InitializedParams) -> None:
        self._not_implemented(conn, "Initialized")

    def hover(self, conn: Connection, params: HoverParams) -> Optional[Hover]:
        self._not_implemented(conn, "Hover")
        return None

    def did_open(self, conn: Connection, params: DidOpenTextDocumentParams) -> None:
        self._not_implemented(conn, "DidOpen")

    def did_change(
        self, conn: Connection, params: DidChangeTextDocumentParams
    ) -> None:
        self._not_implemented(conn, "DidChange")

    def server_info(self) -> ServerInfo:
        return ServerInfo(name=self.config.name, version=self.config.version)

    def _not_implemented(self, conn: Connection, name: str) -> None:
        conn.log_message(f"{name}: not implemented")


# =============================================================================
# Method Table
# =============================================================================


@dataclass(frozen=True)
class MethodEntry:
    """
    How one LSP method is dispatched.

    Fields:
        method: The JSON-RPC method name
        handler: Name of the Backend operation to call
        params_type: Dataclass the params are decoded into
        params_required: Whether a message without params is invalid
        has_result: Whether the operation's return value is sent back
    """

    method: str
    handler: str
    params_type: type
    params_required: bool = True
    has_result: bool = True


INITIALIZE_METHOD = "initialize"

METHODS = (
    MethodEntry("initialize", "initialize", InitializeParams),
    MethodEntry(
        "initialized",
        "initialized",
        InitializedParams,
        params_required=False,
        has_result=False,
    ),
    MethodEntry("textDocument/hover", "hover", HoverParams),
    MethodEntry(
        "textDocument/didOpen",
        "did_open",
        DidOpenTextDocumentParams,
        has_result=False,
    ),
    MethodEntry(
        "textDocument/didChange",
        "did_change",
        DidChangeTextDocumentParams,
        has_result=False,
    ),
)


def build_method_table(methods: Iterable[MethodEntry]) -> dict[str, MethodEntry]:
    """
    Index method entries by name.

    Raises:
        ValueError: If a method name appears more than once.
    """
    table: dict[str, MethodEntry] = {}
    for entry in methods:
        if entry.method in table:
            raise ValueError(f"Duplicate method in table: {entry.method}")
        table[entry.method] = entry
    return table


# =============================================================================
# Dispatcher
# =============================================================================


class Dispatcher:
    """
    Routes inbound messages to a backend.

    handle() takes one decoded JSON-RPC message and returns the response
    to send, or None when no response is owed.

    Until an initialize request succeeds, other requests are answered with
    SERVER_NOT_INITIALIZED and notifications are dropped. A second
    initialize is refused with INVALID_REQUEST.
    """

    def __init__(
        self,
        server: Backend,
        conn: Connection,
        methods: Iterable[MethodEntry] = METHODS,
        config: Optional[ServerConfig] = None,
    ):
        self.server = server
        self.conn = conn
        self.config = config if config is not None else ServerConfig()
        self.table = build_method_table(methods)
        self.initialized = False

        for entry in self.table.values():
            if not callable(getattr(server, entry.handler, None)):
                raise TypeError(
                    f"{type(server).__name__} has no operation {entry.handler!r} "
                    f"for {entry.method}"
                )

    def _log(self, message: str) -> None:
        """Log a diagnostic line to stderr and the message log."""
        if self.conn.message_log is not None:
            self.conn.message_log.note(message)
        if not self.config.quiet:
            print(f"[qlsp] {message}", file=sys.stderr)
            sys.stderr.flush()

    def handle(self, message: Any) -> Optional[dict[str, Any]]:
        """
        Handle an incoming JSON-RPC message.

        Args:
            message: The parsed JSON message.

        Returns:
            A response message if the input was a request, None otherwise.
        """
        try:
            msg = parse_message(message)
        except JsonRpcError as e:
            msg_id = message.get("id") if isinstance(message, dict) else None
            self._log(f"Invalid message: {e.message}")
            return make_error_response(msg_id, e.code, e.message, e.data)

        if isinstance(msg, Response):
            # The server never sends requests, so nothing is waiting for this
            self._log(f"Ignoring response from client (id={msg.id})")
            return None

        self.conn.log_message(msg.method)

        refusal = self._check_lifecycle(msg)
        if refusal is not None:
            return self._fail(msg, refusal)

        entry = self.table.get(msg.method)
        if entry is None:
            self._log(f"Unknown method: {msg.method}")
            if isinstance(msg, Request):
                return make_error_response(
                    msg.id,
                    ErrorCode.METHOD_NOT_FOUND,
                    f"Method not found: {msg.method}",
                )
            return None

        try:
            params = self._decode_params(entry, msg.params)
        except JsonRpcError as e:
            return self._fail(msg, e)

        handler = getattr(self.server, entry.handler)
        try:
            result = handler(self.conn, params)
        except JsonRpcError as e:
            return self._fail(msg, e)
        except Exception as e:
            self._log(f"Error in {entry.method}:\n{traceback.format_exc().rstrip()}")
            return self._fail(
                msg, JsonRpcError(ErrorCode.INTERNAL_ERROR, str(e) or type(e).__name__)
            )

        if not isinstance(msg, Request):
            return None
        if msg.method == INITIALIZE_METHOD:
            self.initialized = True
        return make_response(msg.id, encode(result) if entry.has_result else None)

    def _check_lifecycle(self, msg: Any) -> Optional[JsonRpcError]:
        if msg.method == INITIALIZE_METHOD:
            if self.initialized:
                return JsonRpcError(
                    ErrorCode.INVALID_REQUEST, "Server already initialized"
                )
            return None
        if not self.initialized:
            return JsonRpcError(
                ErrorCode.SERVER_NOT_INITIALIZED, "Server not initialized"
            )
        return None

    def _decode_params(self, entry: MethodEntry, params: Any) -> Any:
        if params is None:
            if entry.params_required:
                raise JsonRpcError(
                    ErrorCode.INVALID_PARAMS,
                    f"Missing params for {entry.method}",
                )
            return entry.params_type()

        try:
            return decode(entry.params_type, params)
        except ParamsError as e:
            raise JsonRpcError(ErrorCode.INVALID_PARAMS, str(e)) from e

    def _fail(self, msg: Any, error: JsonRpcError) -> Optional[dict[str, Any]]:
        if isinstance(msg, Request):
            return make_error_response(msg.id, error.code, error.message, error.data)
        # Notifications never get a reply
        self._log(f"Error handling {msg.method}: {error.message}")
        return None

    def run(self) -> int:
        """
        Read and dispatch messages until the client closes the stream.

        A framing error ends the loop: the position of the next frame in
        the byte stream is unknown. The connection is closed on the way out.

        Returns:
            0 after a clean end of stream, 1 after a transport failure.
        """
        self._log("Server starting")
        status = 0

        try:
            while True:
                try:
                    message = self.conn.read_message()
                except FramingError as e:
                    self._log(f"Fatal framing error: {e.message}")
                    status = 1
                    break
                except JsonRpcError as e:
                    self._log(f"Unreadable message: {e.message}")
                    self.conn.send(make_error_response(None, e.code, e.message))
                    continue

                if message is None:
                    break

                response = self.handle(message)
                if response is not None:
                    self.conn.send(response)
        except KeyboardInterrupt:
            self._log("Interrupted")
            status = 1
        except OSError as e:
            self._log(f"Transport error: {e}")
            status = 1
        finally:
            self._log("Server stopped")
            try:
                self.conn.close()
            except OSError as e:
                self._log(f"Error closing connection: {e}")

        return status


def serve(
    server: Backend,
    stream=None,
    message_log: Optional[MessageLog] = None,
    config: Optional[ServerConfig] = None,
) -> int:
    """
    Serve one client with the given backend.

    Args:
        server: The backend handling LSP operations.
        stream: Bidirectional byte stream (default: stdin/stdout).
        message_log: Sink for the raw message log. When not given and the
            configuration names a log_path, that file is opened.
        config: Server configuration (default: the backend's, if any).

    Returns:
        The process exit status.
    """
    if config is None:
        config = getattr(server, "config", None) or ServerConfig()
    if stream is None:
        stream = StdioStream()
    if message_log is None and config.log_path:
        message_log = MessageLog.open(config.log_path)

    conn = Connection(stream, message_log)
    return Dispatcher(server, conn, config=config).run()
