"""
qlsp - A small framework for Language Server Protocol servers

This package provides the pieces needed to write an LSP server that talks
to one editor over stdio using JSON-RPC 2.0:
- Content-Length message framing
- A method table routing LSP methods to typed backend operations
- A backend base class to override selectively
- window/logMessage notifications from inside handlers

It also ships qlsp-sql, an example server that runs SQL on hover.
"""

__version__ = "0.1.0"

from qlsp.config import ServerConfig
from qlsp.connection import Connection, MessageLog
from qlsp.protocol import ErrorCode, FramingError, JsonRpcError, MessageType
from qlsp.server import METHODS, Backend, BaseServer, Dispatcher, MethodEntry, serve
from qlsp.stream import StdioStream

__all__ = [
    "Backend",
    "BaseServer",
    "Connection",
    "Dispatcher",
    "ErrorCode",
    "FramingError",
    "JsonRpcError",
    "METHODS",
    "MessageLog",
    "MessageType",
    "MethodEntry",
    "ServerConfig",
    "StdioStream",
    "serve",
]
