"""
qlsp.connection - Full-duplex JSON-RPC connection to the client

A Connection pairs a byte stream with the message codec. It reads inbound
requests and notifications, writes responses correlated by request id,
and lets any code holding it push notifications to the client at any time.

Every message that crosses the connection can be recorded to a MessageLog,
a plain text sink handed to the Connection when it is built.
"""

import datetime
import json
from typing import Any, Iterator, Optional, TextIO

from qlsp.protocol import (
    MessageType,
    ProtocolReader,
    ProtocolWriter,
    make_notification,
)
from qlsp.types import LogMessageParams, encode

LOG_MESSAGE_METHOD = "window/logMessage"


class MessageLog:
    """
    Append-only record of the raw JSON-RPC traffic.

    Lines look like:
        2026-10-19 12:00:00.000 --> {"jsonrpc":"2.0","id":1,...}   (received)
        2026-10-19 12:00:00.004 <-- {"jsonrpc":"2.0","id":1,...}   (sent)
        2026-10-19 12:00:00.005 --- free-form note
    """

    def __init__(self, sink: TextIO, owned: bool = False):
        """
        Args:
            sink: Text stream the lines are written to.
            owned: Whether close() should close the sink.
        """
        self.sink = sink
        self.owned = owned

    @classmethod
    def open(cls, path: str) -> "MessageLog":
        """Open (or create) a log file in append mode."""
        return cls(open(path, "a", encoding="utf-8"), owned=True)

    def received(self, message: Any) -> None:
        self._write("-->", json.dumps(message, ensure_ascii=False))

    def sent(self, message: Any) -> None:
        self._write("<--", json.dumps(message, ensure_ascii=False))

    def note(self, text: str) -> None:
        self._write("---", text)

    def close(self) -> None:
        if self.owned and not self.sink.closed:
            self.sink.close()

    def _write(self, marker: str, text: str) -> None:
        stamp = datetime.datetime.now().isoformat(sep=" ", timespec="milliseconds")
        self.sink.write(f"{stamp} {marker} {text}\n")
        self.sink.flush()


class Connection:
    """
    The live channel to the editor.

    One Connection exists for the whole life of the server. The dispatcher
    uses it to read messages and send responses; backend handlers receive
    it as an argument so they can send notifications mid-call.
    """

    def __init__(self, stream, message_log: Optional[MessageLog] = None):
        """
        Args:
            stream: Bidirectional byte stream (see qlsp.stream.StdioStream).
            message_log: Optional sink recording every message exchanged.
        """
        self.stream = stream
        self.reader = ProtocolReader(stream)
        self.writer = ProtocolWriter(stream)
        self.message_log = message_log

    def read_message(self) -> Optional[Any]:
        """
        Read the next inbound message.

        Returns:
            The decoded JSON value, or None once the client closed the stream.
        """
        message = self.reader.read_message()
        if message is not None and self.message_log is not None:
            self.message_log.received(message)
        return message

    def messages(self) -> Iterator[Any]:
        """Yield inbound messages until the stream is closed."""
        while True:
            message = self.read_message()
            if message is None:
                return
            yield message

    def send(self, message: dict[str, Any]) -> None:
        """
        Write a JSON-RPC envelope.

        Responses built by the dispatcher (make_response, make_error_response)
        and notifications both go out through here, in the order sent.
        """
        if self.message_log is not None:
            self.message_log.sent(message)
        self.writer.write_message(message)

    def notify(self, method: str, params: Any = None) -> None:
        """
        Send a notification to the client.

        This is a single write that does not wait for anything from the
        client; it may be called from inside a handler.
        """
        self.send(make_notification(method, encode(params)))

    def log_message(self, message: str, type: MessageType = MessageType.INFO) -> None:
        """Show a message in the client's log (window/logMessage)."""
        self.notify(LOG_MESSAGE_METHOD, LogMessageParams(type=type, message=message))

    def close(self) -> None:
        """Flush and close the stream, then the message log."""
        try:
            self.stream.close()
        finally:
            if self.message_log is not None:
                self.message_log.close()
