"""
Tests for the stdio stream adapter, the Connection and the message log.
"""

import io
import json
import os
import tempfile
import unittest

from qlsp.connection import Connection, MessageLog
from qlsp.protocol import (
    ErrorCode,
    MessageType,
    ProtocolReader,
    ProtocolWriter,
    make_error_response,
    make_response,
)
from qlsp.stream import StdioStream
from qlsp.types import encode, make_hover


class ClosingBytesIO(io.BytesIO):
    """BytesIO whose contents stay readable after close()."""

    def __init__(self, *args):
        super().__init__(*args)
        self.close_count = 0

    def close(self):
        self.close_count += 1


class FailingCloseIO(ClosingBytesIO):
    def close(self):
        super().close()
        raise OSError("input already gone")


def read_all(data: bytes) -> list:
    return list(ProtocolReader(io.BytesIO(data)).messages())


class TestStdioStream(unittest.TestCase):
    """Test the bidirectional stream adapter."""

    def test_read_and_write_use_separate_sides(self):
        stream = StdioStream(io.BytesIO(b"line\nrest"), io.BytesIO())

        self.assertEqual(stream.readline(), b"line\n")
        self.assertEqual(stream.read(4), b"rest")

        stream.write(b"out")
        stream.flush()
        self.assertEqual(stream.output.getvalue(), b"out")

    def test_close_closes_both(self):
        input_stream = ClosingBytesIO()
        output_stream = ClosingBytesIO()
        stream = StdioStream(input_stream, output_stream)

        stream.close()
        stream.close()

        self.assertTrue(stream.closed)
        self.assertEqual(input_stream.close_count, 1)
        self.assertEqual(output_stream.close_count, 1)

    def test_close_output_even_if_input_fails(self):
        output_stream = ClosingBytesIO()
        stream = StdioStream(FailingCloseIO(), output_stream)

        with self.assertRaises(OSError):
            stream.close()
        self.assertEqual(output_stream.close_count, 1)


class TestConnection(unittest.TestCase):
    """Test reading, replying and notifying over a Connection."""

    def setUp(self):
        self.input = io.BytesIO()
        self.output = ClosingBytesIO()
        self.conn = Connection(StdioStream(self.input, self.output))

    def sent(self) -> list:
        return read_all(self.output.getvalue())

    def test_read_message(self):
        writer = ProtocolWriter(self.input)
        writer.write_message({"jsonrpc": "2.0", "method": "initialized", "params": {}})
        self.input.seek(0)

        self.assertEqual(self.conn.read_message()["method"], "initialized")
        self.assertIsNone(self.conn.read_message())

    def test_send_response(self):
        self.conn.send(make_response(4, encode(make_hover("hi"))))

        self.assertEqual(
            self.sent(),
            [
                {
                    "jsonrpc": "2.0",
                    "id": 4,
                    "result": {"contents": {"kind": "markdown", "value": "hi"}},
                }
            ],
        )

    def test_send_error_response(self):
        self.conn.send(make_error_response(5, ErrorCode.INVALID_PARAMS, "nope"))

        (response,) = self.sent()
        self.assertEqual(response["id"], 5)
        self.assertEqual(response["error"], {"code": -32602, "message": "nope"})

    def test_send_keeps_order(self):
        self.conn.log_message("first")
        self.conn.send(make_response("a", None))
        self.conn.notify("custom/after")

        self.assertEqual(
            [m.get("id", m.get("method")) for m in self.sent()],
            ["window/logMessage", "a", "custom/after"],
        )

    def test_log_message(self):
        self.conn.log_message("hello")
        self.conn.log_message("uh oh", MessageType.ERROR)

        self.assertEqual(
            self.sent(),
            [
                {
                    "jsonrpc": "2.0",
                    "method": "window/logMessage",
                    "params": {"type": 3, "message": "hello"},
                },
                {
                    "jsonrpc": "2.0",
                    "method": "window/logMessage",
                    "params": {"type": 1, "message": "uh oh"},
                },
            ],
        )

    def test_notify_without_params(self):
        self.conn.notify("custom/ping")
        self.assertEqual(self.sent(), [{"jsonrpc": "2.0", "method": "custom/ping"}])

    def test_close_closes_stream(self):
        self.conn.close()
        self.assertEqual(self.output.close_count, 1)
        self.assertTrue(self.conn.stream.closed)


class TestMessageLog(unittest.TestCase):
    """Test the raw message log sink."""

    def test_records_both_directions(self):
        sink = io.StringIO()
        writer = ProtocolWriter(io.BytesIO())
        request = {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}}
        writer.write_message(request)
        writer.output.seek(0)

        conn = Connection(
            StdioStream(writer.output, ClosingBytesIO()), message_log=MessageLog(sink)
        )
        conn.read_message()
        conn.send(make_response(1, None))
        conn.message_log.note("done")

        lines = sink.getvalue().splitlines()
        self.assertEqual(len(lines), 3)
        self.assertIn(" --> ", lines[0])
        self.assertEqual(json.loads(lines[0].split(" --> ", 1)[1]), request)
        self.assertIn(" <-- ", lines[1])
        self.assertEqual(
            json.loads(lines[1].split(" <-- ", 1)[1]),
            {"jsonrpc": "2.0", "id": 1, "result": None},
        )
        self.assertTrue(lines[2].endswith(" --- done"))

    def test_borrowed_sink_left_open(self):
        sink = io.StringIO()
        log = MessageLog(sink)
        log.close()
        self.assertFalse(sink.closed)

    def test_open_appends_to_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "qlsp.log")
            with open(path, "w", encoding="utf-8") as f:
                f.write("earlier\n")

            log = MessageLog.open(path)
            log.sent({"jsonrpc": "2.0", "method": "x"})
            log.close()
            self.assertTrue(log.sink.closed)

            with open(path, encoding="utf-8") as f:
                lines = f.read().splitlines()

        self.assertEqual(lines[0], "earlier")
        self.assertIn('<-- {"jsonrpc": "2.0", "method": "x"}', lines[1])


if __name__ == "__main__":
    unittest.main()
