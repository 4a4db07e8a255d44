"""
qlsp.stream - Standard input/output as a single byte channel

The language server talks to exactly one client over the process's stdin
and stdout. StdioStream pairs the two so the codec can treat them as one
bidirectional stream with a combined close.
"""

import sys
from typing import BinaryIO, Optional


class StdioStream:
    """
    A bidirectional byte stream over a separate input and output.

    Reads come from the input side, writes go to the output side, and
    close() shuts both down together.
    """

    def __init__(
        self,
        input_stream: Optional[BinaryIO] = None,
        output_stream: Optional[BinaryIO] = None,
    ):
        """
        Initialize the stream.

        Args:
            input_stream: Binary stream to read from (default: sys.stdin.buffer)
            output_stream: Binary stream to write to (default: sys.stdout.buffer)
        """
        self.input = input_stream if input_stream is not None else sys.stdin.buffer
        self.output = output_stream if output_stream is not None else sys.stdout.buffer
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int) -> bytes:
        return self.input.read(size)

    def readline(self) -> bytes:
        return self.input.readline()

    def write(self, data: bytes) -> int:
        return self.output.write(data)

    def flush(self) -> None:
        self.output.flush()

    def close(self) -> None:
        """
        Close both directions.

        The output is flushed before it is closed. Both sides are always
        closed; if either raises, the first error is re-raised afterwards.
        """
        if self._closed:
            return
        self._closed = True

        error: Optional[BaseException] = None
        try:
            self.input.close()
        except OSError as e:
            error = e

        try:
            if not self.output.closed:
                self.output.flush()
            self.output.close()
        except OSError as e:
            if error is None:
                error = e

        if error is not None:
            raise error
