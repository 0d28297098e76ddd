import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from typing import Any, TextIO

from nsbridge.transport.base import ClientTransport
from nsbridge.transport.framing import parse_json_message, serialize_message

logger = logging.getLogger(__name__)


class StdioTransport(ClientTransport):
    """Line-delimited JSON over stdin/stdout for a single client.

    The client launches the service as a subprocess, writes one call per line
    to its stdin and reads one event per line from its stdout. Logging must
    go to stderr so it never interleaves with events.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader | None = None,
        output: TextIO | None = None,
    ) -> None:
        """
        Args:
            reader: Inbound stream. Connected to stdin on first use if omitted.
            output: Outbound text stream. Defaults to stdout.
        """
        self._reader = reader
        self._output = output or sys.stdout
        self._closed = False
        self._write_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return not self._closed

    async def _setup_stdin_reader(self) -> asyncio.StreamReader:
        if self._reader is not None:
            return self._reader

        self._reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(self._reader)
        await asyncio.get_running_loop().connect_read_pipe(
            lambda: protocol, sys.stdin
        )
        return self._reader

    async def send(self, message: dict[str, Any]) -> None:
        """Write one event line.

        Raises:
            ValueError: If the message cannot be serialized
            ConnectionError: If the transport is closed or the write fails
        """
        if self._closed:
            raise ConnectionError("Transport is closed")

        line = serialize_message(message)
        async with self._write_lock:
            try:
                print(line, file=self._output, flush=True)
            except Exception as e:
                raise ConnectionError(f"Failed to send message: {e}") from e

    def messages(self) -> AsyncIterator[dict[str, Any]]:
        return self._message_iterator()

    async def _message_iterator(self) -> AsyncIterator[dict[str, Any]]:
        reader = await self._setup_stdin_reader()

        while not self._closed:
            try:
                line_bytes = await reader.readline()
            except Exception as e:
                raise ConnectionError(f"Failed to read from stdin: {e}") from e

            if not line_bytes:
                logger.info("Client closed stdin")
                return

            line = line_bytes.decode("utf-8", errors="replace")
            message = parse_json_message(line)
            if message is None:
                if line.strip():
                    logger.warning(f"Skipping invalid line: {line.strip()}")
                continue
            yield message

    async def close(self) -> None:
        """Stop reading. Stdout is left open for the host process."""
        self._closed = True
        try:
            self._output.flush()
        except (OSError, ValueError) as e:
            logger.debug(f"Could not flush output on close: {e}")
