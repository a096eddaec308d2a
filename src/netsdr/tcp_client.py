"""
NetSDR control channel (TCP) client.

Owns one stream connection to the receiver. Commands are written with
send(); everything the device sends back is handed to the registered
callback one read at a time. Frames are not reassembled here: a frame split
across two reads arrives as two messages, and two frames coalesced into one
read arrive as one.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple

from .lifecycle import CancellationToken, ListenerLifecycle
from .messages import hex_dump

logger = logging.getLogger(__name__)

DEFAULT_TCP_PORT = 50000
RECEIVE_BUFFER_SIZE = 8194  # Largest data item plus margin

Connector = Callable[[str, int], Awaitable[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]]


class NotConnectedError(ConnectionError):
    """Raised when sending on a control channel that is not connected"""


class ControlChannelClient:
    """
    TCP control channel client

    Disconnected -> Connected (connect) -> Listening (receive loop running)
    -> Disconnected (disconnect / dispose).
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_TCP_PORT,
        buffer_size: int = RECEIVE_BUFFER_SIZE,
        connector: Optional[Connector] = None
    ):
        """
        Args:
            host: Receiver address
            port: Receiver control port
            buffer_size: Bytes requested per read
            connector: Async (host, port) -> (reader, writer) factory,
                asyncio.open_connection by default
        """
        self.host = host
        self.port = port
        self.buffer_size = buffer_size
        self._connector = connector or asyncio.open_connection

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._lifecycle = ListenerLifecycle("tcp")

        # Callbacks
        self._on_message: Optional[Callable[[bytes], None]] = None

    @property
    def connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    @property
    def is_listening(self) -> bool:
        return self._lifecycle.is_listening

    def on_message(self, callback: Callable[[bytes], None]):
        """Set callback for received bytes: callback(data)"""
        self._on_message = callback

    async def connect(self):
        """Open the connection and start the receive loop; no-op if connected"""
        if self.connected:
            return

        async def _open():
            logger.info(f"Connecting to {self.host}:{self.port}")
            reader, writer = await self._connector(self.host, self.port)
            self._reader = reader
            self._writer = writer

            token = self._lifecycle.start_cancellation()
            self._listen_task = asyncio.get_running_loop().create_task(
                self._listen(reader, token))
            token.attach(self._listen_task)
            logger.info("TCP connected")

        await self._lifecycle.run_guarded_async(_open, "TCP connection")

    def disconnect(self):
        """Stop the receive loop and close the connection"""
        if not self.connected:
            logger.info("No active connection to disconnect")
            return

        def _close():
            self._lifecycle.stop_cancellation()
            self._close_stream()
            logger.info("Disconnected")

        self._lifecycle.run_guarded(_close, "TCP disconnection")

    async def send(self, data: bytes):
        """
        Write `data` to the device.

        Raises:
            NotConnectedError: no open, writable connection
        """
        if not self.connected:
            raise NotConnectedError("Not connected to a server")

        logger.debug(f"Message sent: {hex_dump(data)}")
        self._writer.write(bytes(data))
        await self._writer.drain()

    async def send_text(self, text: str):
        """Send a UTF-8 encoded string"""
        await self.send(text.encode('utf-8'))

    async def _listen(self, reader: asyncio.StreamReader, token: CancellationToken):
        async def _receive():
            logger.info("Starting listening for incoming messages")
            while not token.cancelled:
                data = await reader.read(self.buffer_size)
                if not data:
                    logger.warning("TCP connection closed by device")
                    break
                if self._on_message:
                    self._on_message(bytes(data))
            token.raise_if_cancelled()

        await self._lifecycle.run_guarded_async(_receive, "TCP listening", token)

    def _close_stream(self):
        writer = self._writer
        self._writer = None
        self._reader = None
        self._listen_task = None
        if writer is not None:
            writer.close()

    def dispose(self):
        """Release the token and connection; safe to call repeatedly"""
        if not self._lifecycle.dispose():
            return
        self._lifecycle.run_guarded(self._close_stream, "TCP dispose")
