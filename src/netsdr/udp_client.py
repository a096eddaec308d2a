"""
NetSDR data channel (UDP) client.

Binds a local datagram endpoint and hands every datagram (one IQ data item)
to the registered callback. Datagrams are passed through as they arrive:
no reordering, no gap detection.
"""

import asyncio
import logging
from typing import Callable, Optional, Tuple

from .lifecycle import CancellationToken, ListenerLifecycle

logger = logging.getLogger(__name__)

DEFAULT_UDP_PORT = 60000


class _DatagramQueue(asyncio.DatagramProtocol):
    """Feeds received datagrams (or receive errors) into a queue"""

    def __init__(self, queue: asyncio.Queue):
        self.queue = queue

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        self.queue.put_nowait((data, addr))

    def error_received(self, exc: Exception):
        self.queue.put_nowait(exc)


class DataChannelClient:
    """
    UDP data channel client

    Idle -> Listening (start_listening) -> Idle (stop_listening). Independent
    of the control channel's state.
    """

    def __init__(self, port: int = DEFAULT_UDP_PORT, listen_address: str = "0.0.0.0"):
        self.listen_address = listen_address
        self.port = port

        self._transport: Optional[asyncio.DatagramTransport] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._bound: Optional[asyncio.Event] = None
        self._lifecycle = ListenerLifecycle("udp")

        # Statistics
        self.datagrams_received = 0
        self.bytes_received = 0

        # Callbacks
        self._on_message: Optional[Callable[[bytes], None]] = None

    @property
    def is_listening(self) -> bool:
        return self._lifecycle.is_listening

    @property
    def local_address(self) -> Optional[Tuple[str, int]]:
        """Bound (address, port), None until the endpoint is open"""
        if self._transport is None:
            return None
        return self._transport.get_extra_info('sockname')[:2]

    def on_message(self, callback: Callable[[bytes], None]):
        """Set callback for received datagrams: callback(data)"""
        self._on_message = callback

    def start_listening(self) -> asyncio.Task:
        """
        Start (or restart) the receive loop in the background.

        Must be called from a running event loop. Any previous loop and
        endpoint are shut down first.
        """
        self._close_transport()
        token = self._lifecycle.start_cancellation()
        self._bound = asyncio.Event()
        self._listen_task = asyncio.get_running_loop().create_task(
            self._listen(token, self._bound))
        token.attach(self._listen_task)
        return self._listen_task

    async def wait_until_listening(self, timeout: float = 1.0) -> bool:
        """Wait for the endpoint to be bound; False on timeout or if not started"""
        if self._bound is None:
            return False
        try:
            await asyncio.wait_for(self._bound.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _listen(self, token: CancellationToken, bound: asyncio.Event):
        async def _receive():
            loop = asyncio.get_running_loop()
            queue: asyncio.Queue = asyncio.Queue()
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _DatagramQueue(queue),
                local_addr=(self.listen_address, self.port)
            )
            self._transport = transport
            bound.set()
            logger.info(f"Start listening for UDP messages on "
                        f"{self.listen_address}:{self.port}")

            try:
                while not token.cancelled:
                    item = await queue.get()
                    if isinstance(item, Exception):
                        raise item

                    data, addr = item
                    self.datagrams_received += 1
                    self.bytes_received += len(data)
                    if self._on_message:
                        self._on_message(data)
                    logger.debug(f"Received {len(data)} bytes from {addr[0]}:{addr[1]}")
            finally:
                transport.close()

        await self._lifecycle.run_guarded_async(_receive, "UDP listening", token)

    def stop_listening(self):
        """Stop the receive loop and close the endpoint; safe when idle"""
        def _stop():
            self._lifecycle.stop_cancellation()
            self._close_transport()
            logger.info("Stopped listening for UDP messages")

        self._lifecycle.run_guarded(_stop, "UDP stopping")

    def _close_transport(self):
        transport = self._transport
        self._transport = None
        self._listen_task = None
        if transport is not None:
            transport.close()

    def dispose(self):
        """Release the token and endpoint; safe to call repeatedly"""
        if not self._lifecycle.dispose():
            return
        self._lifecycle.run_guarded(self._close_transport, "UDP dispose")

    def __eq__(self, other):
        if not isinstance(other, DataChannelClient):
            return NotImplemented
        return (self.listen_address, self.port) == (other.listen_address, other.port)

    def __hash__(self):
        return hash((DataChannelClient.__name__, self.listen_address, self.port))
