"""
Shared test doubles for the NetSDR client tests

- FakeControlChannel / FakeDataChannel: recording stand-ins for the session
- DeviceEmulator: loopback receiver that echoes SET messages and streams
  data items over UDP while in RUN state
"""

import asyncio
import socket
import struct
from typing import Callable, List, Optional

from netsdr.messages import (
    ControlItemCode,
    MsgType,
    MessageHeader,
    decode_message,
    encode_data_item_message,
)
from netsdr.tcp_client import NotConnectedError


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> bool:
    """Poll `predicate` until it holds or `timeout` expires"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True


def pick_udp_port() -> int:
    """Return a free local UDP port"""
    probe = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        probe.bind(('127.0.0.1', 0))
        return int(probe.getsockname()[1])
    finally:
        probe.close()


def split_frames(data: bytes) -> List[bytes]:
    """Split a byte stream into frames using the header length"""
    frames = []
    offset = 0
    while offset < len(data):
        header = MessageHeader.decode(data[offset:offset + 2])
        frames.append(data[offset:offset + header.length])
        offset += header.length
    return frames


class FakeControlChannel:
    """Records what the session does with its control channel"""

    def __init__(self, fail_connect: bool = False, reply: Optional[bytes] = None):
        self.connected = False
        self.fail_connect = fail_connect
        self.reply = reply
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.dispose_calls = 0
        self.sent: List[bytes] = []
        self._on_message = None

    def on_message(self, callback):
        self._on_message = callback

    def raise_message(self, data: bytes):
        self._on_message(data)

    async def connect(self):
        self.connect_calls += 1
        if not self.fail_connect:
            self.connected = True

    def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False

    async def send(self, data: bytes):
        if not self.connected:
            raise NotConnectedError("Not connected to a server")
        self.sent.append(bytes(data))
        if self.reply is not None:
            self.raise_message(self.reply)

    def dispose(self):
        self.dispose_calls += 1


class FakeDataChannel:
    """Records listen start/stop calls"""

    def __init__(self):
        self.start_calls = 0
        self.stop_calls = 0
        self.dispose_calls = 0
        self._on_message = None

    def on_message(self, callback):
        self._on_message = callback

    def raise_message(self, data: bytes):
        self._on_message(data)

    def start_listening(self):
        self.start_calls += 1

    def stop_listening(self):
        self.stop_calls += 1

    def dispose(self):
        self.dispose_calls += 1


class DeviceEmulator:
    """
    Minimal NetSDR receiver on localhost.

    Echoes every SET control item back as the current value and, once put
    in RUN state, sends `datagram_count` 16-bit IQ data items to the UDP
    port given at construction.
    """

    def __init__(
        self,
        udp_port: int = 0,
        datagram_count: int = 50,
        samples_per_packet: int = 256,
        interval: float = 0.02
    ):
        self.udp_port = udp_port
        self.datagram_count = datagram_count
        self.samples_per_packet = samples_per_packet
        self.interval = interval

        self.frames: List[bytes] = []
        self.connections = 0
        self.datagrams_sent = 0
        self.running = False
        self.port = 0
        self._server: Optional[asyncio.AbstractServer] = None
        self._writers: List[asyncio.StreamWriter] = []
        self._stream_task: Optional[asyncio.Task] = None

    async def start(self) -> 'DeviceEmulator':
        self._server = await asyncio.start_server(self._handle, '127.0.0.1', 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.connections += 1
        self._writers.append(writer)
        try:
            while True:
                header_bytes = await reader.readexactly(2)
                header = MessageHeader.decode(header_bytes)
                body = await reader.readexactly(header.length - 2)
                frame = header_bytes + body
                self.frames.append(frame)
                await self._process(frame, writer)
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()

    async def _process(self, frame: bytes, writer: asyncio.StreamWriter):
        message = decode_message(frame)
        if message.msg_type == MsgType.SET_CONTROL_ITEM:
            writer.write(frame)
            await writer.drain()

        if message.item_code == ControlItemCode.RECEIVER_STATE:
            self.running = message.body[1] == 0x02
            if self.running and self._stream_task is None:
                self._stream_task = asyncio.get_running_loop().create_task(
                    self._send_data_items())

    async def _send_data_items(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            for sequence in range(self.datagram_count):
                if not self.running:
                    break
                samples = struct.pack(
                    f'<{self.samples_per_packet}h',
                    *([sequence] * self.samples_per_packet))
                datagram = encode_data_item_message(MsgType.DATA_ITEM_0, sequence, samples)
                sock.sendto(datagram, ('127.0.0.1', self.udp_port))
                self.datagrams_sent += 1
                await asyncio.sleep(self.interval)
        finally:
            sock.close()
            self._stream_task = None

    async def close(self):
        self.running = False
        if self._stream_task is not None:
            self._stream_task.cancel()
        for writer in self._writers:
            writer.close()
        if self._server is not None:
            self._server.close()
        await asyncio.sleep(0)
