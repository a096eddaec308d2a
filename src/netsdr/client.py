#!/usr/bin/env python3
"""
NetSDR Receiver Client

Drives a NetSDR-protocol receiver over its two channels:

    Host                                   Receiver
    ├── ControlChannelClient (TCP) ──────► control items (SET / REQUEST)
    │                          ◄────────── responses, ACK/NAK, unsolicited
    └── DataChannelClient (UDP)  ◄──────── IQ data items

Usage:
    client = NetSdrClient.from_config(ClientConfig(host="192.168.1.50"))
    await client.connect()
    await client.change_frequency(14_074_000, channel=0)
    await client.start_streaming()

    # ... IQ datagrams arrive in the background ...

    await client.stop_streaming()
    client.disconnect()

Author: NetSDR Client Project
License: MIT
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from typing import Callable, Optional

from .messages import (
    ControlItemCode,
    encode_control_item_set,
    sample_rate_args,
    rf_filter_args,
    ad_mode_args,
    receiver_state_start_args,
    receiver_state_stop_args,
    frequency_args,
    hex_dump,
)
from .tcp_client import ControlChannelClient, DEFAULT_TCP_PORT, RECEIVE_BUFFER_SIZE
from .udp_client import DataChannelClient, DEFAULT_UDP_PORT

logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Connection and setup parameters for one receiver"""
    host: str = "127.0.0.1"
    tcp_port: int = DEFAULT_TCP_PORT
    udp_port: int = DEFAULT_UDP_PORT
    listen_address: str = "0.0.0.0"
    receive_buffer_size: int = RECEIVE_BUFFER_SIZE

    # Host pre-setup
    sample_rate_hz: int = 100000
    rf_filter_mode: int = 0          # Automatic
    ad_mode: int = 0x03

    request_timeout_s: float = 5.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'ClientConfig':
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


class NetSdrClient:
    """
    Receiver session

    Sets the receiver up on connect, starts and stops the IQ stream and
    retunes. Channel events are handled here without the channels ever
    calling back into session state other than through their callbacks.
    """

    def __init__(
        self,
        tcp: ControlChannelClient,
        udp: DataChannelClient,
        config: Optional[ClientConfig] = None
    ):
        self._tcp = tcp
        self._udp = udp
        self.config = config or ClientConfig()

        self.streaming = False
        self._pending_response: Optional[asyncio.Future] = None

        # Statistics
        self.responses_received = 0
        self.iq_datagrams_received = 0

        # Callbacks
        self._on_iq_data: Optional[Callable[[bytes], None]] = None

        self._tcp.on_message(self._tcp_message_received)
        self._udp.on_message(self._udp_message_received)

    @classmethod
    def from_config(cls, config: ClientConfig) -> 'NetSdrClient':
        """Build a session with real TCP/UDP channel clients"""
        tcp = ControlChannelClient(
            config.host,
            config.tcp_port,
            buffer_size=config.receive_buffer_size
        )
        udp = DataChannelClient(config.udp_port, listen_address=config.listen_address)
        return cls(tcp, udp, config)

    @property
    def connected(self) -> bool:
        return self._tcp.connected

    def on_iq_data(self, callback: Callable[[bytes], None]):
        """Set callback for raw IQ datagrams: callback(data)"""
        self._on_iq_data = callback

    async def connect(self):
        """Connect the control channel and send the host pre-setup commands"""
        if not self._tcp.connected:
            await self._tcp.connect()

        setup = [
            encode_control_item_set(
                ControlItemCode.IQ_OUTPUT_DATA_SAMPLE_RATE,
                sample_rate_args(self.config.sample_rate_hz)),
            encode_control_item_set(
                ControlItemCode.RF_FILTER,
                rf_filter_args(self.config.rf_filter_mode)),
            encode_control_item_set(
                ControlItemCode.AD_MODES,
                ad_mode_args(mode=self.config.ad_mode)),
        ]

        for msg in setup:
            await self._tcp.send(msg)

    def disconnect(self):
        self._tcp.disconnect()

    async def start_streaming(self):
        """Put the receiver in RUN state and start listening for IQ data"""
        if not self._tcp.connected:
            logger.warning("No active connection, IQ streaming not started")
            return

        msg = encode_control_item_set(
            ControlItemCode.RECEIVER_STATE, receiver_state_start_args())
        await self._tcp.send(msg)

        self.streaming = True

        # Not awaited: the listen loop runs until stop_streaming()
        self._udp.start_listening()

    async def stop_streaming(self):
        """Put the receiver in IDLE state and stop listening for IQ data"""
        if self._tcp.connected:
            msg = encode_control_item_set(
                ControlItemCode.RECEIVER_STATE, receiver_state_stop_args())
            await self._tcp.send(msg)
        else:
            logger.warning("No active connection, stopping IQ listener only")

        self.streaming = False
        self._udp.stop_listening()

    async def change_frequency(self, hz: int, channel: int):
        """Tune `channel` to `hz`; FrameError if either does not fit"""
        msg = encode_control_item_set(
            ControlItemCode.RECEIVER_FREQUENCY, frequency_args(hz, channel))
        await self._tcp.send(msg)

    async def send_request(self, data: bytes, timeout: Optional[float] = None) -> bytes:
        """
        Send one frame and return the next message the device sends back.

        This does not match responses to requests; whatever arrives first on
        the control channel after the send is returned.

        Raises:
            asyncio.TimeoutError: nothing arrived within `timeout`
        """
        if timeout is None:
            timeout = self.config.request_timeout_s

        response = asyncio.get_running_loop().create_future()
        self._pending_response = response
        try:
            await self._tcp.send(data)
            return await asyncio.wait_for(response, timeout)
        finally:
            if self._pending_response is response:
                self._pending_response = None

    def _tcp_message_received(self, data: bytes):
        # TODO: decode ACK/NAK/unsolicited control items instead of logging them
        self.responses_received += 1
        logger.info(f"Response received: {hex_dump(data)}")

        pending = self._pending_response
        if pending is not None and not pending.done():
            pending.set_result(data)

    def _udp_message_received(self, data: bytes):
        self.iq_datagrams_received += 1
        if self._on_iq_data:
            self._on_iq_data(data)

    def dispose(self):
        self._tcp.dispose()
        self._udp.dispose()


# =============================================================================
# CLI Interface
# =============================================================================

async def _run(args) -> int:
    config = ClientConfig(
        host=args.host,
        tcp_port=args.port,
        udp_port=args.udp_port,
        sample_rate_hz=args.rate
    )
    client = NetSdrClient.from_config(config)

    try:
        await client.connect()
        if args.freq is not None:
            await client.change_frequency(args.freq, args.channel)

        await client.start_streaming()
        await asyncio.sleep(args.secs)
        await client.stop_streaming()

        logger.info(f"Done. {client.iq_datagrams_received} IQ datagrams, "
                    f"{client.responses_received} control responses")
        return 0

    except ConnectionError as e:
        logger.error(f"Receiver unavailable: {e}")
        return 1

    finally:
        client.disconnect()
        client.dispose()


def main():
    """Command-line interface for a short IQ capture session"""
    import argparse

    parser = argparse.ArgumentParser(
        description="NetSDR receiver control and IQ streaming client"
    )
    parser.add_argument(
        '--host',
        default="127.0.0.1",
        help="Receiver address (default: 127.0.0.1)"
    )
    parser.add_argument(
        '--port', '-p',
        type=int,
        default=DEFAULT_TCP_PORT,
        help=f"Receiver TCP control port (default: {DEFAULT_TCP_PORT})"
    )
    parser.add_argument(
        '--udp-port', '-u',
        type=int,
        default=DEFAULT_UDP_PORT,
        help=f"Local UDP port for IQ data (default: {DEFAULT_UDP_PORT})"
    )
    parser.add_argument(
        '--freq', '-f',
        type=int,
        default=None,
        help="Receiver frequency in Hz"
    )
    parser.add_argument(
        '--channel', '-c',
        type=int,
        default=0,
        help="Receiver channel for --freq (default: 0)"
    )
    parser.add_argument(
        '--rate', '-r',
        type=int,
        default=100000,
        help="IQ output sample rate in Hz (default: 100000)"
    )
    parser.add_argument(
        '--secs', '-s',
        type=float,
        default=5.0,
        help="Seconds to stream (default: 5)"
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help="Log sent frames"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 1


if __name__ == '__main__':
    exit(main())
