#!/usr/bin/env python3
"""
Unit tests for the UDP data channel client

Sends real datagrams over loopback.
Run with: pytest tests/test_udp_client.py -v
"""

import asyncio
import logging
import socket
import pytest

from netsdr.messages import MsgType, encode_data_item_message, decode_message
from netsdr.udp_client import DataChannelClient, DEFAULT_UDP_PORT

from support import wait_until


def send_datagram(port: int, data: bytes):
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.sendto(data, ("127.0.0.1", port))
    finally:
        sock.close()


class TestDataChannelClient:
    """Test listen lifecycle"""

    def test_defaults(self):
        client = DataChannelClient()
        assert client.port == DEFAULT_UDP_PORT
        assert client.listen_address == "0.0.0.0"
        assert not client.is_listening
        assert client.local_address is None

    @pytest.mark.asyncio
    async def test_start_listening(self):
        client = DataChannelClient(0, listen_address="127.0.0.1")
        try:
            client.start_listening()
            assert client.is_listening
            assert await client.wait_until_listening()
            assert client.local_address[0] == "127.0.0.1"
        finally:
            client.dispose()

    @pytest.mark.asyncio
    async def test_wait_before_start(self):
        client = DataChannelClient(0)
        assert await client.wait_until_listening(0.01) is False

    @pytest.mark.asyncio
    async def test_stop_listening(self):
        client = DataChannelClient(0, listen_address="127.0.0.1")
        try:
            task = client.start_listening()
            assert await client.wait_until_listening()

            client.stop_listening()
            await asyncio.wait_for(task, 1.0)

            assert not client.is_listening
            assert client.local_address is None
        finally:
            client.dispose()

    def test_stop_when_not_listening(self):
        client = DataChannelClient(0)
        client.stop_listening()
        client.stop_listening()
        assert not client.is_listening

    @pytest.mark.asyncio
    async def test_restart(self):
        """Test that starting again replaces the running loop"""
        client = DataChannelClient(0, listen_address="127.0.0.1")
        received = []
        client.on_message(received.append)
        try:
            first = client.start_listening()
            assert await client.wait_until_listening()

            client.start_listening()
            assert await client.wait_until_listening()
            await asyncio.wait_for(first, 1.0)

            send_datagram(client.local_address[1], b'\x01\x02')
            assert await wait_until(lambda: received == [b'\x01\x02'])
        finally:
            client.dispose()

    @pytest.mark.asyncio
    async def test_bind_failure_is_logged(self, caplog):
        holder = DataChannelClient(0, listen_address="127.0.0.1")
        try:
            holder.start_listening()
            assert await holder.wait_until_listening()
            port = holder.local_address[1]

            client = DataChannelClient(port, listen_address="127.0.0.1")
            with caplog.at_level(logging.ERROR):
                task = client.start_listening()
                await asyncio.wait_for(task, 1.0)

            assert "Error during UDP listening" in caplog.text
            assert await client.wait_until_listening(0.01) is False
            client.dispose()
        finally:
            holder.dispose()

    def test_dispose_repeated(self):
        client = DataChannelClient(0)
        client.dispose()
        client.dispose()

    @pytest.mark.asyncio
    async def test_dispose_while_listening(self):
        client = DataChannelClient(0, listen_address="127.0.0.1")
        task = client.start_listening()
        assert await client.wait_until_listening()

        client.dispose()
        client.dispose()
        await asyncio.wait_for(task, 1.0)

        assert not client.is_listening


class TestReceive:
    """Test datagram delivery"""

    @pytest.mark.asyncio
    async def test_datagram_received(self):
        """Test that each datagram reaches the callback unchanged"""
        client = DataChannelClient(0, listen_address="127.0.0.1")
        received = []
        client.on_message(received.append)
        try:
            client.start_listening()
            assert await client.wait_until_listening()

            datagram = encode_data_item_message(MsgType.DATA_ITEM_0, 3, bytes(1024))
            send_datagram(client.local_address[1], datagram)

            assert await wait_until(lambda: len(received) == 1)
            assert received[0] == datagram
            assert decode_message(received[0]).sequence_number == 3
            assert client.datagrams_received == 1
            assert client.bytes_received == len(datagram)
        finally:
            client.dispose()

    @pytest.mark.asyncio
    async def test_one_event_per_datagram(self):
        client = DataChannelClient(0, listen_address="127.0.0.1")
        received = []
        client.on_message(received.append)
        try:
            client.start_listening()
            assert await client.wait_until_listening()

            for i in range(5):
                send_datagram(client.local_address[1], bytes([i]) * 8)

            assert await wait_until(lambda: len(received) == 5)
            assert sorted(received) == [bytes([i]) * 8 for i in range(5)]
        finally:
            client.dispose()

    @pytest.mark.asyncio
    async def test_nothing_received_after_stop(self):
        client = DataChannelClient(0, listen_address="127.0.0.1")
        received = []
        client.on_message(received.append)
        try:
            client.start_listening()
            assert await client.wait_until_listening()
            port = client.local_address[1]

            client.stop_listening()
            send_datagram(port, b'late')
            await asyncio.sleep(0.05)

            assert received == []
        finally:
            client.dispose()


class TestIdentity:
    """Test equality and hashing"""

    def test_same_port_equal(self):
        a = DataChannelClient(9090)
        b = DataChannelClient(9090)
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1

    def test_different_port_not_equal(self):
        a = DataChannelClient(9090)
        b = DataChannelClient(9091)
        assert a != b
        assert hash(a) != hash(b)

    def test_different_address_not_equal(self):
        assert DataChannelClient(9090, "127.0.0.1") != DataChannelClient(9090)

    def test_not_equal_to_other_types(self):
        assert DataChannelClient(9090) != ("0.0.0.0", 9090)
