#!/usr/bin/env python3
"""
NetSDR Message Encoding/Decoding Library

Pure Python implementation of the NetSDR control and data item framing used
by RFSpace-style network receivers.

Every message starts with a 16-bit little-endian header word:

    bits 0-12   total message length in bytes, header included
    bits 13-15  message type

Control item messages follow the header with a 16-bit little-endian control
item code and the item-specific parameter bytes. Data item messages (the IQ
stream on UDP) follow the header with a 16-bit sequence number and the raw
samples.

This module provides:
- Header encode/decode
- Control item SET / REQUEST message builders
- Data item message builder (device side, used by simulators)
- Frame decoding and sample unpacking

Author: NetSDR Client Project
License: MIT
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union
import numpy as np


HEADER_SIZE = 2
ITEM_CODE_SIZE = 2
SEQUENCE_NUMBER_SIZE = 2

MAX_MESSAGE_LENGTH = 0x1FFF      # 13-bit length field
MAX_DATA_ITEM_LENGTH = 8194      # Sent with a length field of 0

FREQUENCY_SIZE = 5               # Frequencies travel as 40-bit LE integers


class FrameError(ValueError):
    """Raised when a message cannot be encoded or decoded"""


class MsgType(IntEnum):
    """
    Message types (3 bits)

    Host -> device meanings are used for the names. Coming back from the
    device, 0 is the current value of a control item, 1 an unsolicited
    control item, 2 a range response and 3 a data item ACK.
    """
    SET_CONTROL_ITEM = 0b000
    REQUEST_CONTROL_ITEM = 0b001
    REQUEST_CONTROL_ITEM_RANGE = 0b010
    DATA_ITEM_ACK = 0b011
    DATA_ITEM_0 = 0b100
    DATA_ITEM_1 = 0b101
    DATA_ITEM_2 = 0b110
    DATA_ITEM_3 = 0b111

    @property
    def is_data_item(self) -> bool:
        return self >= MsgType.DATA_ITEM_0


class ControlItemCode(IntEnum):
    """Control item codes (16 bits)"""
    NONE = 0x0000
    INTERFACE_NAME = 0x0001
    SERIAL_NUMBER = 0x0002
    INTERFACE_VERSION = 0x0003
    STATUS_ERROR_CODE = 0x0005
    RECEIVER_STATE = 0x0018
    RECEIVER_FREQUENCY = 0x0020
    RF_GAIN = 0x0038
    RF_FILTER = 0x0044
    AD_MODES = 0x008A
    IQ_OUTPUT_DATA_SAMPLE_RATE = 0x00B8
    DATA_OUTPUT_PACKET_SIZE = 0x00C4
    DATA_OUTPUT_UDP_IP_PORT = 0x00C5


@dataclass
class MessageHeader:
    """NetSDR message header (16 bits)"""
    msg_type: MsgType = MsgType.SET_CONTROL_ITEM
    length: int = HEADER_SIZE

    def encode(self) -> bytes:
        """Encode header to 2 bytes (little-endian)"""
        length = self.length
        if MsgType(self.msg_type).is_data_item:
            if length > MAX_DATA_ITEM_LENGTH:
                raise FrameError(
                    f"Data item length {length} exceeds {MAX_DATA_ITEM_LENGTH}")
            if length == MAX_DATA_ITEM_LENGTH:
                length = 0
            elif length > MAX_MESSAGE_LENGTH:
                raise FrameError(
                    f"Data item length {length} cannot be encoded; "
                    f"only {MAX_DATA_ITEM_LENGTH} is allowed above {MAX_MESSAGE_LENGTH}")
        elif length > MAX_MESSAGE_LENGTH:
            raise FrameError(
                f"Message length {length} exceeds {MAX_MESSAGE_LENGTH}")

        if length < 0:
            raise FrameError(f"Negative message length {length}")

        word = (int(self.msg_type) & 0x7) << 13
        word |= length & MAX_MESSAGE_LENGTH
        return struct.pack('<H', word)

    @classmethod
    def decode(cls, data: bytes) -> 'MessageHeader':
        """Decode header from 2 bytes (little-endian)"""
        if len(data) < HEADER_SIZE:
            raise FrameError(f"Header needs {HEADER_SIZE} bytes, got {len(data)}")

        word = struct.unpack('<H', data[:HEADER_SIZE])[0]
        msg_type = MsgType((word >> 13) & 0x7)
        length = word & MAX_MESSAGE_LENGTH
        if msg_type.is_data_item and length == 0:
            length = MAX_DATA_ITEM_LENGTH
        return cls(msg_type=msg_type, length=length)


@dataclass
class NetSdrMessage:
    """A decoded NetSDR message"""
    msg_type: MsgType
    item_code: Optional[int] = None       # Control items only
    sequence_number: Optional[int] = None  # Data items only
    body: bytes = b''

    @property
    def control_item(self) -> Optional[ControlItemCode]:
        """Known control item code, or None for data items and unknown codes"""
        if self.item_code is None:
            return None
        try:
            return ControlItemCode(self.item_code)
        except ValueError:
            return None


def to_le_bytes(value: int, size: int, signed: bool = False) -> bytes:
    """
    Encode an integer as exactly `size` little-endian bytes.

    Raises FrameError instead of silently dropping the high bytes when the
    value does not fit.
    """
    try:
        return int(value).to_bytes(size, 'little', signed=signed)
    except OverflowError:
        raise FrameError(f"Value {value} does not fit in {size} bytes") from None


def encode_control_item_message(
    msg_type: MsgType,
    item_code: Union[ControlItemCode, int],
    payload: bytes = b''
) -> bytes:
    """
    Build a control item message.

    Args:
        msg_type: Message type (SET / REQUEST / REQUEST_RANGE)
        item_code: 16-bit control item code
        payload: Item specific parameter bytes

    Returns:
        Encoded frame, header length equal to the frame length
    """
    if MsgType(msg_type).is_data_item:
        raise FrameError(f"{MsgType(msg_type).name} is not a control item type")

    payload = bytes(payload)
    length = HEADER_SIZE + ITEM_CODE_SIZE + len(payload)
    header = MessageHeader(msg_type=MsgType(msg_type), length=length)

    return header.encode() + to_le_bytes(item_code, ITEM_CODE_SIZE) + payload


def encode_control_item_set(
    item_code: Union[ControlItemCode, int],
    payload: bytes = b''
) -> bytes:
    """Build a SET control item message"""
    return encode_control_item_message(MsgType.SET_CONTROL_ITEM, item_code, payload)


def encode_control_item_request(
    item_code: Union[ControlItemCode, int],
    payload: bytes = b''
) -> bytes:
    """Build a REQUEST control item message"""
    return encode_control_item_message(MsgType.REQUEST_CONTROL_ITEM, item_code, payload)


def encode_data_item_message(
    msg_type: MsgType,
    sequence_number: int,
    samples: bytes
) -> bytes:
    """
    Build a data item message as the device sends it on the data channel.

    Args:
        msg_type: One of DATA_ITEM_0..DATA_ITEM_3
        sequence_number: 16-bit packet sequence number
        samples: Raw little-endian sample bytes
    """
    if not MsgType(msg_type).is_data_item:
        raise FrameError(f"{MsgType(msg_type).name} is not a data item type")

    samples = bytes(samples)
    length = HEADER_SIZE + SEQUENCE_NUMBER_SIZE + len(samples)
    header = MessageHeader(msg_type=MsgType(msg_type), length=length)

    return header.encode() + to_le_bytes(sequence_number, SEQUENCE_NUMBER_SIZE) + samples


def decode_message(frame: bytes) -> NetSdrMessage:
    """
    Decode one complete frame.

    Raises FrameError if the header length does not match the frame length
    or the frame is too short for its type. A bare header (length 2) decodes
    to a message with no item code and an empty body; from the device this
    is a NAK.
    """
    frame = bytes(frame)
    header = MessageHeader.decode(frame)

    if header.length != len(frame):
        raise FrameError(
            f"Header declares {header.length} bytes, frame has {len(frame)}")

    rest = frame[HEADER_SIZE:]
    if not rest:
        return NetSdrMessage(msg_type=header.msg_type)

    if header.msg_type.is_data_item:
        if len(rest) < SEQUENCE_NUMBER_SIZE:
            raise FrameError("Data item too short for a sequence number")
        sequence_number = struct.unpack('<H', rest[:SEQUENCE_NUMBER_SIZE])[0]
        return NetSdrMessage(
            msg_type=header.msg_type,
            sequence_number=sequence_number,
            body=rest[SEQUENCE_NUMBER_SIZE:]
        )

    if len(rest) < ITEM_CODE_SIZE:
        raise FrameError("Control item too short for an item code")
    item_code = struct.unpack('<H', rest[:ITEM_CODE_SIZE])[0]
    return NetSdrMessage(
        msg_type=header.msg_type,
        item_code=item_code,
        body=rest[ITEM_CODE_SIZE:]
    )


def samples_from_body(body: bytes, sample_size_bits: int = 16) -> np.ndarray:
    """
    Unpack little-endian signed samples from a data item body.

    Args:
        body: Sample bytes (sequence number already stripped)
        sample_size_bits: 8, 16, 24 or 32

    Returns:
        int32 numpy array, one entry per sample
    """
    if sample_size_bits not in (8, 16, 24, 32):
        raise FrameError(f"Unsupported sample size: {sample_size_bits} bits")

    sample_bytes = sample_size_bits // 8
    if len(body) % sample_bytes:
        raise FrameError(
            f"Body of {len(body)} bytes is not a whole number of "
            f"{sample_size_bits}-bit samples")

    if sample_size_bits == 8:
        return np.frombuffer(body, dtype=np.int8).astype(np.int32)
    if sample_size_bits == 16:
        return np.frombuffer(body, dtype='<i2').astype(np.int32)
    if sample_size_bits == 32:
        return np.frombuffer(body, dtype='<i4').astype(np.int32)

    # 24-bit: widen each 3-byte group to 4 bytes, then sign extend
    raw = np.frombuffer(body, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
    values = raw[:, 0] | (raw[:, 1] << 8) | (raw[:, 2] << 16)
    return np.where(values & 0x800000, values - (1 << 24), values).astype(np.int32)


def iq_from_samples(samples: np.ndarray, scale_factor: float = 1.0) -> np.ndarray:
    """
    Pair interleaved I/Q samples into complex values.

    Returns:
        complex64 numpy array of len(samples) // 2 values
    """
    samples = np.asarray(samples)
    if len(samples) % 2:
        raise FrameError("Interleaved IQ data needs an even sample count")

    pairs = samples.reshape(-1, 2).astype(np.float32) / scale_factor
    return (pairs[:, 0] + 1j * pairs[:, 1]).astype(np.complex64)


# =============================================================================
# Control item arguments
# =============================================================================

def sample_rate_args(rate_hz: int) -> bytes:
    """IQ output sample rate argument, 5 bytes little-endian"""
    return to_le_bytes(rate_hz, 5)


def rf_filter_args(mode: int = 0) -> bytes:
    """RF filter selection, 0 = automatic"""
    return to_le_bytes(mode, 2)


def ad_mode_args(channel: int = 0x00, mode: int = 0x03) -> bytes:
    """A/D modes: channel, then mode bits (dither + gain)"""
    return to_le_bytes(channel, 1) + to_le_bytes(mode, 1)


def receiver_state_start_args(
    data_mode: int = 0x80,
    capture_mode: int = 0x01,
    fifo_blocks: int = 100
) -> bytes:
    """
    Receiver state RUN argument.

    Defaults: complex IQ data, 16-bit FIFO capture mode, 100 blocks.
    """
    return (to_le_bytes(data_mode, 1) + b'\x02'
            + to_le_bytes(capture_mode, 1) + to_le_bytes(fifo_blocks, 1))


def receiver_state_stop_args() -> bytes:
    """Receiver state IDLE argument"""
    return bytes([0x00, 0x01, 0x00, 0x00])


def frequency_args(hz: int, channel: int) -> bytes:
    """Receiver frequency argument: channel byte, then 40-bit LE frequency"""
    return to_le_bytes(channel, 1) + to_le_bytes(hz, FREQUENCY_SIZE)


def hex_dump(data: bytes) -> str:
    """Space separated hex bytes for log lines"""
    return ' '.join(f'{b:02x}' for b in data)
