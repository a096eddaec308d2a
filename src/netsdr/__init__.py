"""
NetSDR Python Client Library

This library provides NetSDR message encoding/decoding, the TCP control
and UDP data channel clients, and a receiver session that ties them
together.
"""

__version__ = "0.1.0"

# Import main classes from submodules
from .messages import (
    # Enums
    MsgType,
    ControlItemCode,
    # Classes
    MessageHeader,
    NetSdrMessage,
    FrameError,
    # Functions
    encode_control_item_message,
    encode_control_item_set,
    encode_control_item_request,
    encode_data_item_message,
    decode_message,
    samples_from_body,
    iq_from_samples,
)

from .lifecycle import (
    CancellationToken,
    OperationCancelled,
    GuardOutcome,
    GuardResult,
    ListenerLifecycle,
)

from .tcp_client import (
    ControlChannelClient,
    NotConnectedError,
)

from .udp_client import DataChannelClient

from .client import (
    ClientConfig,
    NetSdrClient,
)

__all__ = [
    # Version
    '__version__',

    # Messages
    'MsgType',
    'ControlItemCode',
    'MessageHeader',
    'NetSdrMessage',
    'FrameError',
    'encode_control_item_message',
    'encode_control_item_set',
    'encode_control_item_request',
    'encode_data_item_message',
    'decode_message',
    'samples_from_body',
    'iq_from_samples',

    # Lifecycle
    'CancellationToken',
    'OperationCancelled',
    'GuardOutcome',
    'GuardResult',
    'ListenerLifecycle',

    # Channels
    'ControlChannelClient',
    'NotConnectedError',
    'DataChannelClient',

    # Session
    'ClientConfig',
    'NetSdrClient',
]
