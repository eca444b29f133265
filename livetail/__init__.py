"""
livetail - incremental tail replication for append-only event collections.
"""

from .core.codec import FixedKey, GenericKey, decode_cursor, encode_cursor
from .core.config import VERSION as __version__
from .core.errors import DecodeFailure, InvalidCursor, LiveTailError, TransportFailure, UnsupportedCategory
from .core.schema import Event

__all__ = [
    'FixedKey',
    'GenericKey',
    'decode_cursor',
    'encode_cursor',
    'DecodeFailure',
    'InvalidCursor',
    'LiveTailError',
    'TransportFailure',
    'UnsupportedCategory',
    'Event'
]
