"""ID generation utilities for agent-flow.

History entries need identifiers that sort in creation order, so they use
the UUIDv7 layout (48-bit millisecond timestamp followed by random bits).
"""

import os
import time
import uuid


def generate_uuid() -> str:
    """Generate a random UUID v4 with dashes.

    Returns:
        UUID v4 string
    """
    return str(uuid.uuid4())


def generate_uuid7() -> str:
    """Generate a time-ordered UUID v7.

    Returns:
        UUID v7 string; lexical order follows creation time at millisecond
        resolution
    """
    timestamp_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")

    value = (timestamp_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76  # version
    value |= ((rand >> 62) & 0xFFF) << 64  # rand_a, 12 bits
    value |= 0b10 << 62  # RFC 4122 variant
    value |= rand & ((1 << 62) - 1)  # rand_b
    return str(uuid.UUID(int=value))


def generate_session_id() -> str:
    """Generate a unique session identifier.

    Returns:
        Time-ordered UUID string
    """
    return generate_uuid7()


def generate_history_id() -> str:
    """Generate a history entry identifier.

    Returns:
        Time-ordered UUID string
    """
    return generate_uuid7()


def is_valid_uuid(value: str) -> bool:
    """Check whether a string parses as a UUID.

    Args:
        value: String to validate

    Returns:
        True if valid
    """
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True
