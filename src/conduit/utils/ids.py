"""Time-ordered request identifiers."""
import os
import threading
import time
import uuid

_lock = threading.Lock()
_last_ms = 0
_counter = 0

# 12 bits of rand_a are used as a per-millisecond counter
_COUNTER_MAX = 0xFFF


def new_request_id() -> uuid.UUID:
    """Generate a UUIDv7 (RFC 9562) identifier.

    Layout: 48-bit unix timestamp in milliseconds, version, a 12-bit counter
    that keeps ids generated within the same millisecond strictly increasing,
    variant, and 62 random bits. Ids sort in generation order within a
    process.
    """
    global _last_ms, _counter

    with _lock:
        now_ms = time.time_ns() // 1_000_000
        if now_ms > _last_ms:
            _last_ms = now_ms
            _counter = 0
        else:
            _counter += 1
            if _counter > _COUNTER_MAX:
                # Counter exhausted, borrow the next millisecond
                _last_ms += 1
                _counter = 0
        timestamp_ms = _last_ms
        counter = _counter

    rand_b = int.from_bytes(os.urandom(8), "big") & ((1 << 62) - 1)

    value = (timestamp_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= counter << 64
    value |= 0b10 << 62
    value |= rand_b
    return uuid.UUID(int=value)


def request_id_timestamp_ms(request_id: uuid.UUID) -> int:
    """Return the millisecond timestamp embedded in a UUIDv7."""
    return request_id.int >> 80
