"""Decoding of big-endian unsigned integers stored in raw byte fields."""


def read_big_endian(data, size):
    """Return the unsigned integer stored big-endian in the first ``size`` bytes of ``data``."""
    if size < 0:
        raise ValueError(f"size must not be negative, got {size}")
    chunk = bytes(data[:size])
    if len(chunk) < size:
        raise ValueError(f"expected at least {size} bytes, got {len(chunk)}")
    return int.from_bytes(chunk, "big")