"""URL-safe base64 with a lenient decoder."""

from __future__ import annotations

import base64
import string

_VALID = frozenset(string.ascii_letters + string.digits + "-_=")


def encode(data: bytes) -> str:
    """Encode bytes with the URL-safe alphabet and ``=`` padding."""
    return base64.urlsafe_b64encode(bytes(data)).decode("ascii")


def _value(char: str) -> int:
    if "A" <= char <= "Z":
        return ord(char) - ord("A")
    if "a" <= char <= "z":
        return ord(char) - ord("a") + 26
    if "0" <= char <= "9":
        return ord(char) - ord("0") + 52
    if char == "-":
        return 62
    return 63


def _quads(chars: str):
    for start in range(0, len(chars), 4):
        yield chars[start:start + 4].ljust(4, "A")


def decode(text: str) -> bytes:
    """Decode ``text``, skipping any character outside the alphabet.

    A short final group is filled up with ``A``; output bytes are only
    suppressed where an explicit ``=`` stands.
    """
    chars = "".join(c for c in text if c in _VALID)
    out = bytearray()
    for c1, c2, c3, c4 in _quads(chars):
        b1, b2, b3, b4 = (_value(c) for c in (c1, c2, c3, c4))
        out.append(((b1 << 2) | (b2 >> 4)) & 0xFF)
        if c3 != "=":
            out.append((((b2 & 0xF) << 4) | (b3 >> 2)) & 0xFF)
        if c4 != "=":
            out.append((((b3 & 0x3) << 6) | b4) & 0xFF)
    return bytes(out)