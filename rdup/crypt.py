"""AES encryption of path names, one path element at a time."""

from __future__ import annotations

import os

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from . import b64
from .messages import msg

AES_BLOCK_SIZE = 16
KEY_SIZES = (16, 24, 32)
MAX_ELEMENT = 255


def _padded_size(length: int) -> int:
    return (length // AES_BLOCK_SIZE + 1) * AES_BLOCK_SIZE


class PathCipher:
    """Encrypts and decrypts path elements, remembering earlier results."""

    def __init__(self, key: bytes | str) -> None:
        if isinstance(key, str):
            key = key.encode()
        if len(key) not in KEY_SIZES:
            raise ValueError("AES key must be 16, 24 or 32 bytes")
        self._cipher = Cipher(algorithms.AES(bytes(key)), modes.ECB())
        self._encrypted: dict[str, str] = {}
        self._decrypted: dict[str, str] = {}

    def _run(self, data: bytes, encrypt: bool) -> bytes:
        context = self._cipher.encryptor() if encrypt else self._cipher.decryptor()
        return context.update(data) + context.finalize()

    def encrypt_element(self, element: str) -> str:
        """Encrypt and base64 encode one path element."""
        cached = self._encrypted.get(element)
        if cached is not None:
            return cached
        raw = os.fsencode(element)
        source = raw.ljust(_padded_size(len(raw)), b"\0")
        encoded = b64.encode(self._run(source, True))
        if len(encoded) > MAX_ELEMENT:
            msg(f"Encrypted base64 path length exceeds {MAX_ELEMENT} characters")
            return element
        self._encrypted[element] = encoded
        return encoded

    def decrypt_element(self, element: str) -> str:
        """Decode and decrypt one path element.

        An element that does not decrypt to plain ASCII is taken to have
        been unencrypted to begin with and is returned as it is.
        """
        cached = self._decrypted.get(element)
        if cached is not None:
            return cached
        crypted = b64.decode(element)
        if not crypted:
            return element
        source = crypted.ljust(_padded_size(len(crypted)), b"\0")
        plain = self._run(source, False).split(b"\0", 1)[0]
        result = plain.decode("ascii") if plain.isascii() else element
        self._decrypted[element] = result
        return result

    def _transform(self, path: str, element) -> str:
        absolute = path.startswith("/")
        parts = (path[1:] if absolute else path).split("/")
        last = len(parts) - 1
        result: str | None = None
        for index, part in enumerate(parts):
            # . and .. are left alone, except as the final element
            piece = part if index != last and part in (".", "..") else element(part)
            if result is not None:
                result = f"{result}/{piece}"
            else:
                result = f"/{piece}" if absolute else piece
        return result if result is not None else ""

    def encrypt_path(self, path: str) -> str:
        """Encrypt every element of ``path``."""
        return self._transform(path, self.encrypt_element)

    def decrypt_path(self, path: str) -> str:
        """Decrypt every element of ``path``."""
        return self._transform(path, self.decrypt_element)


def read_key(path: str | os.PathLike) -> bytes:
    """Read an AES key from the first line of ``path``.

    Keys longer than 32 bytes are truncated; other lengths than 16, 24
    or 32 raise ValueError.
    """
    with open(path, "rb") as handle:
        line = handle.readline()
    if not line:
        raise ValueError(f"Failed to read AES key from `{os.fsdecode(path)}'")
    if line.endswith(b"\n"):
        line = line[:-1]
    if len(line) > 32:
        msg("Maximum AES key size is 32 bytes, truncating!")
        return line[:32]
    if len(line) not in KEY_SIZES:
        raise ValueError("AES key must be 16, 24 or 32 bytes")
    return line