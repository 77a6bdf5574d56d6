"""Password handling for archive operations.

The password is kept in a mutable ``bytearray`` so it can be wiped once the
archive library no longer needs it. The wrapper never shows its value in
``repr``/``str`` output, tracebacks or log records.
"""
from __future__ import annotations

import secrets
import string

PASSWORD_LENGTH = 16
PASSWORD_ALPHABET = string.ascii_letters + string.digits


class Password:
    """A password string that masks itself and zeroes its byte copy on close.

    Usage::

        with Password("correct-horse") as pw:
            zf.setpassword(pw.as_bytes())
        # byte copy is zeroed here
    """

    __slots__ = ("_buffer", "_closed")

    def __init__(self, value: str | bytes | bytearray) -> None:
        if isinstance(value, str):
            raw = value.encode("utf-8")
        else:
            raw = bytes(value)
        self._buffer = bytearray(raw)
        self._closed = False

    @classmethod
    def coerce(cls, value: Password | str | bytes | bytearray) -> Password:
        if isinstance(value, Password):
            return value
        return cls(value)

    def __enter__(self) -> Password:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "set"
        return f"Password(<{state}>)"

    __str__ = __repr__

    def __len__(self) -> int:
        return len(self._buffer)

    def __bool__(self) -> bool:
        return len(self._buffer) > 0

    @property
    def closed(self) -> bool:
        return self._closed

    def as_bytes(self) -> bytes:
        if self._closed:
            raise ValueError("Password has been wiped")
        return bytes(self._buffer)

    def reveal(self) -> str:
        """Return the password as text for libraries that only accept ``str``."""
        return self.as_bytes().decode("utf-8", errors="surrogateescape")

    def close(self) -> None:
        """Zero the byte copy. Safe to call more than once."""
        secure_zeroize(self._buffer)
        self._closed = True


def secure_zeroize(data: bytearray | None) -> None:
    """Zero a bytearray in-place."""
    if data is None:
        return
    length = len(data)
    for i in range(length):
        data[i] = 0
    if length > 0:
        _ = data[0]


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    """Return ``length`` random alphanumeric characters from a CSPRNG."""
    if length <= 0:
        raise ValueError("Password length must be positive")
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))
