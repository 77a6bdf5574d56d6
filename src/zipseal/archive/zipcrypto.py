"""Traditional PKWARE ("ZipCrypto") encryption for pyzipper archives.

pyzipper reads the traditional scheme natively but only ships a WinZip AES
encrypter. :class:`LegacyZipFile` plugs :class:`TraditionalZipEncrypter` into
pyzipper's ``get_encrypter`` hook so both schemes share one writer.

The scheme is weak against known-plaintext attacks; it exists for
compatibility with tools that cannot open AES entries.
"""
from __future__ import annotations

import os
import zlib

import pyzipper
from pyzipper.zipfile_aes import BaseZipEncrypter

ZIP_CRYPTO = "zipcrypto"

_USE_DATA_DESCRIPTOR = 0x08
_HEADER_RANDOM_LEN = 11
_MASK32 = 0xFFFFFFFF
# Raw CRC-32 table; zlib.crc32 adds the pre and post inversion, undone here.
_CRC_TABLE = [zlib.crc32(bytes((i,)), _MASK32) ^ _MASK32 for i in range(256)]


class TraditionalZipEncrypter(BaseZipEncrypter):
    """Stream cipher state for one entry.

    The password check byte is taken from the entry's DOS time, which is
    what readers compare against when the data-descriptor flag is set.
    """

    def __init__(self, pwd: bytes) -> None:
        if not pwd:
            raise RuntimeError("ZipCrypto encryption requires a password.")
        self.key0 = 305419896
        self.key1 = 591751049
        self.key2 = 878082192
        for byte in pwd:
            self._update_keys(byte)
        self._check_byte = 0

    @staticmethod
    def _crc32(ch: int, crc: int) -> int:
        return (crc >> 8) ^ _CRC_TABLE[(crc ^ ch) & 0xFF]

    def _update_keys(self, c: int) -> None:
        self.key0 = self._crc32(c, self.key0)
        self.key1 = (self.key1 + (self.key0 & 0xFF)) & 0xFFFFFFFF
        self.key1 = (self.key1 * 134775813 + 1) & 0xFFFFFFFF
        self.key2 = self._crc32(self.key1 >> 24, self.key2)

    def update_zipinfo(self, zipinfo: pyzipper.ZipInfo) -> None:
        # CRC is unknown until the entry is closed, so the header check byte
        # must come from the modification time instead.
        zipinfo.flag_bits |= _USE_DATA_DESCRIPTOR
        self._check_byte = (zipinfo.get_dostime() >> 8) & 0xFF

    def finalize_zipinfo(self, zipinfo: pyzipper.ZipInfo) -> None:
        return None

    def encryption_header(self) -> bytes:
        return self.encrypt(os.urandom(_HEADER_RANDOM_LEN) + bytes([self._check_byte]))

    def encrypt(self, data: bytes) -> bytes:
        result = bytearray()
        append = result.append
        for c in data:
            k = self.key2 | 2
            append(c ^ (((k * (k ^ 1)) >> 8) & 0xFF))
            self._update_keys(c)
        return bytes(result)


class LegacyZipFile(pyzipper.AESZipFile):
    """``AESZipFile`` that can also write traditional PKWARE entries."""

    def get_encrypter(self) -> BaseZipEncrypter:
        if self.encryption == ZIP_CRYPTO:
            return TraditionalZipEncrypter(self.pwd)
        return super().get_encrypter()
