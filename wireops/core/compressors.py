# SPDX-License-Identifier: MIT
"""Compression utilities."""
from __future__ import annotations

import importlib.util
import zlib
from abc import ABC, abstractmethod
from typing import ClassVar

snappy = None
if importlib.util.find_spec("snappy") is not None:
    import snappy

zstd = None
if importlib.util.find_spec("zstd") is not None:
    import zstd


class Compressor(ABC):
    """A compressor for OP_COMPRESSED messages."""

    name: ClassVar[str]
    id: ClassVar[int]

    @classmethod
    def available(cls) -> bool:
        """Check if the compressor is available.

        Returns:
            bool: True if the compressor is available, False otherwise.
        """
        return True

    @abstractmethod
    def compress(self, data: bytes) -> bytes:
        """Compress the given data.

        Args:
            data (bytes): The data to compress.

        Returns:
            bytes: The compressed data.
        """

    @abstractmethod
    def decompress(self, data: bytes) -> bytes:
        """Decompress the given data.

        Args:
            data (bytes): The data to decompress.

        Returns:
            bytes: The decompressed data.
        """


class NoCompression(Compressor):
    name = "noop"
    id = 0

    def compress(self, data: bytes) -> bytes:
        return data

    def decompress(self, data: bytes) -> bytes:
        return data


class Snappy(Compressor):
    name = "snappy"
    id = 1

    @classmethod
    def available(cls) -> bool:
        return snappy is not None

    def __init__(self) -> None:
        if snappy is None:
            err = "Snappy is not installed"
            raise ImportError(err)

        self.snappy = snappy

    def compress(self, data: bytes) -> bytes:
        return self.snappy.compress(data)  # type: ignore

    def decompress(self, data: bytes) -> bytes:
        return self.snappy.uncompress(data)  # type: ignore


class Zlib(Compressor):
    name = "zlib"
    id = 2

    def compress(self, data: bytes) -> bytes:
        return zlib.compress(data)

    def decompress(self, data: bytes) -> bytes:
        return zlib.decompress(data)


class Zstd(Compressor):
    name = "zstd"
    id = 3

    @classmethod
    def available(cls) -> bool:
        return zstd is not None

    def __init__(self) -> None:
        if zstd is None:
            err = "Zstd is not installed"
            raise ImportError(err)

        self.zstd = zstd

    def compress(self, data: bytes) -> bytes:
        return self.zstd.compress(data)

    def decompress(self, data: bytes) -> bytes:
        return self.zstd.decompress(data)


compressors: list[type[Compressor]] = [Snappy, Zstd, Zlib, NoCompression]

compression_registry = {c.name: c for c in compressors}

compression_lookup = {c.id: c for c in compressors}

# Commands that must never be sent compressed.
UNCOMPRESSIBLE_COMMANDS = frozenset(
    {
        "hello",
        "ismaster",
        "saslstart",
        "saslcontinue",
        "getnonce",
        "authenticate",
        "createuser",
        "updateuser",
    }
)


def pick_compressor(
    server_compressors: list[str], requested: list[str] | None = None
) -> type[Compressor] | None:
    """Pick the compressor to use on a connection.

    Args:
        server_compressors (list[str]): The compressors the server agreed to,
            in the server's order of preference.
        requested (list[str] | None, optional): The compressors the client asked
            for. Defaults to None, which accepts any available one.

    Returns:
        type[Compressor] | None: The compressor to use, None to send uncompressed.
    """
    for name in server_compressors:
        compressor = compression_registry.get(name)
        if compressor is None or not compressor.available():
            continue
        if requested is not None and name not in requested:
            continue
        return compressor
    return None


def list_compressors(requested: list[str] | None = None) -> list[str]:
    """List the available compressors.

    Args:
        requested (list[str] | None, optional): Only keep these names, in this order.

    Returns:
        list[str]: The available compressors.
    """
    available = [c.name for c in compressors if c.available() and c is not NoCompression]
    if requested is None:
        return available
    return [name for name in requested if name in available]
