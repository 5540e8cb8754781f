"""Reading the streams of an MSF 7.00 (PDB) container."""

from __future__ import annotations

import struct
from typing import List, Tuple

MAGIC = b"Microsoft C/C++ MSF 7.00\r\n\x1aDS\x00\x00\x00"

_SUPERBLOCK = struct.Struct("<6I")
SUPERBLOCK_SIZE = len(MAGIC) + _SUPERBLOCK.size

# Stream size written for streams that are present in the directory but unused.
_NIL_STREAM_SIZE = 0xFFFFFFFF


class PdbFormatError(ValueError):
    """The data is not a readable MSF/PDB file."""


def is_magic_valid(data: bytes) -> bool:
    """Tell whether ``data`` begins with the MSF 7.00 magic."""
    return bytes(data[: len(MAGIC)]) == MAGIC


def _blocks_needed(size: int, block_size: int) -> int:
    return (size + block_size - 1) // block_size


class MsfFile:
    """The streams of an MSF container held in memory."""

    def __init__(self, data: bytes) -> None:
        data = bytes(data)
        if len(data) < SUPERBLOCK_SIZE or not is_magic_valid(data):
            raise PdbFormatError("bad MSF magic")
        (
            self.block_size,
            self.free_block_map_block,
            self.num_blocks,
            self.num_directory_bytes,
            _unknown,
            self.block_map_address,
        ) = _SUPERBLOCK.unpack_from(data, len(MAGIC))
        if self.block_size == 0:
            raise PdbFormatError("block size is zero")
        self._data = data
        self.streams: Tuple[bytes, ...] = tuple(self._read_streams())

    def __len__(self) -> int:
        return len(self.streams)

    def stream(self, index: int) -> bytes:
        """Return the contents of stream ``index``."""
        if not 0 <= index < len(self.streams):
            raise IndexError(f"stream {index} out of range (have {len(self.streams)})")
        return self.streams[index]

    def _block(self, block_id: int) -> bytes:
        start = block_id * self.block_size
        end = start + self.block_size
        if end > len(self._data):
            raise PdbFormatError(f"block {block_id} lies beyond the end of the file")
        return self._data[start:end]

    def _read_blocks(self, block_ids, size: int) -> bytes:
        return b"".join(self._block(block_id) for block_id in block_ids)[:size]

    def _read_directory(self) -> bytes:
        count = _blocks_needed(self.num_directory_bytes, self.block_size)
        map_block = self._block(self.block_map_address)
        if count * 4 > len(map_block):
            raise PdbFormatError("stream directory block map does not fit in one block")
        block_ids = struct.unpack_from(f"<{count}I", map_block, 0)
        return self._read_blocks(block_ids, self.num_directory_bytes)

    def _read_streams(self) -> List[bytes]:
        directory = self._read_directory()
        words = len(directory) // 4
        if words == 0:
            raise PdbFormatError("empty stream directory")
        values = struct.unpack_from(f"<{words}I", directory, 0)
        stream_count = values[0]
        if 1 + stream_count > words:
            raise PdbFormatError("stream directory is truncated")
        sizes = values[1 : 1 + stream_count]
        position = 1 + stream_count
        streams = []
        for size in sizes:
            if size == _NIL_STREAM_SIZE:
                size = 0
            count = _blocks_needed(size, self.block_size)
            block_ids = values[position : position + count]
            if len(block_ids) != count:
                raise PdbFormatError("stream directory is truncated")
            position += count
            streams.append(self._read_blocks(block_ids, size))
        return streams


def read_streams(data: bytes) -> List[bytes]:
    """Return the contents of every stream in an MSF container."""
    return list(MsfFile(data).streams)