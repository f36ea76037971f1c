from typing import Literal
from pathlib import Path
from mmap import mmap, ACCESS_READ
import os
import logging

from .errors import MSFIOError, MSFFormatError


AccessT = Literal['h', 'r']


class BlockDevice:
    """
    Read-only view of a container file as an array of fixed size blocks.

    The block size isn't known until the super block has been read,
    so reads before that are made by absolute offset with read().
    Every read is recorded in an access log: 'h' for header reads by offset
    and 'r' for block reads by block index.
    """

    def __init__(self, fname: str | Path):
        self.fname = str(fname)
        self.block_size = 0
        self._access_log: list[tuple[AccessT, int]] = []
        try:
            self.f = open(fname, 'rb', buffering=0)
        except OSError as e:
            raise MSFIOError(fname, 'open', e.strerror or str(e)) from e
        try:
            n = os.fstat(self.f.fileno()).st_size
            # mmap refuses empty files, which we treat like any other short file
            self.mm: mmap | bytes = mmap(self.f.fileno(), 0, access=ACCESS_READ) if n else b''
        except OSError as e:
            self.f.close()
            raise MSFIOError(fname, 'map', e.strerror or str(e)) from e
        self.size = n

    def __repr__(self):
        blocks = f"{self.total_blocks} blocks of {self.block_size} bytes" if self.block_size else "unknown geometry"
        return f"BlockDevice on {self.fname} with {self.size} bytes, {blocks}"

    @property
    def total_blocks(self) -> int:
        return self.size // self.block_size if self.block_size else 0

    def close(self):
        try:
            if isinstance(self.mm, mmap):
                self.mm.close()
            self.f.close()
        except OSError as e:
            raise MSFIOError(self.fname, 'close', e.strerror or str(e)) from e

    def mark_session(self) -> int:
        return len(self._access_log)

    def get_access_log(self, access_types: str, mark=0) -> list[int]:
        return [i for (t, i) in self._access_log[mark:] if t in access_types]

    def read(self, offset: int, length: int, what: str) -> bytes:
        self._access_log.append(('h', offset))
        return self._read(offset, length, what)

    def read_block(self, block_index: int, offset: int = 0, length: int | None = None, what: str = 'block') -> bytes:
        assert self.block_size > 0, "read_block: block size not set"
        if length is None:
            length = self.block_size - offset
        assert 0 <= offset and offset + length <= self.block_size, \
            f"read_block({block_index}): span {offset}+{length} exceeds block size {self.block_size}"
        self._access_log.append(('r', block_index))
        return self._read(block_index * self.block_size + offset, length, what)

    def _read(self, start: int, length: int, what: str) -> bytes:
        try:
            data = self.mm[start:start+length]
        except (OSError, ValueError) as e:
            raise MSFIOError(self.fname, f"read {what} from", str(e)) from e
        if len(data) != length:
            raise MSFFormatError(
                self.fname, f"read {what} from",
                f"expected {length} bytes at offset {start}, got {len(data)}"
            )
        logging.debug(f"read {length} bytes of {what} at offset {start}")
        return data
