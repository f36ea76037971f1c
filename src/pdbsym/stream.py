from bisect import bisect_right
import io
import struct
import logging

from .globals import nil_stream_size, ceil_div
from .errors import MSFFormatError
from .device import BlockDevice


class BlockStream(io.RawIOBase):
    """
    A logical byte stream gathered from blocks scattered through the file.

    Blocks are taken in list order, not sorted, and each one contributes
    a span of the block size except the last which holds the remainder:

        blocks = [7, 3, 12], size = 2.5 blocks

        file    | 0 | 1 | 2 | 3 | 4 | 5 | 6 | 7 | ... | 12 |
        stream  |  block 7  |  block 3  | half of 12 |

    A size of 0 or the all-ones sentinel is an empty stream no matter which
    blocks are listed.  Reads never extend past the declared size.
    """

    def __init__(self, device: BlockDevice, blocks: list[int], size: int, label: str = 'stream'):
        super().__init__()
        self.device = device
        self.label = label
        self._pos = 0
        self._spans: list[tuple[int, int]] = []
        self._starts: list[int] = []

        if size in (0, nil_stream_size):
            self._size = 0
            return

        block_size = device.block_size
        n = ceil_div(size, block_size)
        if len(blocks) < n:
            raise MSFFormatError(
                device.fname, f"gather {label} from",
                f"{size} bytes need {n} blocks but only {len(blocks)} are listed"
            )
        last = size % block_size or block_size
        self._spans = [(b, block_size) for b in blocks[:n-1]] + [(blocks[n-1], last)]
        start = 0
        for (_, length) in self._spans:
            self._starts.append(start)
            start += length
        self._size = start
        assert self._size == size, f"BlockStream: spans cover {self._size} bytes not {size}"

    def __repr__(self):
        return f"BlockStream {self.label} {self._size} bytes in blocks {self.blocks}"

    @property
    def size(self) -> int:
        return self._size

    @property
    def blocks(self) -> list[int]:
        return [b for (b, _) in self._spans]

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            pos = offset
        elif whence == io.SEEK_CUR:
            pos = self._pos + offset
        elif whence == io.SEEK_END:
            pos = self._size + offset
        else:
            raise ValueError(f"BlockStream.seek: invalid whence {whence}")
        if pos < 0:
            raise ValueError(f"BlockStream.seek: negative position {pos}")
        self._pos = pos
        return pos

    def readinto(self, buf) -> int:
        n = min(len(buf), self._size - self._pos)
        if n <= 0:
            return 0
        out = memoryview(buf).cast('B')
        done = 0
        i = bisect_right(self._starts, self._pos) - 1
        while done < n:
            block, length = self._spans[i]
            skip = self._pos - self._starts[i]
            k = min(length - skip, n - done)
            out[done:done+k] = self.device.read_block(block, skip, k, what=self.label)
            done += k
            self._pos += k
            i += 1
        return n

    def read_exact(self, n: int, what: str) -> bytes:
        available = max(0, self._size - self._pos)
        if n > available:
            raise MSFFormatError(
                self.device.fname, f"read {what} from",
                f"expected {n} bytes at {self.label} offset {self._pos}, only {available} remain"
            )
        return self.read(n) if n else b''

    def read_struct(self, fmt: str, what: str) -> tuple:
        return struct.unpack(fmt, self.read_exact(struct.calcsize(fmt), what))

    def skip(self, n: int) -> int:
        logging.debug(f"{self.label}: skipping {n} bytes from offset {self._pos}")
        return self.seek(n, io.SEEK_CUR)
