from bitarray import bitarray
from bitarray.util import zeros


class BitVector:
    """
    A growable bit array that allocates in whole blocks.

    Bits are indexed little-endian within each byte, so bit 0 of byte 0
    is index 0 and bit 7 of byte 0 is index 7:

        byte 0:  7 6 5 4 3 2 1 0    byte 1:  15 14 13 12 11 10 9 8

    Reading past the end is not an error and just returns False.
    """

    def __init__(self, data: bytes | None = None, block_size: int = 1):
        assert block_size > 0, f"BitVector: bad block_size {block_size}"
        self.block_size = block_size
        self.bits = bitarray(endian='little')
        if data:
            self.extend(data)

    def extend(self, data: bytes):
        """append whole bytes to the end of the vector"""
        self.bits.frombytes(data)

    def __len__(self) -> int:
        return len(self.bits)

    def __repr__(self):
        return f"BitVector({len(self.bits) >> 3} bytes, {self.bits.count(1)} set)"

    def get(self, index: int) -> bool:
        if index < 0 or index >= len(self.bits):
            return False
        return bool(self.bits[index])

    def set(self, index: int, value: bool):
        assert index >= 0, f"BitVector.set: negative index {index}"
        if index >= len(self.bits):
            self.grow(index)
        self.bits[index] = value

    def grow(self, index: int):
        n = (index >> 3) + 1
        n = max(1, (n + self.block_size - 1) // self.block_size) * self.block_size
        extra = (n << 3) - len(self.bits)
        if extra > 0:
            self.bits.extend(zeros(extra, endian='little'))

    def bytes(self) -> bytes:
        return self.bits.tobytes()
