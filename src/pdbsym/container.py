from typing import Self
from pathlib import Path
import logging

from .globals import msf_magic, super_block_offset, u32_size
from .errors import MSFError, MSFFormatError
from .device import BlockDevice
from .bitvector import BitVector
from .blocks import SuperBlock, StreamDescriptor, StreamDirectory
from .stream import BlockStream


class Container:
    """
    An MSF container is a tiny copy-on-write file system.

    +---------+---------+---------+-----   -----+---------+-----   ---+---------+
    | Block 0 | Block 1 | Block 2 |             | Block k |           | Block n |
    | Magic + | Free    | Free    |  Stream     | Dir     |  Stream   |  ...    |
    | Super   | Map A   | Map B   |  data ...   | block   |  data ... |         |
    |         |         |         |             | list    |           |         |
    +---------+---------+---------+-----   -----+---------+-----   ---+---------+

    The super block names the free map block and the block holding the list of
    directory blocks.  The directory, gathered from those blocks, lists the size
    and blocks of every stream.  Free map groups repeat every block_size blocks.
    """

    def __init__(self, device: BlockDevice):
        self.device = device
        fname = device.fname

        magic = device.read(0, len(msf_magic), 'magic bytes')
        if magic != msf_magic:
            raise MSFFormatError(fname, 'validate', "not a valid MSF container - magic bytes do not match")

        self.super_block = SuperBlock.unpack(
            device.read(super_block_offset, SuperBlock.SIZE, 'super block')
        )
        sb = self.super_block
        if sb.block_size == 0 or sb.block_size & (sb.block_size - 1):
            raise MSFFormatError(fname, 'validate', f"block size {sb.block_size} is not a power of two")
        if sb.block_size > device.size:
            raise MSFFormatError(fname, 'validate', f"block size {sb.block_size} exceeds file size {device.size}")
        device.block_size = sb.block_size

        self.free_map = self._read_free_map()

        dir_blocks = StreamDirectory.unpack_block_list(
            device.read(
                sb.block_map_addr * sb.block_size,
                sb.num_directory_blocks * u32_size,
                'stream block map',
            )
        )
        self.directory_blocks = dir_blocks
        dir_stream = BlockStream(device, dir_blocks, sb.num_directory_bytes, label='stream directory')
        self.directory = StreamDirectory.read(dir_stream, sb.block_size)
        logging.debug(f"{fname}: {len(self.directory)} streams, block size {sb.block_size}")

    def __repr__(self):
        sb = self.super_block
        free = self.free_map.bits[:sb.num_blocks].count(1)
        return f"MSF container {self.device.fname} has {len(self.streams)} streams " \
            f"in {sb.num_blocks} blocks of {sb.block_size} bytes, {free} free"

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc, tb):
        release(self.device, exc)

    @classmethod
    def from_file(cls, source: str | Path) -> Self:
        device = BlockDevice(source)
        try:
            return cls(device)
        except BaseException as e:
            release(device, e)
            raise

    @property
    def streams(self) -> tuple[StreamDescriptor, ...]:
        return self.directory.streams

    @property
    def num_streams(self) -> int:
        return len(self.directory)

    def has_stream(self, index: int) -> bool:
        return 0 <= index < len(self.streams) and not self.streams[index].is_empty

    def stream(self, index: int) -> BlockStream:
        if not 0 <= index < len(self.streams):
            raise MSFFormatError(
                self.device.fname, f"open stream {index} of", f"directory only has {len(self.streams)} streams"
            )
        s = self.streams[index]
        return BlockStream(self.device, list(s.blocks), s.size, label=f"stream {index}")

    def _read_free_map(self) -> BitVector:
        """
        Each group of block_size blocks starts with two free map blocks,
        the active one being named by the super block.  The k-th active map
        block carries bytes [k*block_size, (k+1)*block_size) of the bitmap.

        The bitmap is only used for validation, so the map stops at the first
        stride beyond the end of the file, with a warning.  Bits past the end
        of the map read as zero.
        """
        sb = self.super_block
        free_map = BitVector(block_size=sb.block_size)
        for i in range(0, sb.free_map_length, sb.block_size):
            block = sb.free_block_map_block + i
            if block >= self.device.total_blocks:
                logging.warning(
                    f"{self.device.fname}: free map stride at block {block} is beyond "
                    f"the last block {self.device.total_blocks - 1}"
                )
                break
            free_map.extend(self.device.read_block(block, what='free block map'))
        logging.debug(f"read {len(free_map) >> 3} bytes of free map covering {sb.num_blocks} blocks")
        return free_map


def release(device: BlockDevice, error: BaseException | None = None):
    """
    Close the device.  If we're already handling an error, a failure to close
    is attached to that error rather than replacing it.
    """
    try:
        device.close()
    except MSFError as close_error:
        if error is None:
            raise
        error.add_note(f"while handling that error, failed to close file - {close_error}")

