from typing import ClassVar, Self
from dataclasses import dataclass
import struct
import logging

from .globals import nil_stream_size, ceil_div, u32_size
from .stream import BlockStream


@dataclass(frozen=True, kw_only=True)
class SuperBlock:
    """
    The super block follows the magic bytes at the start of block 0.

        offset  field
        0x20    block_size              bytes per block, a power of two
        0x24    free_block_map_block    first free map block, 1 or 2
        0x28    num_blocks              blocks in the file
        0x2C    num_directory_bytes     size of the stream directory
        0x30    unknown
        0x34    block_map_addr          block holding the directory's block list
    """
    _struct: ClassVar = "<6I"
    SIZE: ClassVar = 24

    block_size: int
    free_block_map_block: int
    num_blocks: int
    num_directory_bytes: int
    unknown: int = 0
    block_map_addr: int

    @property
    def num_directory_blocks(self) -> int:
        return ceil_div(self.num_directory_bytes, self.block_size)

    @property
    def free_map_length(self) -> int:
        """bytes needed for one bit per block, rounded up to whole blocks"""
        return ceil_div(ceil_div(self.num_blocks, 8), self.block_size) * self.block_size

    @classmethod
    def unpack(cls, buf: bytes) -> Self:
        (
            block_size,
            free_block_map_block,
            num_blocks,
            num_directory_bytes,
            unknown,
            block_map_addr,
        ) = struct.unpack(cls._struct, buf)
        return cls(
            block_size=block_size,
            free_block_map_block=free_block_map_block,
            num_blocks=num_blocks,
            num_directory_bytes=num_directory_bytes,
            unknown=unknown,
            block_map_addr=block_map_addr,
        )


@dataclass(frozen=True, kw_only=True)
class StreamDescriptor:
    size: int
    blocks: tuple[int, ...] = ()

    def __repr__(self):
        if self.is_empty:
            return "<empty>"
        return f"{self.size:d} bytes in {len(self.blocks)} blocks: " + ' '.join(f"{b:d}" for b in self.blocks)

    @property
    def is_empty(self) -> bool:
        return self.size in (0, nil_stream_size)

    @staticmethod
    def block_count(size: int, block_size: int) -> int:
        return 0 if size == nil_stream_size else ceil_div(size, block_size)


@dataclass(frozen=True, kw_only=True)
class StreamDirectory:
    """
    The stream directory is itself a stream, laid out as

        u32 num_streams
        u32 stream_sizes[num_streams]
        u32 stream_blocks[num_streams][ceil(stream_sizes[i] / block_size)]

    where each stream's block list appears in stream order.
    """
    streams: tuple[StreamDescriptor, ...]

    def __len__(self):
        return len(self.streams)

    @classmethod
    def read(cls, stream: BlockStream, block_size: int) -> Self:
        what = 'stream directory'
        (num_streams,) = stream.read_struct("<I", what)
        sizes = stream.read_struct(f"<{num_streams}I", what)
        logging.debug(f"stream directory lists {num_streams} streams")
        streams = []
        for size in sizes:
            n = StreamDescriptor.block_count(size, block_size)
            blocks = stream.read_struct(f"<{n}I", what)
            streams.append(StreamDescriptor(size=size, blocks=tuple(blocks)))
        rest = stream.size - stream.tell()
        if rest:
            logging.debug(f"stream directory has {rest} unused bytes")
        return cls(streams=tuple(streams))

    @staticmethod
    def unpack_block_list(buf: bytes) -> list[int]:
        n = len(buf) // u32_size
        return list(struct.unpack(f"<{n}I", buf[:n*u32_size]))
