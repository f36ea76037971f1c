"""Container block usage mapping and visualization."""
from typing import NamedTuple
from dataclasses import dataclass
from enum import Enum, auto
from io import StringIO
import logging

from rich.console import Console
from rich.text import Text

from .globals import ceil_div, u32_size
from .container import Container
from .bitvector import BitVector


class BlockUsage(Enum):
    """Categories of block usage in an MSF container."""
    SUPER = auto()      # Magic and super block (0)
    FREEMAP = auto()    # Free block map blocks, two per group
    DIRMAP = auto()     # List of stream directory blocks
    DIRECTORY = auto()  # Stream directory blocks
    STREAM = auto()     # Stream data blocks
    FREE = auto()       # Unreferenced blocks


class BlockConfig(NamedTuple):
    """Configuration for displaying a block type."""
    symbol: str
    type: str


BLOCK_CONFIG = {
    BlockUsage.SUPER: BlockConfig('!', 'super'),
    BlockUsage.FREEMAP: BlockConfig('@', 'freemap'),
    BlockUsage.DIRMAP: BlockConfig('%', 'dirmap'),
    BlockUsage.DIRECTORY: BlockConfig('/', 'directory'),
    BlockUsage.STREAM: BlockConfig('+', 'stream'),
    BlockUsage.FREE: BlockConfig('.', 'free'),
}


@dataclass
class BlockMap:
    """Mapping of block usage across a container."""
    total_blocks: int
    usage: list[BlockUsage]
    free_map: BitVector     # the container's own free map, for consistency checking

    def __post_init__(self):
        assert len(self.usage) == self.total_blocks, \
            f"BlockMap: usage length {len(self.usage)} != total_blocks {self.total_blocks}"

    def inconsistencies(self) -> list[int]:
        """blocks that are in use but which the free map claims are free"""
        return [
            i for (i, u) in enumerate(self.usage)
            if u != BlockUsage.FREE and self.free_map.get(i)
        ]

    def unreferenced(self) -> list[int]:
        """blocks nothing refers to but which the free map claims are used"""
        return [
            i for (i, u) in enumerate(self.usage)
            if u == BlockUsage.FREE and not self.free_map.get(i)
        ]


def walk_container(container: Container) -> BlockMap:
    """
    Categorize how each block in the container is used, based on the super block
    and the stream directory.  The free map itself is not consulted.
    """
    sb = container.super_block
    total_blocks = sb.num_blocks
    usage = [BlockUsage.FREE] * total_blocks

    def mark(block_idx: int, new_usage: BlockUsage, owner: str):
        if not 0 <= block_idx < total_blocks:
            logging.warning(f"{owner} refers to block {block_idx} beyond the last block {total_blocks - 1}")
            return
        if usage[block_idx] != BlockUsage.FREE:
            logging.warning(
                f"Block {block_idx} already marked as {usage[block_idx].name}, "
                f"but {owner} is also using it as {new_usage.name}"
            )
        usage[block_idx] = new_usage

    mark(0, BlockUsage.SUPER, 'super block')

    # each group of block_size blocks reserves blocks 1 and 2 for free maps
    for start in range(0, total_blocks, sb.block_size):
        for k in (1, 2):
            if start + k < total_blocks:
                mark(start + k, BlockUsage.FREEMAP, 'free map')

    n = ceil_div(sb.num_directory_blocks * u32_size, sb.block_size)
    for k in range(n):
        mark(sb.block_map_addr + k, BlockUsage.DIRMAP, 'stream block map')

    for block_idx in container.directory_blocks:
        mark(block_idx, BlockUsage.DIRECTORY, 'stream directory')

    for (i, s) in enumerate(container.streams):
        for block_idx in s.blocks:
            mark(block_idx, BlockUsage.STREAM, f"stream {i}")

    return BlockMap(total_blocks=total_blocks, usage=usage, free_map=container.free_map)


# background for each (in use, marked free) pairing of the walk and the free map
CONSISTENCY_STYLE = {
    (True, False): ("on green", "used"),
    (False, True): ("on grey23", "free"),
    (False, False): ("on yellow", "unreferenced but marked used"),
    (True, True): ("on red", "in use but marked free"),
}


def block_style(block_map: BlockMap, index: int) -> str:
    in_use = block_map.usage[index] != BlockUsage.FREE
    return CONSISTENCY_STYLE[(in_use, block_map.free_map.get(index))][0]


def _render(lines: list[Text]) -> str:
    buffer = StringIO()
    console = Console(file=buffer, force_terminal=True)
    for line in lines:
        console.print(line, soft_wrap=True)
    return buffer.getvalue()


def format_block_map(block_map: BlockMap, width: int = 64) -> str:
    """
    One row of symbols per `width` blocks, each coloured by whether the free
    map agrees with how the block is used.

    Full rows made of a single kind of block in a single colour, like the
    middle of a large stream or the free tail of the file, repeat often.
    After the first such row, repeats are collapsed into a count.  The last
    row is always shown.
    """
    lines: list[Text] = []
    run: tuple[BlockUsage, str] | None = None
    run_rows = 0

    for start in range(0, block_map.total_blocks, width):
        end = min(start + width, block_map.total_blocks)
        cells = [(block_map.usage[i], block_style(block_map, i)) for i in range(start, end)]
        uniform = cells[0] if end - start == width and len(set(cells)) == 1 else None

        if uniform is not None and uniform == run and end < block_map.total_blocks:
            run_rows += 1
            continue

        if run_rows:
            (usage, style) = run
            line = Text(" ...  ", style="white")
            line.append(f"{run_rows * width} more {BLOCK_CONFIG[usage].type} blocks".center(width), style=style)
            lines.append(line)
        run, run_rows = uniform, 0

        text = Text(f"{start:04X}: ", style="white")
        for (usage, style) in cells:
            text.append(BLOCK_CONFIG[usage].symbol, style=style)
        lines.append(text)

    return _render(lines)


def format_legend() -> str:
    symbols = Text("Symbols: ", style="bold")
    symbols.append(', '.join(f"{c.symbol} {c.type}" for c in BLOCK_CONFIG.values()))

    colors = Text("Colors: ", style="bold")
    for (i, (style, label)) in enumerate(CONSISTENCY_STYLE.values()):
        if i:
            colors.append(", ")
        colors.append(label, style=style)

    return _render([symbols, colors])
