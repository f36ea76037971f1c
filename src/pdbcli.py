from typing import Annotated
import logging
import typer
from typer import Option, Argument
from typer_di import TyperDI, Depends
from pathlib import Path

from pdbsym.errors import MSFError
from pdbsym.container import Container
from pdbsym.pdb import parse_pdb_file
from pdbsym.cache import cache_symbol_file
from pdbsym.blockmap import walk_container, format_block_map, format_legend


logging.basicConfig(level=logging.WARN)

app = TyperDI()

def get_verbose(verbose: Annotated[bool, Option("--verbose", "-v")] = False) -> bool:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    return verbose

def get_pdb_path(source: Annotated[Path, Argument]) -> Path:
    return source

def get_pdb_paths(sources: Annotated[list[Path], Argument]) -> list[Path]:
    return sources

def get_cache_dir(cache_dir: Annotated[Path, Option("--cache-dir", "-c")] = Path('symbols')) -> Path:
    return cache_dir


def open_container(source: Path) -> Container:
    try:
        return Container.from_file(source)
    except MSFError as e:
        print(e)
        raise typer.Exit(1)


@app.command()
def info(
        sources: list[Path] = Depends(get_pdb_paths),
        verbose: bool = Depends(get_verbose),
    ):
    """
    Show the symbol server GUID for each PDB file
    """
    failed = 0
    for source in sources:
        try:
            symbol = parse_pdb_file(source)
        except MSFError as e:
            print(f"Skipping {source}: {e}")
            failed += 1
            continue
        print(symbol)
        if verbose:
            print(f"    {len(symbol.source_file_paths)} source files")

    if failed:
        print(f"{failed} of {len(sources)} files could not be read")
        raise typer.Exit(1)


@app.command()
def sources(source: Path = Depends(get_pdb_path)):
    """
    List the source files referenced by a PDB file
    """
    try:
        symbol = parse_pdb_file(source)
    except MSFError as e:
        print(e)
        raise typer.Exit(1)

    for p in symbol.source_file_paths:
        print(p)


@app.command()
def streams(source: Path = Depends(get_pdb_path)):
    """
    Show the size and block list of every stream in the container
    """
    with open_container(source) as container:
        print(container)
        for (i, s) in enumerate(container.streams):
            print(f"{i:4d}: {s}")


@app.command()
def check(source: Path = Depends(get_pdb_path)):
    """
    Check that every block referenced by the container is marked used in its free map
    """
    with open_container(source) as container:
        usage = walk_container(container)

    bad = usage.inconsistencies()
    if bad:
        print(f"{len(bad)} blocks in use but marked free: " + ' '.join(str(i) for i in bad))
        raise typer.Exit(1)
    print(f"{source}: free map is consistent")
    unused = usage.unreferenced()
    if unused:
        print(f"{len(unused)} unreferenced blocks are marked used")


@app.command('map')
def block_map(
        source: Path = Depends(get_pdb_path),
        width: Annotated[int, Option("--width", "-w")] = 64,
    ):
    """
    Show a map of how each block in the container is used
    """
    with open_container(source) as container:
        print(container)
        print(format_block_map(walk_container(container), width=width), end='')
    print(format_legend(), end='')


@app.command()
def cache(
        sources: list[Path] = Depends(get_pdb_paths),
        cache_dir: Path = Depends(get_cache_dir),
    ):
    """
    Copy PDB files into a symbol server style cache directory
    """
    failed = 0
    for source in sources:
        try:
            symbol = cache_symbol_file(parse_pdb_file(source), cache_dir)
        except (MSFError, OSError) as e:
            print(f"Skipping {source}: {e}")
            failed += 1
            continue
        print(symbol.cached_path)

    if failed:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
