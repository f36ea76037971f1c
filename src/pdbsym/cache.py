from dataclasses import replace
from pathlib import Path
import filecmp
import shutil
import logging

from .metadata import SymbolFile


def cache_path(symbol: SymbolFile, cache_dir: str | Path) -> Path:
    """
    Symbol servers index files as <name>/<guid+age>/<name>, e.g.

        cache/app.pdb/8C4B4A0C41F9E14AA6A4C0A5D1A3E2F71/app.pdb
    """
    name = Path(symbol.file_path).name
    return Path(cache_dir) / name / symbol.guid / name


def cache_symbol_file(symbol: SymbolFile, cache_dir: str | Path) -> SymbolFile:
    """Copy a symbol file into the cache, returning a copy that knows where it went"""
    dst = cache_path(symbol, cache_dir)
    if dst.exists() and filecmp.cmp(symbol.file_path, dst, shallow=False):
        logging.info(f"{dst} already cached")
    else:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy(symbol.file_path, dst)
        logging.debug(f"copied {symbol.file_path} to {dst}")
    return replace(symbol, cached_path=str(dst))
