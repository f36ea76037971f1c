from pathlib import Path
from typing import Callable
import pytest

from msfbuilder import MSFLayout, pdb_stream, dbi_stream, unique_id, source_files


@pytest.fixture
def make_msf(tmp_path: Path) -> Callable[..., Path]:
    def make(streams: list[bytes | None], name: str = 'test.pdb', mark_free: tuple[int, ...] = (), **kwargs) -> Path:
        return MSFLayout(streams, **kwargs).write(tmp_path / name, mark_free)
    return make


@pytest.fixture
def app_pdb(make_msf) -> Path:
    """a PDB with the usual stream layout and a DBI stream spanning several blocks"""
    return make_msf(
        [b'', pdb_stream(unique_id, age=1), b'\x00' * 56, dbi_stream(0x1a, source_files)],
        name='app.pdb',
        block_size=128,
    )


@pytest.fixture
def no_dbi_pdb(make_msf) -> Path:
    return make_msf([b'', pdb_stream(unique_id, age=3), None, b''], name='nodbi.pdb')
