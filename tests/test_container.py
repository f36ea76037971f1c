from pathlib import Path
import logging
import struct
import pytest

from pdbsym.blockmap import walk_container
from pdbsym.container import Container
from pdbsym.device import BlockDevice
from pdbsym.errors import MSFError, MSFIOError, MSFFormatError
from pdbsym.globals import msf_magic, nil_stream_size

from msfbuilder import MSFLayout


def test_open_streams(make_msf):
    streams = [b'a' * 700, b'', None, b'b' * 512, b'c' * 3]
    path = make_msf(streams)
    with Container.from_file(path) as container:
        assert container.super_block.block_size == 512
        assert container.num_streams == len(streams)
        assert [s.size for s in container.streams] == [700, 0, nil_stream_size, 512, 3]
        assert [len(s.blocks) for s in container.streams] == [2, 0, 0, 1, 1]
        for (i, data) in enumerate(streams):
            assert container.stream(i).read() == (data or b'')
        assert container.has_stream(0)
        assert not container.has_stream(1)
        assert not container.has_stream(2)
        assert not container.has_stream(len(streams))


def test_block_lists_not_sorted(make_msf):
    with Container.from_file(make_msf([b'x' * 2000])) as container:
        blocks = list(container.streams[0].blocks)
        assert blocks != sorted(blocks)


def test_stream_blocks_marked_used(make_msf):
    path = make_msf([b'a' * 1500, b'', b'b' * 100, None, b'c' * 1024])
    with Container.from_file(path) as container:
        assert len(container.free_map.bytes()) % container.super_block.block_size == 0
        for (i, stream) in enumerate(container.streams):
            for block in stream.blocks:
                assert not container.free_map.get(block), f"stream {i} block {block} is marked free"
        for block in container.directory_blocks:
            assert not container.free_map.get(block)


def test_free_map_shows_unused_blocks(tmp_path: Path):
    layout = MSFLayout([b'a' * 1500, b'b' * 10])
    path = layout.write(tmp_path / 'gaps.pdb')
    with Container.from_file(path) as container:
        for gap in layout.gaps:
            if gap < layout.num_blocks:
                assert container.free_map.get(gap)
        # bits past the last block are free too
        assert container.free_map.get(layout.num_blocks)


def test_minimal_directory(tmp_path: Path):
    """block size 4096, 10 blocks, a 16 byte directory holding three empty streams"""
    layout = MSFLayout([b'', b'', b''], block_size=4096, num_blocks=10)
    path = layout.write(tmp_path / 'tiny.pdb')
    with Container.from_file(path) as container:
        sb = container.super_block
        assert (sb.block_size, sb.num_blocks, sb.num_directory_bytes) == (4096, 10, 16)
        assert len(container.directory_blocks) == 1
        assert container.num_streams == 3
        assert all(s.is_empty and not s.blocks for s in container.streams)


def test_not_a_container(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / 'notes.txt'
    path.write_text("These are not the symbols you are looking for.\n" * 20)

    reads = []
    read = BlockDevice.read
    read_block = BlockDevice.read_block

    def spy_read(self, offset, length, what):
        reads.append(what)
        return read(self, offset, length, what)

    def spy_read_block(self, *args, **kwargs):
        reads.append('block')
        return read_block(self, *args, **kwargs)

    monkeypatch.setattr(BlockDevice, 'read', spy_read)
    monkeypatch.setattr(BlockDevice, 'read_block', spy_read_block)

    with pytest.raises(MSFFormatError) as e:
        Container.from_file(path)
    assert 'not a valid MSF container' in str(e.value)
    assert str(path) in str(e.value)
    assert reads == ['magic bytes']


@pytest.mark.parametrize('content', [b'', b'Microsoft C/C++', msf_magic])
def test_truncated_header(tmp_path: Path, content: bytes):
    path = tmp_path / 'short.pdb'
    path.write_bytes(content)
    with pytest.raises(MSFFormatError):
        Container.from_file(path)


def test_missing_file(tmp_path: Path):
    path = tmp_path / 'missing.pdb'
    with pytest.raises(MSFIOError) as e:
        Container.from_file(path)
    assert e.value.operation == 'open'
    assert isinstance(e.value.__cause__, OSError)


def test_truncated_directory(make_msf, tmp_path: Path):
    path = make_msf([b'a' * 3000, b'b' * 3000])
    data = path.read_bytes()
    # lose the directory, which is allocated last
    path.write_bytes(data[:len(data) - 3 * 512])
    with pytest.raises(MSFFormatError):
        Container.from_file(path)


@pytest.mark.parametrize('block_size,message', [
    (0, "not a power of two"),
    (1000, "not a power of two"),
    (0x4000, "exceeds file size"),
    (0x40000000, "exceeds file size"),
])
def test_bad_block_size(make_msf, block_size: int, message: str):
    path = make_msf([b'abc'])
    data = bytearray(path.read_bytes())
    data[len(msf_magic):len(msf_magic) + 4] = struct.pack("<I", block_size)
    path.write_bytes(bytes(data))
    with pytest.raises(MSFFormatError) as e:
        Container.from_file(path)
    assert message in str(e.value)


def test_huge_block_size_in_header_only(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """a bare header claiming 1 GiB blocks is rejected before any block is read"""
    path = tmp_path / 'huge.pdb'
    path.write_bytes(msf_magic + struct.pack("<6I", 0x40000000, 1, 1, 16, 0, 0))

    def no_block_reads(self, *args, **kwargs):
        raise AssertionError("read_block called")

    monkeypatch.setattr(BlockDevice, 'read_block', no_block_reads)
    with pytest.raises(MSFFormatError) as e:
        Container.from_file(path)
    assert "block size 1073741824 exceeds file size 56" in str(e.value)


def test_free_map_groups(tmp_path: Path):
    """with more blocks than one map block covers, each group's map block holds the next slice"""
    layout = MSFLayout([b'', b'a' * (64 * 200), b'b' * (64 * 150)], block_size=64, num_blocks=700)
    path = layout.write(tmp_path / 'groups.pdb')
    assert layout.is_free_map_block(65)

    with Container.from_file(path) as container:
        free_map = container.free_map
        assert free_map.bytes() == layout.free_map()
        assert len(free_map.bytes()) == 128
        # block 600 is in the second group and never allocated
        assert free_map.get(600)
        # the second group's own map blocks are in use
        assert not free_map.get(513)
        assert not free_map.get(514)
        # streams read across the reserved blocks
        assert container.stream(1).read() == b'a' * (64 * 200)
        assert container.stream(2).read() == b'b' * (64 * 150)

        usage = walk_container(container)
        assert usage.inconsistencies() == []
        assert usage.unreferenced() == []


def test_free_map_stride_past_end(tmp_path: Path, caplog: pytest.LogCaptureFixture):
    """a super block claiming more blocks than the file holds still decodes"""
    layout = MSFLayout([b'abc'], block_size=64)
    path = layout.write(tmp_path / 'short.pdb')
    data = bytearray(path.read_bytes())
    data[len(msf_magic) + 8:len(msf_magic) + 12] = struct.pack("<I", 5000)
    path.write_bytes(bytes(data))

    with caplog.at_level(logging.WARNING):
        with Container.from_file(path) as container:
            assert container.stream(0).read() == b'abc'
            # only the first group's map block lies within the file
            assert len(container.free_map.bytes()) == 64
            assert not container.free_map.get(5000)
    assert "free map stride at block 65 is beyond the last block" in caplog.text


def test_missing_stream_index(make_msf):
    with Container.from_file(make_msf([b'abc'])) as container:
        with pytest.raises(MSFFormatError):
            container.stream(1)


def test_close_failure_joins_earlier_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / 'bad.pdb'
    path.write_bytes(b'\x00' * 1024)
    close = BlockDevice.close

    def failing_close(self):
        close(self)
        raise MSFIOError(self.fname, 'close', 'disk on fire')

    monkeypatch.setattr(BlockDevice, 'close', failing_close)
    with pytest.raises(MSFFormatError) as e:
        Container.from_file(path)
    assert any('disk on fire' in note for note in e.value.__notes__)


def test_close_failure_after_success(make_msf, monkeypatch: pytest.MonkeyPatch):
    path = make_msf([b'abc'])
    close = BlockDevice.close

    def failing_close(self):
        close(self)
        raise MSFIOError(self.fname, 'close', 'disk on fire')

    with pytest.raises(MSFIOError):
        with Container.from_file(path) as container:
            monkeypatch.setattr(BlockDevice, 'close', failing_close)
            assert container.stream(0).read() == b'abc'


def test_error_message(tmp_path: Path):
    e = MSFFormatError(tmp_path / 'x.pdb', 'read superblock from', 'expected 24 bytes')
    assert isinstance(e, MSFError)
    assert str(e) == f"failed to read superblock from {tmp_path / 'x.pdb'}: expected 24 bytes"
