from pathlib import Path
import logging

from .globals import pdb_stream_index, dbi_stream_index, u16_size, u32_size
from .errors import MSFFormatError
from .container import Container
from .stream import BlockStream
from .metadata import PdbInfoHeader, DbiHeader, ModuleInfo, SymbolFile


def read_pdb_info(stream: BlockStream) -> PdbInfoHeader:
    return PdbInfoHeader.unpack(stream.read_exact(PdbInfoHeader.SIZE, 'PDB header'))


def read_dbi_info(stream: BlockStream) -> ModuleInfo:
    """
    Recover the age and source file names from the DBI stream.

    We skip straight to the file info substream,
    https://llvm.org/docs/PDB/DbiStream.html#file-info-substream

        u16 num_modules
        u16 num_source_files            (ignored, see below)
        u16 mod_indices[num_modules]
        u16 mod_file_counts[num_modules]
        u32 file_name_offsets[sum(mod_file_counts)]
        char names[]                    NUL terminated strings

    The num_source_files field is too narrow for large programs, so the real
    count is the sum of mod_file_counts.  Rather than chase the name offsets
    we read the names buffer in order.
    """
    what = 'DBI stream'
    header = DbiHeader.unpack(stream.read_exact(DbiHeader.SIZE, what))
    if min(header.mod_info_size, header.section_contribution_size,
           header.section_map_size, header.source_info_size) < 0:
        raise MSFFormatError(stream.device.fname, f"read {what} from", "negative substream size in header")

    start = stream.skip(header.file_info_offset)
    logging.debug(f"DBI file info substream at offset {start}, {header.source_info_size} bytes")

    (num_modules, _) = stream.read_struct("<HH", what)
    stream.skip(num_modules * u16_size)
    counts = stream.read_struct(f"<{num_modules}H", what)
    num_files = sum(counts)
    stream.skip(num_files * u32_size)
    logging.debug(f"DBI lists {num_files} source files across {num_modules} modules")

    remaining = header.source_info_size - (stream.tell() - start)
    if remaining < 0:
        raise MSFFormatError(
            stream.device.fname, f"read {what} from",
            f"file info substream is {header.source_info_size} bytes but its tables need {stream.tell() - start}"
        )
    names = stream.read_exact(remaining, 'DBI file names')

    parts = names.split(b'\x00')
    # whatever follows the last NUL is not a complete name
    if parts[-1]:
        logging.debug(f"DBI names buffer has {len(parts[-1])} unterminated trailing bytes")
    file_paths = tuple(p.decode('utf-8', errors='replace') for p in parts[:-1])

    return ModuleInfo(age=header.age, file_paths=file_paths)


def parse_pdb_file(file_path: str | Path) -> SymbolFile:
    """
    Read the GUID and source file list from a PDB file.

    The PDB stream carries an age too, but debuggers and symbol servers
    use the one from the DBI stream, so we do the same.  Some PDBs have no
    DBI stream, in which case the GUID has no age suffix and there are no
    source files.
    """
    file_path = str(file_path)
    with Container.from_file(file_path) as container:
        info = read_pdb_info(container.stream(pdb_stream_index))
        guid = info.guid
        paths: tuple[str, ...] = ()

        if container.has_stream(dbi_stream_index):
            dbi = read_dbi_info(container.stream(dbi_stream_index))
            guid += f"{dbi.age:x}"
            paths = dbi.file_paths
        else:
            logging.info(f"{file_path}: no DBI stream, guid has no age")

    return SymbolFile(file_path=file_path, guid=guid, source_file_paths=paths)
