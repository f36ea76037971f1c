from typing import ClassVar, Self
from dataclasses import dataclass, field
import struct


def format_guid(unique_id: bytes) -> str:
    """
    Render a 16 byte GUID the way symbol servers index it: the first three
    groups are little-endian integers, the final eight bytes are taken as-is,
    all in upper case hex without separators.
    """
    assert len(unique_id) == 16, f"format_guid: expected 16 bytes, got {len(unique_id)}"
    (d1, d2, d3) = struct.unpack("<IHH", unique_id[:8])
    return f"{d1:08X}{d2:04X}{d3:04X}" + unique_id[8:].hex().upper()


@dataclass(frozen=True, kw_only=True)
class PdbInfoHeader:
    """https://llvm.org/docs/PDB/PdbStream.html#stream-header"""
    _struct: ClassVar = "<III16s"
    SIZE: ClassVar = 28

    version: int
    signature: int
    age: int
    unique_id: bytes

    @property
    def guid(self) -> str:
        return format_guid(self.unique_id)

    @classmethod
    def unpack(cls, buf: bytes) -> Self:
        (version, signature, age, unique_id) = struct.unpack(cls._struct, buf)
        return cls(version=version, signature=signature, age=age, unique_id=unique_id)


@dataclass(frozen=True, kw_only=True)
class DbiHeader:
    """
    https://llvm.org/docs/PDB/DbiStream.html#stream-header

    The header is followed by substreams in this order, each sized by the
    header: module info, section contributions, section map, file info,
    type server map, edit-and-continue, optional debug header.
    """
    _struct: ClassVar = "<iII6H5iI2i2HI"
    SIZE: ClassVar = 64

    version_signature: int
    version_header: int
    age: int
    global_stream_index: int
    build_number: int
    public_stream_index: int
    pdb_dll_version: int
    sym_record_stream: int
    pdb_dll_rbld: int
    mod_info_size: int
    section_contribution_size: int
    section_map_size: int
    source_info_size: int
    type_server_map_size: int
    mfc_type_server_index: int
    optional_dbg_header_size: int
    ec_substream_size: int
    flags: int
    machine: int
    padding: int

    @property
    def file_info_offset(self) -> int:
        """offset of the file info substream relative to the end of the header"""
        return self.mod_info_size + self.section_contribution_size + self.section_map_size

    @classmethod
    def unpack(cls, buf: bytes) -> Self:
        (
            version_signature,
            version_header,
            age,
            global_stream_index,
            build_number,
            public_stream_index,
            pdb_dll_version,
            sym_record_stream,
            pdb_dll_rbld,
            mod_info_size,
            section_contribution_size,
            section_map_size,
            source_info_size,
            type_server_map_size,
            mfc_type_server_index,
            optional_dbg_header_size,
            ec_substream_size,
            flags,
            machine,
            padding,
        ) = struct.unpack(cls._struct, buf)
        return cls(
            version_signature=version_signature,
            version_header=version_header,
            age=age,
            global_stream_index=global_stream_index,
            build_number=build_number,
            public_stream_index=public_stream_index,
            pdb_dll_version=pdb_dll_version,
            sym_record_stream=sym_record_stream,
            pdb_dll_rbld=pdb_dll_rbld,
            mod_info_size=mod_info_size,
            section_contribution_size=section_contribution_size,
            section_map_size=section_map_size,
            source_info_size=source_info_size,
            type_server_map_size=type_server_map_size,
            mfc_type_server_index=mfc_type_server_index,
            optional_dbg_header_size=optional_dbg_header_size,
            ec_substream_size=ec_substream_size,
            flags=flags,
            machine=machine,
            padding=padding,
        )


@dataclass(frozen=True, kw_only=True)
class ModuleInfo:
    age: int
    file_paths: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, kw_only=True)
class SymbolFile:
    """What we learned about one symbol file."""
    file_path: str
    guid: str
    source_file_paths: tuple[str, ...] = field(default_factory=tuple)
    cached_path: str = ''

    def __repr__(self):
        s = f"{self.file_path} {self.guid}"
        if self.cached_path:
            s += f" -> {self.cached_path}"
        return s
