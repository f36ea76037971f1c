from typing import Final

# "Microsoft C/C++ MSF 7.00\r\n" followed by 0x1a 'D' 'S' and three NULs
msf_magic: Final                = b'Microsoft C/C++ MSF 7.00\r\n\x1aDS\x00\x00\x00'
super_block_offset: Final       = len(msf_magic)

# stream lengths of 0 or all-ones describe a stream with no data
nil_stream_size: Final          = 0xFFFFFFFF

# conventional stream numbers
pdb_stream_index: Final         = 1
dbi_stream_index: Final         = 3

u16_size: Final                 = 2
u32_size: Final                 = 4


def ceil_div(n: int, d: int) -> int:
    return (n + d - 1) // d
