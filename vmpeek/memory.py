"""Page-level access to a saved guest memory image."""

from __future__ import annotations

import mmap
import os
import struct
from enum import IntEnum
from typing import BinaryIO, Optional, Union

_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")

Buffer = Union[bytes, bytearray, memoryview, mmap.mmap]


class OSType(IntEnum):
    """Operating system running in the guest."""

    LINUX = 0
    WINDOWS = 1


def get_bit(reg: int, bit: int) -> int:
    """Return 1 if the given bit of reg is set, else 0."""
    if bit < 0:
        raise ValueError(f"negative bit number {bit}")
    return (reg >> bit) & 1


class MemoryImage:
    """A guest's physical memory held in a file or buffer, read page by page."""

    def __init__(
        self,
        data: Buffer,
        page_shift: int = 12,
        pae: bool = False,
        os_type: OSType = OSType.LINUX,
        page_offset: int = 0,
        kpgd: int = 0,
    ) -> None:
        if page_shift <= 0:
            raise ValueError(f"page shift must be positive, got {page_shift}")
        self._data: Optional[Buffer] = data
        self.page_shift = page_shift
        self.page_size = 1 << page_shift
        self.pae = bool(pae)
        self.os_type = OSType(os_type)
        self.page_offset = page_offset
        self.kpgd = kpgd
        self.size = len(data)
        self._file: Optional[BinaryIO] = None
        self._mmap: Optional[mmap.mmap] = None

    @classmethod
    def from_file(cls, path: Union[str, "os.PathLike[str]"], **kwargs: object) -> "MemoryImage":
        """Open a memory image file read-only; keyword arguments go to the constructor."""
        handle = open(path, "rb")
        try:
            length = os.fstat(handle.fileno()).st_size
            mapped = mmap.mmap(handle.fileno(), 0, access=mmap.ACCESS_READ) if length else None
        except BaseException:
            handle.close()
            raise
        image = cls(mapped if mapped is not None else b"", **kwargs)  # type: ignore[arg-type]
        image._file = handle
        image._mmap = mapped
        return image

    def _buffer(self) -> Buffer:
        if self._data is None:
            raise ValueError("memory image is closed")
        return self._data

    def map_page(self, frame: int) -> bytes:
        """Return the contents of page frame number frame."""
        data = self._buffer()
        if frame < 0:
            raise ValueError(f"negative frame number {frame}")
        address = frame << self.page_shift
        if address >= self.size:
            raise ValueError(f"frame {frame:#x} lies beyond the end of the image")
        return bytes(data[address:address + self.page_size])

    def access_pa(self, paddr: int) -> tuple[bytes, int]:
        """Return the page holding a physical address and the address's offset in it."""
        return self.map_page(paddr >> self.page_shift), paddr & (self.page_size - 1)

    def access_ma(self, maddr: int) -> tuple[bytes, int]:
        """Return the page holding a machine address and the address's offset in it."""
        return self.map_page(maddr >> self.page_shift), maddr & (self.page_size - 1)

    @staticmethod
    def _unpack(fmt: struct.Struct, page: bytes, offset: int) -> int:
        if offset + fmt.size > len(page):
            raise ValueError(f"{fmt.size}-byte read at page offset {offset:#x} leaves the page")
        return fmt.unpack_from(page, offset)[0]

    def read_u32_mach(self, maddr: int) -> int:
        """Read a little-endian 32-bit value at a machine address."""
        return self._unpack(_U32, *self.access_ma(maddr))

    def read_u64_mach(self, maddr: int) -> int:
        """Read a little-endian 64-bit value at a machine address."""
        return self._unpack(_U64, *self.access_ma(maddr))

    def read_u32_phys(self, paddr: int) -> int:
        """Read a little-endian 32-bit value at a physical address."""
        return self._unpack(_U32, *self.access_pa(paddr))

    def read_u64_phys(self, paddr: int) -> int:
        """Read a little-endian 64-bit value at a physical address."""
        return self._unpack(_U64, *self.access_pa(paddr))

    def close(self) -> None:
        """Release the mapping and file behind the image."""
        self._data = None
        if self._mmap is not None:
            self._mmap.close()
            self._mmap = None
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "MemoryImage":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()