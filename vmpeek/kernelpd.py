"""Heuristic search of a memory image for the kernel page directory (non-PAE)."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, Optional

from .memory import MemoryImage, OSType, get_bit

_MASK32 = 0xFFFFFFFF
_U32 = struct.Struct("<I")
_CHECKSUM_ENTRIES = 8


def _words(memory: bytes) -> Iterator[int]:
    usable = len(memory) - len(memory) % _U32.size
    return (value for (value,) in _U32.iter_unpack(memory[:usable]))


def bitcount(n: int) -> int:
    """Number of set bits in the low 32 bits of n."""
    return bin(n & _MASK32).count("1")


def valid_pd_entry(value: int, msize: int) -> bool:
    """Whether value could be a page directory entry in memory of msize bytes."""
    value &= _MASK32
    if value == _MASK32:
        return False
    if get_bit(value, 7):
        return (value & 0xFFE00000) <= msize
    return (value & 0xFFFFF000) <= msize


def pd_score(memory: Optional[bytes], msize: int) -> int:
    """Score a page by how many bits its non-zero entries share.

    Entries that cannot be page directory entries lower the score.
    """
    if memory is None:
        return 0
    matches0 = matches1 = 0
    started = False
    correction = 0
    values = _words(memory)
    for value in values:
        if not valid_pd_entry(value, msize):
            correction -= 1
        if value == 0:
            continue
        if not started:
            # Compare the first two non-zero entries; the second one is consumed here.
            for value2 in values:
                if value2 != 0:
                    matches0 = ~value & ~value2 & _MASK32
                    matches1 = value & value2
                    started = True
                    break
        else:
            matches0 &= ~value & _MASK32
            matches1 &= value
    return bitcount(matches0) + bitcount(matches1) + correction


def pd_checksum(page_offset: int, page_size: int, memory: Optional[bytes]) -> int:
    """Sum, modulo 2**32, of the first eight entries of the kernel region of a page."""
    if memory is None:
        return 0
    if page_offset == 0x80000000:
        start = page_size // 2
    elif page_offset == 0xC0000000:
        start = 3 * page_size // 4
    else:
        start = 0
    end = start + _CHECKSUM_ENTRIES * _U32.size
    if end > len(memory):
        raise ValueError("page too short for the kernel region checksum")
    return sum(_words(memory[start:end])) & _MASK32


def pd_selfref(memory: Optional[bytes], address: int) -> int:
    """Count the entries of a page that point back at the page's own frame."""
    if memory is None:
        return 0
    return sum(
        1 for value in _words(memory) if value != 0 and (value & 0xFFFFF000) == address
    )


@dataclass
class _Candidate:
    address: int
    score: int
    checksum: int = 0
    matches: int = 0
    selfref: int = 0


def _page(image: MemoryImage, address: int) -> bytes:
    page, _ = image.access_pa(address)
    return page


def find_kernel_pd(image: MemoryImage) -> int:
    """Guess the virtual address of the kernel page directory.

    Raises LookupError when no page survives the filters.
    """
    end = image.size
    candidates = []
    for address in range(0, end, image.page_size):
        score = pd_score(_page(image, address), end)
        if score > 0:
            candidates.append(_Candidate(address, score))

    for cand in candidates:
        cand.checksum = pd_checksum(image.page_offset, image.page_size, _page(image, cand.address))
    for cand in candidates:
        cand.matches = -1 + sum(
            1 for other in candidates if cand.checksum != 0 and other.checksum == cand.checksum
        )
    candidates = [cand for cand in candidates if cand.matches > 0]

    if image.os_type is OSType.WINDOWS:
        for cand in candidates:
            cand.selfref = pd_selfref(_page(image, cand.address), cand.address)
        candidates = [cand for cand in candidates if cand.selfref > 0]

    if not candidates:
        raise LookupError("no kernel page directory candidate found")
    return (candidates[0].address + image.page_offset) & _MASK32