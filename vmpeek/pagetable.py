"""Virtual to physical address translation through x86 page tables."""

from __future__ import annotations

import logging
import struct
from enum import Enum

from .memory import MemoryImage, OSType, get_bit

log = logging.getLogger(__name__)

_MASK32 = 0xFFFFFFFF
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")


class PageState(Enum):
    """What a non-present page table entry says about its page."""

    PAGEFILE = "pagefile"
    DEMAND_ZERO = "demand zero"
    TRANSITION = "transition"
    PROTOTYPE = "prototype"
    ZERO = "zero"
    UNKNOWN = "unknown"


def entry_present(entry: int) -> int:
    """Return 1 if the entry's present bit is set."""
    return get_bit(entry, 0)


def page_size_flag(entry: int) -> int:
    """Return 1 if the entry maps a large page."""
    return get_bit(entry, 7)


def _pdpt_base(cr3: int) -> int:
    return cr3 & 0xFFFFFFE0


def _pdpi_index(vaddr: int) -> int:
    return (vaddr >> 30) * 8


def pgd_index(pae: bool, address: int) -> int:
    """Byte offset of the page directory entry for address."""
    if not pae:
        return ((address >> 22) & 0x3FF) * 4
    return ((address >> 21) & 0x1FF) * 8


def pte_index(pae: bool, address: int) -> int:
    """Byte offset of the page table entry for address."""
    if not pae:
        return ((address >> 12) & 0x3FF) * 4
    return ((address >> 12) & 0x1FF) * 8


def large_paddr(pae: bool, vaddr: int, pgd_entry: int) -> int:
    """Physical address of vaddr inside the large page mapped by pgd_entry."""
    pgd_entry &= _MASK32
    if not pae:
        return (pgd_entry & 0xFFC00000) | (vaddr & 0x3FFFFF)
    return (pgd_entry & 0xFFE00000) | (vaddr & 0x1FFFFF)


def classify_nonpresent(entry: int, is_pde: bool) -> PageState:
    """Interpret a non-present Windows page table entry."""
    transition = get_bit(entry, 11)
    prototype = get_bit(entry, 10)
    if not transition and not prototype:
        pfnum = (entry >> 1) & 0xF
        pfframe = entry & 0xFFFFF000
        if pfnum != 0 and pfframe != 0:
            return PageState.PAGEFILE
        if pfnum == 0 and pfframe == 0:
            return PageState.DEMAND_ZERO
        return PageState.UNKNOWN
    if transition and not prototype:
        return PageState.TRANSITION
    if not is_pde and prototype:
        return PageState.PROTOTYPE
    if entry == 0:
        return PageState.ZERO
    return PageState.UNKNOWN


def _note_nonpresent(image: MemoryImage, entry: int, is_pde: bool) -> None:
    if image.os_type is not OSType.WINDOWS:
        return
    state = classify_nonpresent(entry, is_pde)
    if state is PageState.PAGEFILE:
        log.debug(
            "page file = %d, frame = 0x%.8x", (entry >> 1) & 0xF, entry & 0xFFFFF000
        )
    else:
        log.debug("non-present entry 0x%.8x: %s", entry, state.value)


def v2p_nopae(image: MemoryImage, cr3: int, vaddr: int) -> int:
    """Translate vaddr with two-level 32-bit page tables; 0 if unmapped."""
    paddr = 0
    log.debug("lookup vaddr = 0x%.8x, cr3 = 0x%.8x", vaddr, cr3)
    pgd_entry = ((cr3 & 0xFFFFF000) + pgd_index(False, vaddr)) & _MASK32
    pgd = image.read_u32_mach(pgd_entry)
    log.debug("pgd = 0x%.8x", pgd)
    if entry_present(pgd):
        if page_size_flag(pgd):
            paddr = large_paddr(False, vaddr, pgd)
            log.debug("4MB page")
        else:
            pte_entry = ((pgd & 0xFFFFF000) + pte_index(False, vaddr)) & _MASK32
            pte = image.read_u32_mach(pte_entry)
            log.debug("pte = 0x%.8x", pte)
            if entry_present(pte):
                paddr = (pte & 0xFFFFF000) | (vaddr & 0xFFF)
            else:
                _note_nonpresent(image, pte, True)
    else:
        _note_nonpresent(image, pgd, False)
    log.debug("paddr = 0x%.8x", paddr)
    return paddr


def v2p_pae(image: MemoryImage, cr3: int, vaddr: int) -> int:
    """Translate vaddr with three-level PAE page tables; 0 if unmapped."""
    paddr = 0
    log.debug("lookup vaddr = 0x%.8x, cr3 = 0x%.8x", vaddr, cr3)
    pdpi_entry = (_pdpt_base(cr3) + _pdpi_index(vaddr)) & _MASK32
    pdpe = image.read_u64_mach(pdpi_entry)
    log.debug("pdpe = 0x%.16x", pdpe)
    if not entry_present(pdpe):
        return paddr
    pgd_entry = ((pdpe & 0xFFFFFF000) + pgd_index(True, vaddr)) & _MASK32
    pgd = image.read_u64_mach(pgd_entry)
    log.debug("pgd = 0x%.16x", pgd)
    if entry_present(pgd):
        if page_size_flag(pgd):
            paddr = large_paddr(True, vaddr, pgd)
            log.debug("2MB page")
        else:
            pte_entry = ((pgd & 0xFFFFFF000) + pte_index(True, vaddr)) & _MASK32
            pte = image.read_u64_mach(pte_entry)
            log.debug("pte = 0x%.16x", pte)
            if entry_present(pte):
                paddr = ((pte & 0xFFFFFF000) | (vaddr & 0xFFF)) & _MASK32
    log.debug("paddr = 0x%.8x", paddr)
    return paddr


def pagetable_lookup(image: MemoryImage, cr3: int, vaddr: int) -> int:
    """Translate vaddr through the page tables rooted at cr3; 0 if unmapped."""
    if image.pae:
        return v2p_pae(image, cr3, vaddr)
    return v2p_nopae(image, cr3, vaddr)


def current_cr3(image: MemoryImage) -> int:
    """Physical address of the kernel page directory of a memory image."""
    return (image.kpgd - image.page_offset) & _MASK32


def translate_kv2p(image: MemoryImage, vaddr: int) -> int:
    """Translate a kernel virtual address; 0 if unmapped."""
    return pagetable_lookup(image, current_cr3(image), vaddr)


def access_kernel_va(image: MemoryImage, vaddr: int) -> tuple[bytes, int]:
    """Return the page holding a kernel virtual address and the offset in it."""
    address = translate_kv2p(image, vaddr)
    if not address:
        raise LookupError(f"address not in page table (0x{vaddr:x})")
    return image.access_ma(address)


def _read(fmt: struct.Struct, image: MemoryImage, vaddr: int) -> int:
    page, offset = access_kernel_va(image, vaddr)
    if offset + fmt.size > len(page):
        raise ValueError(f"{fmt.size}-byte read at page offset {offset:#x} leaves the page")
    return fmt.unpack_from(page, offset)[0]


def read_u32_kernel_va(image: MemoryImage, vaddr: int) -> int:
    """Read a little-endian 32-bit value at a kernel virtual address."""
    return _read(_U32, image, vaddr)


def read_u64_kernel_va(image: MemoryImage, vaddr: int) -> int:
    """Read a little-endian 64-bit value at a kernel virtual address."""
    return _read(_U64, image, vaddr)