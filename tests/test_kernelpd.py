import struct

import pytest

from vmpeek.kernelpd import (
    bitcount,
    find_kernel_pd,
    pd_checksum,
    pd_score,
    pd_selfref,
    valid_pd_entry,
)
from vmpeek.memory import MemoryImage, OSType

PAGE = 4096
KERNEL_OFFSET = 0xC0000000


def _page_with(entries):
    page = bytearray(PAGE)
    for offset, value in entries.items():
        struct.pack_into("<I", page, offset, value)
    return bytes(page)


def _kernel_pd(extra=None):
    entries = {3072: 0x1063, 3076: 0x2063, 3080: 0x3063}
    entries.update(extra or {})
    return _page_with(entries)


def _image(pages, os_type=OSType.LINUX):
    return MemoryImage(b"".join(pages), os_type=os_type, page_offset=KERNEL_OFFSET)


@pytest.mark.parametrize("n", [0, 1, 0x80000000, 0x12345678, 0xFFFFFFFF, 0xDEADBEEF])
def test_bitcount_matches_popcount(n):
    assert bitcount(n) == bin(n).count("1")


def test_bitcount_full_word():
    assert bitcount(0xFFFFFFFF) == 32


def test_valid_pd_entry_rejects_all_ones():
    assert valid_pd_entry(0xFFFFFFFF, 0xFFFFFFFF) is False


def test_valid_pd_entry_small_page_bounds():
    assert valid_pd_entry(0x1063, 0x1000) is True
    assert valid_pd_entry(0x2063, 0x1000) is False


def test_valid_pd_entry_large_page_uses_large_mask():
    # bit 7 set: only the top 11 bits count against the memory size
    assert valid_pd_entry(0x001FF0E3, 0x1000) is True
    assert valid_pd_entry(0x002000E3, 0x1000) is False


def test_pd_score_none_and_zero_page():
    assert pd_score(None, PAGE) == 0
    assert pd_score(bytes(PAGE), PAGE) == 0


def test_pd_score_invalid_entry_penalised():
    assert pd_score(struct.pack("<I", 0xFFFFFFFF), PAGE) == -1


def test_pd_score_similar_entries_positive():
    assert pd_score(_kernel_pd(), 4 * PAGE) > 0


def test_pd_checksum_regions():
    memory = _page_with({2048 + 4 * i: 1 for i in range(8)})
    assert pd_checksum(0x80000000, PAGE, memory) == 8
    assert pd_checksum(KERNEL_OFFSET, PAGE, memory) == 0
    assert pd_checksum(KERNEL_OFFSET, PAGE, None) == 0


def test_pd_checksum_wraps():
    memory = _page_with({4 * i: 0xFFFFFFFF for i in range(8)})
    assert pd_checksum(0, PAGE, memory) == 0xFFFFFFF8


def test_pd_selfref_counts_own_frame():
    memory = _page_with({0: 0x2063, 8: 0x2001, 16: 0x3063})
    assert pd_selfref(memory, 0x2000) == 2
    assert pd_selfref(memory, 0x5000) == 0
    assert pd_selfref(None, 0x2000) == 0


def test_find_kernel_pd_lowest_matching_page():
    image = _image([bytes(PAGE), _kernel_pd(), _kernel_pd(), bytes(PAGE)])
    assert find_kernel_pd(image) == 0x1000 + KERNEL_OFFSET


def test_find_kernel_pd_unmatched_page_dropped():
    lone = _page_with({3072: 0x1023, 3076: 0x3023})
    image = _image([bytes(PAGE), lone, _kernel_pd(), _kernel_pd()])
    assert find_kernel_pd(image) == 0x2000 + KERNEL_OFFSET


def test_find_kernel_pd_no_candidate():
    image = _image([bytes(PAGE), bytes(PAGE)])
    with pytest.raises(LookupError):
        find_kernel_pd(image)