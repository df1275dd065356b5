import io

from vmpeek.symbols import get_symbol_row

SYSMAP = "c0100000 T _text\nc0101000 T startup_32\nc0102000 t\tdo_thing\n"


def test_find_by_name():
    f = io.StringIO(SYSMAP)
    assert get_symbol_row(f, "startup_32", 2) == "c0101000 T startup_32\n"


def test_find_by_address():
    f = io.StringIO(SYSMAP)
    assert get_symbol_row(f, "c0102000", 0) == "c0102000 t\tdo_thing\n"


def test_tab_separates_fields():
    f = io.StringIO(SYSMAP)
    assert get_symbol_row(f, "do_thing", 2) == "c0102000 t\tdo_thing\n"


def test_missing_symbol():
    assert get_symbol_row(io.StringIO(SYSMAP), "absent", 2) is None


def test_position_beyond_fields_stops_at_first_row():
    f = io.StringIO(SYSMAP)
    assert get_symbol_row(f, "x", 9) is None
    assert f.readline() == "c0101000 T startup_32\n"


def test_leading_whitespace_counts_as_separator():
    f = io.StringIO(" c0 T sym\n")
    assert get_symbol_row(f, "sym", 3) == " c0 T sym\n"


def test_successive_lookups_continue_reading():
    f = io.StringIO(SYSMAP)
    assert get_symbol_row(f, "startup_32", 2) == "c0101000 T startup_32\n"
    assert get_symbol_row(f, "_text", 2) is None