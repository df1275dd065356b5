"""Looking up rows of whitespace-separated symbol files."""

from __future__ import annotations

import re
from typing import Iterator, Optional, TextIO

MAX_ROW_LENGTH = 200

_SPACE = re.compile(r"[ \t\n\v\f\r]+")


def _rows(f: TextIO) -> Iterator[str]:
    while True:
        row = f.readline(MAX_ROW_LENGTH - 1)
        if not row:
            return
        yield row


def get_symbol_row(f: TextIO, symbol: str, position: int) -> Optional[str]:
    """Read rows from f until field number position equals symbol; return that row.

    Returns None when the file ends without a match, or as soon as a row has no
    field at that position.
    """
    for row in _rows(f):
        fields = _SPACE.split(row)
        if position < 0 or position >= len(fields):
            return None
        if fields[position] == symbol:
            return row
    return None