"""
Reader for the CSV table bloaty prints with `--csv`.

Expected header (bloaty -d sections,symbols):

    sections,symbols,vmsize,filesize

`section`/`symbol` are accepted as aliases, and the sections column may be
missing entirely (bloaty -d symbols).
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Optional, Union

import pandas as pd

from .errors import InputFormatError

logger = logging.getLogger(__name__)

SECTION_COLUMNS = ("sections", "section")
SYMBOL_COLUMNS = ("symbols", "symbol")
SIZE_COLUMNS = ("vmsize", "filesize")


@dataclass(frozen=True)
class SizeRecord:
    section: str
    symbol: str
    vmsize: int
    filesize: int
    line: int = 0


def _pick_column(columns: List[str], names) -> Optional[str]:
    for name in names:
        if name in columns:
            return name
    return None


def _text(value) -> str:
    # short rows come back as NaN even with keep_default_na=False
    return value if isinstance(value, str) else ""


def _parse_size(value, column: str, line: int) -> int:
    text = _text(value).strip()
    # isdigit alone lets through digits int() rejects, like '²'
    if not (text.isascii() and text.isdigit()):
        raise InputFormatError(f"{column} must be a non-negative integer, got {value!r}", line)
    return int(text)


def _read_text(source: Union[str, Path, IO[str]]) -> str:
    try:
        if isinstance(source, (str, Path)):
            return Path(source).read_text(encoding="utf-8")
        return source.read()
    except UnicodeDecodeError as e:
        raise InputFormatError(f"input is not UTF-8 text: {e}")


def _blank(row) -> bool:
    return all(not _text(v).strip() for v in row)


def read_records(source: Union[str, Path, IO[str]]) -> List[SizeRecord]:
    """Parse a bloaty CSV table into SizeRecords.

    Raises InputFormatError naming the offending line for a bad header, a
    ragged row or a size that is not a non-negative integer. Blank lines
    are skipped but still counted, so line numbers match the file.
    """
    lines = _read_text(source).splitlines(keepends=True)
    offset = 0
    while offset < len(lines) and not lines[offset].strip():
        offset += 1
    header_line = offset + 1

    try:
        df = pd.read_csv(io.StringIO("".join(lines[offset:])), dtype=str,
                         keep_default_na=False, skipinitialspace=True, skip_blank_lines=False)
    except pd.errors.EmptyDataError:
        raise InputFormatError("empty input, expected a CSV header", header_line)
    except pd.errors.ParserError as e:
        raise InputFormatError(f"malformed CSV: {e}")

    df.columns = [str(c).strip().lower() for c in df.columns]
    columns = list(df.columns)

    symbol_col = _pick_column(columns, SYMBOL_COLUMNS)
    section_col = _pick_column(columns, SECTION_COLUMNS)
    if symbol_col is None:
        raise InputFormatError(f"missing symbols column in header {columns}", header_line)
    for col in SIZE_COLUMNS:
        if col not in columns:
            raise InputFormatError(f"missing {col} column in header {columns}", header_line)

    records: List[SizeRecord] = []
    for idx, row in enumerate(df.itertuples(index=False, name=None)):
        if _blank(row):
            continue
        line = header_line + idx + 1
        values = dict(zip(columns, row))
        records.append(SizeRecord(
            section=_text(values[section_col]) if section_col else "",
            symbol=_text(values[symbol_col]),
            vmsize=_parse_size(values["vmsize"], "vmsize", line),
            filesize=_parse_size(values["filesize"], "filesize", line),
            line=line,
        ))

    logger.debug(f"Read {len(records)} records")
    return records
