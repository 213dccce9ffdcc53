"""Tabular parser: raw delimited text -> ordered header-keyed rows.

Parsing follows RFC 4180 quoting via the stdlib :mod:`csv` module (quoted
fields with embedded delimiters and newlines, doubled quotes). The first
non-empty line is the header row; lines whose cells are all blank are
skipped wherever they appear.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from types import MappingProxyType

from .errors import ParseError
from .logging_setup import get_logger
from .models import RawRow

logger = get_logger(__name__)

CANDIDATE_DELIMITERS: tuple[str, ...] = (",", ";", "\t", "|")


@dataclass(frozen=True, slots=True)
class ParsedTable:
    headers: tuple[str, ...]
    rows: tuple[RawRow, ...]
    delimiter: str


def _decode(data: bytes | str) -> str:
    if isinstance(data, bytes):
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ParseError(f"file is not valid UTF-8 text: {exc.reason}") from exc
    return data.removeprefix("\ufeff")


def _first_non_empty_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line
    return ""


def detect_delimiter(text: str) -> str:
    """Return the most frequent candidate delimiter on the header line.

    Ties resolve in ``CANDIDATE_DELIMITERS`` order, so ``","`` wins when no
    candidate appears at all.
    """

    header_line = _first_non_empty_line(text)
    best, best_count = ",", 0
    for delim in CANDIDATE_DELIMITERS:
        count = header_line.count(delim)
        if count > best_count:
            best, best_count = delim, count
    return best


def _normalize_headers(cells: list[str]) -> tuple[str, ...]:
    # Blank names get a positional label; repeated names get a numeric suffix
    # so every header stays a unique mapping key.
    seen: dict[str, int] = {}
    out: list[str] = []
    for pos, cell in enumerate(cells):
        name = cell.strip() or f"Column {pos + 1}"
        count = seen.get(name, 0) + 1
        seen[name] = count
        out.append(name if count == 1 else f"{name} ({count})")
    return tuple(out)


def parse_table(data: bytes | str, *, delimiter: str | None = None) -> ParsedTable:
    """Parse delimited text into ``(headers, rows)``.

    Parameters
    ----------
    data:
        File contents as UTF-8 bytes (a leading BOM is ignored) or text.
    delimiter:
        Optional explicit delimiter; auto-detected from the header line when
        omitted.

    Raises
    ------
    ParseError
        When the text cannot be decoded or tokenized, when the header row has
        fewer than two columns, or when there are no data rows.
    """

    text = _decode(data)
    if not text.strip():
        raise ParseError("file is empty")

    delim = delimiter or detect_delimiter(text)
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delim)

    headers: tuple[str, ...] | None = None
    rows: list[RawRow] = []
    try:
        for cells in reader:
            if all(not c.strip() for c in cells):
                continue
            if headers is None:
                headers = _normalize_headers(cells)
                if len(headers) < 2:
                    raise ParseError(
                        f"could not determine headers: found {len(headers)} column(s) "
                        f"using delimiter {delim!r}"
                    )
                continue
            width = len(headers)
            padded = cells[:width] + [""] * (width - len(cells))
            rows.append(MappingProxyType(dict(zip(headers, padded, strict=True))))
    except csv.Error as exc:
        raise ParseError(f"malformed delimited text: {exc}") from exc

    if headers is None:
        raise ParseError("could not determine headers: file has no non-empty lines")
    if not rows:
        raise ParseError("file has a header row but no data rows")

    logger.debug(
        "parsed %d row(s) with %d column(s) using delimiter %r", len(rows), len(headers), delim
    )
    return ParsedTable(headers=headers, rows=tuple(rows), delimiter=delim)


def read_source(path: str | PathLike[str]) -> bytes:
    """Return the raw bytes of ``path``; I/O failures become :class:`ParseError`."""

    p = Path(path)
    try:
        return p.read_bytes()
    except OSError as exc:
        raise ParseError(f"cannot read {p}: {exc.strerror or exc}") from exc


def parse_file(path: str | PathLike[str], *, delimiter: str | None = None) -> ParsedTable:
    """Read ``path`` as bytes and delegate to :func:`parse_table`."""

    return parse_table(read_source(path), delimiter=delimiter)


__all__ = [
    "CANDIDATE_DELIMITERS",
    "ParsedTable",
    "detect_delimiter",
    "parse_table",
    "read_source",
    "parse_file",
]
