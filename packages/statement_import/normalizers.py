"""Record normalizer: raw rows -> :class:`CandidateTransaction`.

Implements date, amount and description normalization for bank exports that
follow European or ISO conventions. A malformed cell never raises: dates that
cannot be parsed become ``None`` and non-numeric amounts become ``None`` so
the validator can report them against the row index while the rest of the
batch proceeds.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import lru_cache
from typing import TYPE_CHECKING

from .models import CandidateTransaction, ColumnMapping, RawRow, TransactionType

if TYPE_CHECKING:
    from .templates import BankTemplate

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_DEBIT_MARKERS: tuple[str, ...] = (
    "D",
    "DR",
    "DEBIT",
    "DEBITO",
    "DÉBITO",
    "CARGO",
    "DEBE",
    "GASTO",
    "EXPENSE",
)
DEFAULT_CREDIT_MARKERS: tuple[str, ...] = (
    "C",
    "CR",
    "CREDIT",
    "CREDITO",
    "CRÉDITO",
    "ABONO",
    "HABER",
    "INGRESO",
    "INCOME",
)

# Reference boilerplate appended by banks. Each match is replaced by a space;
# merchant names and locations are left alone.
DEFAULT_STRIP_PATTERNS: tuple[str, ...] = (
    r"\bREF(?:ERENCIA|ERENCE)?\b[.:]?\s*[A-Z0-9/-]*\d[A-Z0-9/-]*",
    r"\b(?:TARJ(?:ETA)?|CARD)\b\.?\s*[X*]+\d{4}\b",
    r"[X*]{4,}\d{4}\b",
    r"\b\d{10,}\b",
)


@dataclass(frozen=True, slots=True)
class NormalizerConfig:
    """Knobs for :func:`normalize_row`.

    ``decimal_separator`` of ``None`` selects the positional heuristic of
    :func:`parse_amount`; bank templates can pin it to ``","`` or ``"."``.
    ``date_formats`` are ``strptime`` formats tried before the built-in forms.
    """

    date_formats: tuple[str, ...] = ()
    decimal_separator: str | None = None
    debit_markers: tuple[str, ...] = DEFAULT_DEBIT_MARKERS
    credit_markers: tuple[str, ...] = DEFAULT_CREDIT_MARKERS
    strip_patterns: tuple[str, ...] = DEFAULT_STRIP_PATTERNS

    def for_template(self, template: BankTemplate | None) -> NormalizerConfig:
        """Return a copy with ``template``'s parsing overrides applied."""

        if template is None:
            return self
        return NormalizerConfig(
            date_formats=tuple(template.date_formats) + self.date_formats,
            decimal_separator=template.decimal_separator or self.decimal_separator,
            debit_markers=tuple(template.debit_markers) or self.debit_markers,
            credit_markers=tuple(template.credit_markers) or self.credit_markers,
            strip_patterns=self.strip_patterns + tuple(template.description_strip_patterns),
        )


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

# (pattern, group order) pairs tried in sequence after any explicit formats.
_DATE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ]\S.*)?$"), "ymd"),
    (re.compile(r"^(\d{4})[/.](\d{1,2})[/.](\d{1,2})$"), "ymd"),
    (re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})$"), "dmy"),
    (re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{2})$"), "dmy"),
)


def _two_digit_year(yy: int) -> int:
    # Same pivot as strptime's %y: 69-99 -> 1900s, 00-68 -> 2000s.
    return 1900 + yy if yy >= 69 else 2000 + yy


def parse_date(raw: str | None, *, formats: Sequence[str] = ()) -> str | None:
    """Return ``raw`` as ``YYYY-MM-DD`` or ``None`` when it cannot be parsed.

    Accepts ISO dates (optionally followed by a time), ``YYYY/MM/DD``, and the
    day-first European forms ``DD/MM/YYYY``, ``DD-MM-YYYY``, ``DD.MM.YYYY``
    and ``DD/MM/YY``. Impossible calendar dates (``31/02/2026``) yield
    ``None``.
    """

    if raw is None:
        return None
    s = raw.strip()
    if not s:
        return None

    for fmt in formats:
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue

    for pattern, order in _DATE_PATTERNS:
        m = pattern.match(s)
        if m is None:
            continue
        a, b, c = (int(g) for g in m.groups())
        if order == "ymd":
            year, month, day = a, b, c
        else:
            day, month, year = a, b, c
            if len(m.group(3)) == 2:
                year = _two_digit_year(year)
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None
    return None


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_CURRENCY_RE = re.compile(r"[€$£¥]|\b(?:EUR|USD|GBP|CHF)\b", re.IGNORECASE)
_NUMERIC_BODY_RE = re.compile(r"^[\d.,]*\d[\d.,]*$")


def _strip_sign_markers(s: str) -> tuple[str, bool]:
    # Iteratively strip leading/trailing signs and surrounding parentheses
    # until stable, so combinations like "-(1.234,56)" or "45,50-" work.
    negative = False
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:]
            changed = True
        elif s.startswith(("-", "−")):
            negative = True
            s = s[1:]
            changed = True
        if s.endswith(("-", "−")):
            negative = True
            s = s[:-1]
            changed = True
        elif s.endswith("+"):
            s = s[:-1]
            changed = True
        if len(s) >= 2 and s.startswith("(") and s.endswith(")"):
            negative = True
            s = s[1:-1]
            changed = True
        if not changed:
            return s, negative


def _resolve_separators(body: str, decimal_separator: str | None) -> str | None:
    """Return ``body`` with thousands separators removed and a ``.`` decimal mark."""

    if decimal_separator is not None:
        thousands = "." if decimal_separator == "," else ","
        body = body.replace(thousands, "")
        if body.count(decimal_separator) > 1:
            return None
        return body.replace(decimal_separator, ".")

    last_comma, last_dot = body.rfind(","), body.rfind(".")
    if last_comma == -1 and last_dot == -1:
        return body

    if last_comma != -1 and last_dot != -1:
        # Both present: whichever comes last is the decimal mark.
        dec, thousands = (",", ".") if last_comma > last_dot else (".", ",")
        body = body.replace(thousands, "")
        if body.count(dec) > 1:
            return None
        return body.replace(dec, ".")

    sep = "," if last_comma != -1 else "."
    count = body.count(sep)
    tail = body[body.rfind(sep) + 1 :]
    # Two trailing digits always mark decimals. A lone separator is a decimal
    # mark unless it is followed by exactly three digits (a thousands group).
    if len(tail) == 2 or (count == 1 and len(tail) != 3):
        head = body[: body.rfind(sep)].replace(sep, "")
        return f"{head}.{tail}"
    groups = body.split(sep)
    if not groups[0] or any(len(g) != 3 for g in groups[1:]):
        return None
    return body.replace(sep, "")


def parse_amount(raw: str | None, *, decimal_separator: str | None = None) -> Decimal | None:
    """Parse a bank amount cell into a signed :class:`~decimal.Decimal`.

    Currency symbols/codes and whitespace are removed, leading ``+``/``-``,
    trailing ``-`` and surrounding parentheses are read as sign markers.
    Returns ``None`` for empty or non-numeric input.
    """

    if raw is None:
        return None
    s = _CURRENCY_RE.sub("", raw)
    s = re.sub(r"\s+", "", s)
    if not s:
        return None
    s, negative = _strip_sign_markers(s)
    if not _NUMERIC_BODY_RE.match(s):
        return None

    plain = _resolve_separators(s, decimal_separator)
    if plain is None:
        return None
    if plain.startswith("."):
        plain = "0" + plain
    try:
        value = Decimal(plain)
    except InvalidOperation:
        return None
    return -value if negative else value


def _to_cents(d: Decimal) -> Decimal:
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Descriptions
# ---------------------------------------------------------------------------


@lru_cache(maxsize=32)
def _compile_patterns(patterns: tuple[str, ...]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


def clean_description(
    raw: str | None, *, strip_patterns: Sequence[str] = DEFAULT_STRIP_PATTERNS
) -> str:
    """Remove reference boilerplate, trim, and collapse internal whitespace."""

    if raw is None:
        return ""
    text = raw.replace("\r", " ").replace("\n", " ")
    for pattern in _compile_patterns(tuple(strip_patterns)):
        text = pattern.sub(" ", text)
    return " ".join(text.split()).strip(" -/")


# ---------------------------------------------------------------------------
# Row normalization
# ---------------------------------------------------------------------------


def _cell(row: RawRow, header: str) -> str:
    if not header:
        return ""
    return row.get(header) or ""


def normalize_row(
    row: RawRow,
    mapping: ColumnMapping,
    row_index: int,
    *,
    config: NormalizerConfig | None = None,
    account_id: str | None = None,
) -> CandidateTransaction:
    """Convert one raw row into a candidate transaction. Never raises."""

    cfg = config or NormalizerConfig()

    iso_date = parse_date(_cell(row, mapping.date), formats=cfg.date_formats)
    signed = parse_amount(_cell(row, mapping.amount), decimal_separator=cfg.decimal_separator)

    marker = _cell(row, mapping.type).strip().upper()
    debit_marked = bool(marker) and marker in cfg.debit_markers
    credit_marked = bool(marker) and marker in cfg.credit_markers

    if signed is not None:
        signed = _to_cents(signed)
        if debit_marked:
            signed = -abs(signed)
        elif credit_marked or signed == 0:
            # "-0,00" and sub-cent debits that round to zero read as plain zero.
            signed = abs(signed)
        tx_type = (
            TransactionType.EXPENSE if debit_marked or signed < 0 else TransactionType.INCOME
        )
        amount: Decimal | None = abs(signed)
    else:
        tx_type = TransactionType.EXPENSE if debit_marked else TransactionType.INCOME
        amount = None

    return CandidateTransaction(
        source_row_index=row_index,
        date=iso_date,
        amount=amount,
        signed_raw_amount=signed,
        description=clean_description(
            _cell(row, mapping.description), strip_patterns=cfg.strip_patterns
        ),
        type=tx_type,
        account_id=account_id,
    )


__all__ = [
    "DEFAULT_DEBIT_MARKERS",
    "DEFAULT_CREDIT_MARKERS",
    "DEFAULT_STRIP_PATTERNS",
    "NormalizerConfig",
    "parse_date",
    "parse_amount",
    "clean_description",
    "normalize_row",
]
