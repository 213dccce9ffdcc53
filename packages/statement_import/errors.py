"""Exception taxonomy for the import pipeline.

Only conditions that block a session transition are raised. Per-row problems
(bad dates, amounts, descriptions) are recorded as
:class:`~statement_import.models.ValidationError` values instead.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import CandidateTransaction


class StatementImportError(Exception):
    """Base class for every error raised by ``statement_import``."""


class ParseError(StatementImportError):
    """The uploaded file has no extractable headers or data rows."""


class UnknownTemplateError(StatementImportError, LookupError):
    """A bank id was requested that is not present in the template registry."""

    def __init__(self, bank_id: str) -> None:
        super().__init__(f"unknown bank template: {bank_id!r}")
        self.bank_id = bank_id


class MappingIncompleteError(StatementImportError):
    """Advancing past MAPPING without ``date`` and ``amount`` columns."""

    def __init__(self, missing: Sequence[str]) -> None:
        super().__init__("column mapping incomplete; missing: " + ", ".join(missing))
        self.missing = tuple(missing)


class InvalidTransitionError(StatementImportError):
    """An operation was attempted in a session stage that does not allow it."""


class NoAccountsError(StatementImportError):
    """The ledger has no accounts to bind the import to."""


class UnknownAccountError(StatementImportError, LookupError):
    """The selected account id does not exist in the ledger."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"unknown account: {account_id!r}")
        self.account_id = account_id


class CommitError(StatementImportError):
    """The ledger rejected the batch append or the balance adjustment.

    ``candidates`` holds the full candidate set of the session so the caller
    can retry without re-uploading the file.
    """

    def __init__(self, message: str, *, candidates: Sequence[CandidateTransaction]) -> None:
        super().__init__(message)
        self.candidates = tuple(candidates)


__all__ = [
    "StatementImportError",
    "ParseError",
    "UnknownTemplateError",
    "MappingIncompleteError",
    "InvalidTransitionError",
    "NoAccountsError",
    "UnknownAccountError",
    "CommitError",
]
