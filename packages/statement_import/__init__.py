"""Public interface for the ``statement_import`` package.

This module exposes the package's API functions, the import session and the
public models/types as the stable import surface. There is no runtime logic
here, only symbol re-exports.
"""

from .api import import_statement, preview_statement
from .errors import (
    CommitError,
    InvalidTransitionError,
    MappingIncompleteError,
    NoAccountsError,
    ParseError,
    StatementImportError,
    UnknownAccountError,
    UnknownTemplateError,
)
from .ledger import InMemoryLedger, LedgerStore, SqlLedgerStore
from .models import (
    Account,
    BalanceImpactSummary,
    CandidateTransaction,
    Category,
    ColumnMapping,
    DuplicateMatch,
    Transaction,
    TransactionType,
    ValidationError,
)
from .session import CommitResult, ImportSession, SessionStage

__all__ = [
    # API
    "preview_statement",
    "import_statement",
    "ImportSession",
    "SessionStage",
    "CommitResult",
    # Ledger
    "LedgerStore",
    "InMemoryLedger",
    "SqlLedgerStore",
    # Models / types
    "Account",
    "BalanceImpactSummary",
    "CandidateTransaction",
    "Category",
    "ColumnMapping",
    "DuplicateMatch",
    "Transaction",
    "TransactionType",
    "ValidationError",
    # Errors
    "StatementImportError",
    "ParseError",
    "UnknownTemplateError",
    "MappingIncompleteError",
    "InvalidTransitionError",
    "NoAccountsError",
    "UnknownAccountError",
    "CommitError",
]
