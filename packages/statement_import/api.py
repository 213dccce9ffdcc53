"""Public API for the ``statement_import`` package.

Two entry points drive an :class:`~statement_import.session.ImportSession`
non-interactively: :func:`preview_statement` stops at PREVIEW so the caller
can inspect counts, rows and the balance impact; :func:`import_statement`
goes on to commit. Interactive hosts use the session directly.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from os import PathLike
from pathlib import Path

from .config import ImportConfig
from .ledger import LedgerStore
from .parser import read_source
from .session import CommitResult, ImportSession
from .templates import TemplateRegistry


def preview_statement(
    path: str | PathLike[str],
    *,
    ledger: LedgerStore,
    account_id: str,
    bank_id: str | None = None,
    mapping_overrides: Mapping[str, str | None] | None = None,
    delimiter: str | None = None,
    config: ImportConfig | None = None,
    registry: TemplateRegistry | None = None,
) -> ImportSession:
    """Upload ``path`` and walk a new session to the PREVIEW stage.

    Parameters
    ----------
    path:
        Delimited statement export (UTF-8).
    ledger:
        Target ledger; read for accounts, categories and existing rows.
    account_id:
        Account every imported row is bound to.
    bank_id:
        Bank template id; ``None`` or ``"manual"`` auto-maps from headers.
    mapping_overrides:
        Field -> header overrides applied after template/auto mapping.
        ``None`` or ``""`` unmaps a field.

    Raises
    ------
    ParseError, UnknownTemplateError, NoAccountsError, UnknownAccountError,
    MappingIncompleteError
        From the corresponding session stage.
    """

    session = ImportSession(ledger, registry=registry, config=config)
    session.upload(read_source(path), file_name=Path(path).name, delimiter=delimiter)
    session.select_bank(bank_id)
    session.select_account(account_id)
    if mapping_overrides:
        session.update_mapping(**dict(mapping_overrides))
    session.confirm_mapping()
    return session


def import_statement(
    path: str | PathLike[str],
    *,
    ledger: LedgerStore,
    account_id: str,
    bank_id: str | None = None,
    mapping_overrides: Mapping[str, str | None] | None = None,
    delimiter: str | None = None,
    skip_duplicates: bool = False,
    exclude_rows: Iterable[int] = (),
    config: ImportConfig | None = None,
    registry: TemplateRegistry | None = None,
) -> CommitResult:
    """Preview ``path`` as in :func:`preview_statement`, then commit it."""

    session = preview_statement(
        path,
        ledger=ledger,
        account_id=account_id,
        bank_id=bank_id,
        mapping_overrides=mapping_overrides,
        delimiter=delimiter,
        config=config,
        registry=registry,
    )
    session.set_skip_duplicates(skip_duplicates)
    excluded = list(exclude_rows)
    if excluded:
        session.exclude_rows(excluded)
    return session.commit()


__all__ = ["preview_statement", "import_statement"]
