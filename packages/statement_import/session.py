"""Import session: an explicit state machine over the import pipeline.

Stages advance ``UPLOAD -> BANK_SELECT -> ACCOUNT_SELECT -> MAPPING ->
PREVIEW`` and end in ``COMMITTED`` or ``ABORTED``. Each stage is a frozen
dataclass carrying exactly what that stage needs, so a preview can never
exist without a confirmed mapping and a selected account. Every operation
checks the current stage and raises :class:`InvalidTransitionError` when it
does not apply; failed operations leave the state untouched.

Nothing is written to the ledger before :meth:`ImportSession.commit`, which
appends the accepted batch and applies one balance delta inside
``ledger.atomic()``.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import ClassVar, Literal

from .config import ImportConfig
from .errors import (
    CommitError,
    InvalidTransitionError,
    MappingIncompleteError,
    NoAccountsError,
    ParseError,
    UnknownAccountError,
)
from .ledger import LedgerStore
from .logging_setup import get_logger
from .mapping import auto_map
from .models import (
    PREVIEW_REQUIRED_FIELDS,
    Account,
    BalanceImpactSummary,
    CandidateTransaction,
    Category,
    ColumnMapping,
    DuplicateMatch,
    Transaction,
    ValidationError,
)
from .parser import ParsedTable, parse_table
from .pipeline import ImportCounts, ImportStats, PipelineResult, run_pipeline
from .templates import BankTemplate, TemplateRegistry, default_registry

logger = get_logger(__name__)


class SessionStage(StrEnum):
    UPLOAD = "UPLOAD"
    BANK_SELECT = "BANK_SELECT"
    ACCOUNT_SELECT = "ACCOUNT_SELECT"
    MAPPING = "MAPPING"
    PREVIEW = "PREVIEW"
    COMMITTED = "COMMITTED"
    ABORTED = "ABORTED"


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Upload:
    data: bytes | str
    file_name: str | None
    # User-supplied delimiter; ``None`` lets a bank template's delimiter win.
    delimiter: str | None
    table: ParsedTable
    # Table parsed at upload time; restored when stepping back to BANK_SELECT.
    detected: ParsedTable


@dataclass(frozen=True, slots=True)
class UploadState:
    stage: ClassVar[SessionStage] = SessionStage.UPLOAD


@dataclass(frozen=True, slots=True)
class BankSelectState:
    stage: ClassVar[SessionStage] = SessionStage.BANK_SELECT

    upload: _Upload


@dataclass(frozen=True, slots=True)
class AccountSelectState:
    stage: ClassVar[SessionStage] = SessionStage.ACCOUNT_SELECT

    upload: _Upload
    bank_id: str | None
    template: BankTemplate | None
    mapping: ColumnMapping


@dataclass(frozen=True, slots=True)
class MappingState:
    stage: ClassVar[SessionStage] = SessionStage.MAPPING

    upload: _Upload
    bank_id: str | None
    template: BankTemplate | None
    mapping: ColumnMapping
    account: Account


@dataclass(frozen=True, slots=True)
class PreviewState:
    stage: ClassVar[SessionStage] = SessionStage.PREVIEW

    upload: _Upload
    bank_id: str | None
    template: BankTemplate | None
    mapping: ColumnMapping
    account: Account
    result: PipelineResult
    skip_duplicates: bool = False
    excluded: frozenset[int] = frozenset()


@dataclass(frozen=True, slots=True)
class CommitResult:
    account_id: str
    transactions: tuple[Transaction, ...]
    impact: BalanceImpactSummary
    skipped_rows: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class CommittedState:
    stage: ClassVar[SessionStage] = SessionStage.COMMITTED

    result: CommitResult


@dataclass(frozen=True, slots=True)
class AbortedState:
    stage: ClassVar[SessionStage] = SessionStage.ABORTED

    aborted_from: SessionStage


type SessionState = (
    UploadState
    | BankSelectState
    | AccountSelectState
    | MappingState
    | PreviewState
    | CommittedState
    | AbortedState
)

type RowStatus = Literal["ok", "error", "duplicate", "excluded"]


@dataclass(frozen=True, slots=True)
class PreviewRow:
    candidate: CandidateTransaction
    status: RowStatus
    errors: tuple[ValidationError, ...] = ()
    duplicate: DuplicateMatch | None = None


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class ImportSession:
    """Drive one file through the import stages against ``ledger``.

    Parameters
    ----------
    ledger:
        Store providing accounts, categories and existing transactions, and
        receiving the committed batch.
    registry:
        Bank templates; defaults to the bundled registry.
    config:
        Pipeline configuration; defaults to :class:`ImportConfig()`.
    categories:
        Taxonomy override. When omitted, ``ledger.list_categories()`` is read
        at mapping confirmation.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        *,
        registry: TemplateRegistry | None = None,
        config: ImportConfig | None = None,
        categories: Iterable[Category] | None = None,
    ) -> None:
        self.ledger = ledger
        self.registry = registry or default_registry()
        self.config = config or ImportConfig()
        self._categories = tuple(categories) if categories is not None else None
        self._state: SessionState = UploadState()

    # ---- inspection ------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def stage(self) -> SessionStage:
        return self._state.stage

    @property
    def headers(self) -> tuple[str, ...]:
        upload = getattr(self._state, "upload", None)
        if upload is None:
            raise InvalidTransitionError(f"no file uploaded (stage {self.stage})")
        return upload.table.headers

    @property
    def mapping(self) -> ColumnMapping:
        st = self._state
        if not isinstance(st, AccountSelectState | MappingState | PreviewState):
            raise InvalidTransitionError(f"no column mapping in stage {self.stage}")
        return st.mapping

    def _expect[S](self, kind: type[S], operation: str) -> S:
        st = self._state
        if not isinstance(st, kind):
            raise InvalidTransitionError(f"{operation}() is not allowed in stage {self.stage}")
        return st

    # ---- UPLOAD ----------------------------------------------------------

    def upload(
        self, data: bytes | str, *, file_name: str | None = None, delimiter: str | None = None
    ) -> ParsedTable:
        """Parse ``data`` and advance to BANK_SELECT. ``ParseError`` propagates."""

        self._expect(UploadState, "upload")
        table = parse_table(data, delimiter=delimiter)
        self._state = BankSelectState(_Upload(data, file_name, delimiter, table, table))
        logger.info(
            "Uploaded %s: %d row(s), %d column(s), delimiter %r",
            file_name or "<data>",
            len(table.rows),
            len(table.headers),
            table.delimiter,
        )
        return table

    # ---- BANK_SELECT -----------------------------------------------------

    def select_bank(self, bank_id: str | None) -> ColumnMapping:
        """Resolve ``bank_id`` to a mapping and advance to ACCOUNT_SELECT.

        ``None`` or ``"manual"`` auto-maps from the headers. An unknown id
        raises :class:`UnknownTemplateError` and leaves the stage unchanged.
        """

        st = self._expect(BankSelectState, "select_bank")
        resolved = self.registry.resolve(bank_id)
        upload = st.upload
        if resolved is None:
            template = None
            mapping = auto_map(upload.table.headers)
        else:
            template = self.registry.get(bank_id or "")
            mapping = resolved
            if (
                upload.delimiter is None
                and template.delimiter is not None
                and template.delimiter != upload.table.delimiter
            ):
                table = _reparse_for_template(upload, template, mapping)
                if table is not None:
                    upload = replace(upload, table=table)

        self._state = AccountSelectState(
            upload=upload,
            bank_id=template.id if template is not None else None,
            template=template,
            mapping=mapping,
        )
        logger.info(
            "Bank %s selected; mapping %s",
            template.id if template is not None else "manual",
            mapping.as_dict(),
        )
        return mapping

    # ---- ACCOUNT_SELECT --------------------------------------------------

    def select_account(self, account_id: str) -> Account:
        st = self._expect(AccountSelectState, "select_account")
        if not self.ledger.list_accounts():
            raise NoAccountsError("the ledger has no accounts; create one before importing")
        account = self.ledger.get_account(account_id)
        if account is None:
            raise UnknownAccountError(account_id)
        self._state = MappingState(
            upload=st.upload,
            bank_id=st.bank_id,
            template=st.template,
            mapping=st.mapping,
            account=account,
        )
        return account

    # ---- MAPPING ---------------------------------------------------------

    def update_mapping(self, **fields: str | None) -> ColumnMapping:
        """Override mapping fields; each value must be a header of the file or empty."""

        st = self._expect(MappingState, "update_mapping")
        headers = set(st.upload.table.headers)
        for name, header in fields.items():
            if header and header.strip() not in headers:
                raise ValueError(f"column {header!r} for {name!r} is not in the file")
        mapping = st.mapping.with_overrides(**fields)
        self._state = replace(st, mapping=mapping)
        return mapping

    def confirm_mapping(self) -> PipelineResult:
        """Run normalization through balance impact and advance to PREVIEW."""

        st = self._expect(MappingState, "confirm_mapping")
        headers = set(st.upload.table.headers)
        missing = [f for f in PREVIEW_REQUIRED_FIELDS if getattr(st.mapping, f) not in headers]
        if missing:
            raise MappingIncompleteError(missing)

        categories = (
            self._categories if self._categories is not None else self.ledger.list_categories()
        )
        result = run_pipeline(
            st.upload.table.rows,
            st.mapping,
            categories=categories,
            existing=self.ledger.list_transactions(st.account.id),
            starting_balance=st.account.balance,
            account_id=st.account.id,
            template=st.template,
            config=self.config,
        )
        self._state = PreviewState(
            upload=st.upload,
            bank_id=st.bank_id,
            template=st.template,
            mapping=st.mapping,
            account=st.account,
            result=result,
        )
        return result

    # ---- PREVIEW ---------------------------------------------------------

    def set_skip_duplicates(self, flag: bool) -> None:
        st = self._expect(PreviewState, "set_skip_duplicates")
        self._state = replace(st, skip_duplicates=bool(flag))

    def exclude_rows(self, indices: Iterable[int]) -> None:
        st = self._expect(PreviewState, "exclude_rows")
        known = {c.source_row_index for c in st.result.candidates}
        add = set(indices)
        unknown = sorted(add - known)
        if unknown:
            raise ValueError(f"unknown row index(es): {unknown}")
        self._state = replace(st, excluded=st.excluded | add)

    def include_rows(self, indices: Iterable[int]) -> None:
        st = self._expect(PreviewState, "include_rows")
        self._state = replace(st, excluded=st.excluded - set(indices))

    @property
    def result(self) -> PipelineResult:
        return self._expect(PreviewState, "result").result

    def counts(self) -> ImportCounts:
        return self._expect(PreviewState, "counts").result.counts()

    def stats(self) -> ImportStats:
        return self._expect(PreviewState, "stats").result.stats()

    def impact(self) -> BalanceImpactSummary:
        st = self._expect(PreviewState, "impact")
        return st.result.impact(skip_duplicates=st.skip_duplicates, excluded=st.excluded)

    def preview_rows(self, limit: int | None = None) -> list[PreviewRow]:
        """Status of the first ``limit`` candidates (``config.preview_limit`` by default)."""

        st = self._expect(PreviewState, "preview_rows")
        n = self.config.preview_limit if limit is None else limit
        res = st.result
        rows: list[PreviewRow] = []
        for cand in res.candidates[: max(n, 0)]:
            idx = cand.source_row_index
            errors = tuple(res.errors_for(idx))
            dup = res.duplicate_for(idx)
            status: RowStatus
            if errors:
                status = "error"
            elif idx in st.excluded:
                status = "excluded"
            elif dup is not None:
                status = "duplicate"
            else:
                status = "ok"
            rows.append(PreviewRow(cand, status, errors, dup))
        return rows

    def commit(self) -> CommitResult:
        """Append the accepted batch and apply its net delta in one ledger transaction.

        On failure nothing is written, the session stays in PREVIEW and
        :class:`CommitError` carries the candidate set.
        """

        st = self._expect(PreviewState, "commit")
        res = st.result
        accepted = res.accepted(skip_duplicates=st.skip_duplicates, excluded=st.excluded)
        impact = res.impact(skip_duplicates=st.skip_duplicates, excluded=st.excluded)
        batch = tuple(_to_transaction(c, st.account.id) for c in accepted)
        accepted_idx = {c.source_row_index for c in accepted}
        skipped = tuple(
            c.source_row_index for c in res.candidates if c.source_row_index not in accepted_idx
        )

        if batch:
            try:
                with self.ledger.atomic():
                    self.ledger.append_transactions(batch)
                    self.ledger.adjust_account_balance(st.account.id, impact.net_impact)
            except Exception as exc:
                logger.error(
                    "Commit of %d transaction(s) to account %s failed: %s",
                    len(batch),
                    st.account.id,
                    exc,
                )
                raise CommitError(
                    f"import could not be committed: {exc}", candidates=res.candidates
                ) from exc

        result = CommitResult(
            account_id=st.account.id,
            transactions=batch,
            impact=impact,
            skipped_rows=skipped,
        )
        self._state = CommittedState(result)
        logger.info(
            "Committed %d transaction(s) to account %s (net %s, %d row(s) skipped)",
            len(batch),
            st.account.id,
            impact.net_impact,
            len(skipped),
        )
        return result

    # ---- navigation ------------------------------------------------------

    def back(self) -> SessionStage:
        """Step back one stage. Results computed for PREVIEW are discarded."""

        st = self._state
        match st:
            case BankSelectState():
                self._state = UploadState()
            case AccountSelectState(upload=upload):
                self._state = BankSelectState(replace(upload, table=upload.detected))
            case MappingState():
                self._state = AccountSelectState(
                    upload=st.upload, bank_id=st.bank_id, template=st.template, mapping=st.mapping
                )
            case PreviewState():
                self._state = MappingState(
                    upload=st.upload,
                    bank_id=st.bank_id,
                    template=st.template,
                    mapping=st.mapping,
                    account=st.account,
                )
            case _:
                raise InvalidTransitionError(f"back() is not allowed in stage {self.stage}")
        return self.stage

    def abort(self) -> None:
        if isinstance(self._state, CommittedState | AbortedState):
            raise InvalidTransitionError(f"abort() is not allowed in stage {self.stage}")
        self._state = AbortedState(aborted_from=self.stage)
        logger.info("Import aborted")


def _reparse_for_template(
    upload: _Upload, template: BankTemplate, mapping: ColumnMapping
) -> ParsedTable | None:
    """Parse ``upload`` with the template's delimiter, or ``None`` if the file does not fit it."""

    try:
        table = parse_table(upload.data, delimiter=template.delimiter)
    except ParseError as exc:
        logger.debug("Template %s delimiter does not apply: %s", template.id, exc)
        return None
    required = {mapping.date, mapping.amount, mapping.description}
    if not required <= set(table.headers):
        logger.debug("Template %s delimiter does not yield its columns", template.id)
        return None
    return table


def _to_transaction(cand: CandidateTransaction, account_id: str) -> Transaction:
    # Only validated candidates reach here: date and amount are set.
    assert cand.date is not None and cand.amount is not None
    return Transaction(
        id=uuid.uuid4().hex,
        date=cand.date,
        amount=cand.amount,
        type=cand.type,
        category=cand.category,
        sub_category=cand.sub_category,
        account_id=account_id,
        description=cand.description,
    )


__all__ = [
    "SessionStage",
    "UploadState",
    "BankSelectState",
    "AccountSelectState",
    "MappingState",
    "PreviewState",
    "CommittedState",
    "AbortedState",
    "SessionState",
    "RowStatus",
    "PreviewRow",
    "CommitResult",
    "ImportSession",
]
