"""CLI for the ``statement_import`` package.

A Typer console interface over :mod:`statement_import.api`. Environment
variables (``DATABASE_URL`` and the ``STATEMENT_IMPORT_*`` knobs) are loaded
from a local ``.env`` with ``python-dotenv`` before any command runs. All
commands work against the ledger database; pass ``--database-url`` or set
``DATABASE_URL``.
"""

from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError
from typer.models import ArgumentInfo, OptionInfo

from .errors import StatementImportError
from .logging_setup import configure_logging
from .models import ColumnMapping

# ---- Small module-level helpers used by CLI commands -------------------------


def _fail(message: str) -> typer.Exit:
    print(f"Error: {message}", file=sys.stderr)
    return typer.Exit(1)


def _parse_map_options(values: list[str] | None) -> dict[str, str | None]:
    """Turn repeated ``field=Header`` options into mapping overrides.

    ``field=`` (empty header) unmaps the field.
    """

    overrides: dict[str, str | None] = {}
    allowed = set(ColumnMapping.field_names())
    for raw in values or []:
        field, sep, header = raw.partition("=")
        field = field.strip()
        if not sep or field not in allowed:
            raise typer.BadParameter(
                f"expected FIELD=HEADER with FIELD one of {', '.join(sorted(allowed))}; "
                f"got {raw!r}",
                param_hint="--map",
            )
        overrides[field] = header.strip() or None
    return overrides


def _load_config(rules: Path | None = None):
    from .classifier import load_rules
    from .config import ImportConfig

    cfg = ImportConfig.from_env()
    if rules is not None:
        cfg = replace(cfg, classifier=replace(cfg.classifier, rules=load_rules(rules)))
    return cfg


def _fmt_money(value) -> str:
    return f"{value:,.2f}"


def _print_preview(session, *, file_label: str) -> None:
    state = session.state
    counts = session.counts()
    impact = session.impact()

    typer.echo(f"File: {file_label} ({counts.total} rows)")
    typer.echo(f"Bank: {state.bank_id or 'manual'}    Account: {state.account.id}")
    typer.echo(
        "Mapping: "
        + ", ".join(f"{k}={v!r}" for k, v in state.mapping.as_dict().items() if v)
    )
    typer.echo(
        f"Rows: {counts.total} total, {counts.valid} valid, "
        f"{counts.duplicates} possible duplicate(s), {counts.errors} with errors"
    )
    typer.echo(
        f"Balance: start {_fmt_money(impact.starting_balance)}  "
        f"income +{_fmt_money(impact.income_total)}  "
        f"expense -{_fmt_money(impact.expense_total)}  "
        f"net {impact.net_impact:+,.2f}  "
        f"projected {_fmt_money(impact.projected_ending_balance)}"
    )
    stats = session.stats()
    typer.echo(
        f"Dates: {stats.first_date or '?'} .. {stats.last_date or '?'}    "
        f"Income rows: {stats.income}    Expense rows: {stats.expense}"
    )
    if stats.categories:
        typer.echo(
            "Categories: " + ", ".join(f"{name} {n}" for name, n in stats.categories.items())
        )
    typer.echo()

    for row in session.preview_rows():
        c = row.candidate
        label = c.category + (f" / {c.sub_category}" if c.sub_category else "")
        amount = "?" if c.amount is None else _fmt_money(c.amount)
        typer.echo(
            f"{c.source_row_index:>4}  {row.status:<9}  {c.date or '?':<10}  "
            f"{c.type:<7}  {amount:>12}  {label:<32}  {c.description}"
        )
        for err in row.errors:
            typer.echo(f"      ! {err.field}: {err.reason}")

    remaining = counts.total - len(session.preview_rows())
    if remaining > 0:
        typer.echo(f"... {remaining} more row(s)")


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank statement exports (CSV and other delimited text) into the "
        "ledger database. Loads DATABASE_URL from a local .env before running."
    ),
)


FILE_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Path to the statement export",
    dir_okay=False,
    file_okay=True,
    exists=False,  # missing files are reported by the command itself
)
ACCOUNT_OPTION: OptionInfo = typer.Option(
    ..., "--account", "-a", help="Ledger account id every row is bound to."
)
BANK_OPTION: OptionInfo = typer.Option(
    None, "--bank", "-b", help="Bank template id (see `banks`); omit or 'manual' to auto-map."
)
DELIMITER_OPTION: OptionInfo = typer.Option(
    None, "--delimiter", help="Field delimiter; detected from the header line when omitted."
)
MAP_OPTION: OptionInfo = typer.Option(
    None, "--map", "-m", help="Override a column mapping: FIELD=HEADER (repeatable)."
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
RULES_OPTION: OptionInfo = typer.Option(
    None,
    "--rules",
    help="Merchant rules file (merchant_rules.v1.json layout) used instead of the bundled rules.",
    dir_okay=False,
)
SKIP_DUPLICATES_OPTION: OptionInfo = typer.Option(
    False, "--skip-duplicates", help="Leave rows that look like ledger duplicates out."
)
EXCLUDE_OPTION: OptionInfo = typer.Option(
    None, "--exclude", "-x", help="Row index to leave out (repeatable)."
)
YES_OPTION: OptionInfo = typer.Option(False, "--yes", "-y", help="Commit without asking.")
SEED_CATEGORIES_OPTION: OptionInfo = typer.Option(
    False, "--seed-categories", help="Replace ledger categories with the bundled taxonomy."
)
TAXONOMY_OPTION: OptionInfo = typer.Option(
    None,
    "--taxonomy",
    help="Seed categories from this file (categories.v1.json layout); implies --seed-categories.",
    dir_okay=False,
)
LOG_LEVEL_OPTION: OptionInfo = typer.Option(
    None, "--log-level", help="Logging level (default: $STATEMENT_IMPORT_LOG_LEVEL or INFO)."
)

_COMMAND_ERRORS = (StatementImportError, ValueError, RuntimeError, OSError, SQLAlchemyError)


@app.command("banks")
def banks_cmd() -> None:
    """List the supported bank templates."""

    from .templates import MANUAL_BANK_ID, default_registry

    for template in default_registry().templates():
        cols = template.columns
        typer.echo(
            f"{template.id}\t{template.display_name}\t"
            f"{cols.date} | {cols.amount} | {cols.description}"
        )
    typer.echo(f"{MANUAL_BANK_ID}\tOther bank (auto-map columns from headers)")


@app.command("preview")
def preview_cmd(
    file: Annotated[Path, FILE_ARGUMENT],
    *,
    account: str = ACCOUNT_OPTION,
    bank: str | None = BANK_OPTION,
    delimiter: str | None = DELIMITER_OPTION,
    map_: list[str] | None = MAP_OPTION,
    rules: Path | None = RULES_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Show counts, balance impact and the first rows without writing anything."""

    from .api import preview_statement
    from .ledger import SqlLedgerStore

    overrides = _parse_map_options(map_)
    try:
        session = preview_statement(
            file,
            ledger=SqlLedgerStore(database_url=database_url),
            account_id=account,
            bank_id=bank,
            mapping_overrides=overrides,
            delimiter=delimiter,
            config=_load_config(rules),
        )
    except _COMMAND_ERRORS as e:
        raise _fail(str(e)) from None

    _print_preview(session, file_label=file.name)


@app.command("import")
def import_cmd(
    file: Annotated[Path, FILE_ARGUMENT],
    *,
    account: str = ACCOUNT_OPTION,
    bank: str | None = BANK_OPTION,
    delimiter: str | None = DELIMITER_OPTION,
    map_: list[str] | None = MAP_OPTION,
    rules: Path | None = RULES_OPTION,
    skip_duplicates: bool = SKIP_DUPLICATES_OPTION,
    exclude: list[int] | None = EXCLUDE_OPTION,
    yes: bool = YES_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Preview the file, then append the accepted rows and update the balance."""

    from .api import preview_statement
    from .ledger import SqlLedgerStore

    overrides = _parse_map_options(map_)
    try:
        session = preview_statement(
            file,
            ledger=SqlLedgerStore(database_url=database_url),
            account_id=account,
            bank_id=bank,
            mapping_overrides=overrides,
            delimiter=delimiter,
            config=_load_config(rules),
        )
        session.set_skip_duplicates(skip_duplicates)
        if exclude:
            session.exclude_rows(exclude)
    except _COMMAND_ERRORS as e:
        raise _fail(str(e)) from None

    _print_preview(session, file_label=file.name)
    typer.echo()

    pending = len(
        session.result.accepted(
            skip_duplicates=session.state.skip_duplicates, excluded=session.state.excluded
        )
    )
    if not yes and not typer.confirm(f"Commit {pending} transaction(s)?", default=False):
        session.abort()
        typer.echo("Aborted; nothing was written.")
        raise typer.Exit(1)

    try:
        result = session.commit()
    except StatementImportError as e:
        raise _fail(str(e)) from None

    typer.echo(
        f"Imported {len(result.transactions)} transaction(s) into {result.account_id}; "
        f"balance {_fmt_money(result.impact.starting_balance)} -> "
        f"{_fmt_money(result.impact.projected_ending_balance)}"
    )
    if result.skipped_rows:
        typer.echo(f"Skipped rows: {', '.join(str(i) for i in result.skipped_rows)}")


@app.command("init-db")
def init_db_cmd(
    *,
    seed_categories: bool = SEED_CATEGORIES_OPTION,
    taxonomy: Path | None = TAXONOMY_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Create the ledger tables (and optionally seed the category taxonomy)."""

    from db.client import create_schema

    from .categories import load_default_taxonomy, load_taxonomy
    from .categories import seed_categories as _seed

    try:
        create_schema(database_url=database_url)
        typer.echo("Schema ready.")
        if seed_categories or taxonomy is not None:
            source = load_taxonomy(taxonomy) if taxonomy is not None else load_default_taxonomy()
            n = _seed(source, database_url=database_url)
            typer.echo(f"Seeded {n} categories.")
    except _COMMAND_ERRORS as e:
        raise _fail(str(e)) from None


@app.callback()
def _root(log_level: str | None = LOG_LEVEL_OPTION) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    configure_logging(log_level)


if __name__ == "__main__":  # pragma: no cover - exercised via the console script
    app()
