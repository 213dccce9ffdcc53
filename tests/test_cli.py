import json
from decimal import Decimal

import pytest
from typer.testing import CliRunner

from statement_import.categories import load_default_taxonomy, load_taxonomy_from_db
from statement_import.cli import app
from statement_import.models import Category, TransactionType
from tests.helpers.db import account_balance, bootstrap_sqlite_db, imported_rows, seed_accounts

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_dotenv(tmp_path, monkeypatch):
    # The root callback loads .env from the working directory.
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def db_url(tmp_path):
    url = bootstrap_sqlite_db(tmp_path / "ledger.sqlite")
    seed_accounts(database_url=url, accounts=[("acc1", "Cuenta Nómina", "1000.00")])
    return url


def _args(cmd, data_dir, db_url, *extra):
    return [
        cmd,
        str(data_dir / "santander_2026_01.csv"),
        "--account",
        "acc1",
        "--bank",
        "santander",
        "--database-url",
        db_url,
        *extra,
    ]


def test_banks_lists_templates_and_manual():
    result = runner.invoke(app, ["banks"])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0].startswith("santander\tBanco Santander\t")
    assert any(line.startswith("bbva\tBBVA") for line in lines)
    assert lines[-1].startswith("manual\t")


def test_preview_prints_summary_and_writes_nothing(data_dir, db_url):
    result = runner.invoke(app, _args("preview", data_dir, db_url))

    assert result.exit_code == 0, result.output
    assert "Rows: 10 total, 9 valid, 0 possible duplicate(s), 1 with errors" in result.output
    assert "projected 2,789.26" in result.output
    assert "! amount: missing or non-numeric amount" in result.output
    assert imported_rows(database_url=db_url, account_id="acc1") == []
    assert account_balance(database_url=db_url, account_id="acc1") == Decimal("1000.00")


def test_import_with_yes_commits(data_dir, db_url):
    result = runner.invoke(app, _args("import", data_dir, db_url, "--yes", "-x", "1"))

    assert result.exit_code == 0, result.output
    assert "Imported 8 transaction(s) into acc1; balance 1,000.00 -> 639.26" in result.output
    assert "Skipped rows: 1, 9" in result.output
    rows = imported_rows(database_url=db_url, account_id="acc1")
    assert len(rows) == 8
    assert all(r.source == "import" for r in rows)
    assert account_balance(database_url=db_url, account_id="acc1") == Decimal("639.26")


def test_import_declined_at_prompt(data_dir, db_url):
    result = runner.invoke(app, _args("import", data_dir, db_url), input="n\n")

    assert result.exit_code == 1
    assert "Aborted; nothing was written." in result.output
    assert imported_rows(database_url=db_url, account_id="acc1") == []


def test_errors_exit_with_message(data_dir, db_url, tmp_path):
    result = runner.invoke(
        app, _args("preview", data_dir, db_url)[:2] + ["--account", "zzz", "--database-url", db_url]
    )
    assert result.exit_code == 1
    assert "Error: unknown account: 'zzz'" in result.output

    missing = runner.invoke(
        app, ["preview", str(tmp_path / "nope.csv"), "--account", "acc1", "--database-url", db_url]
    )
    assert missing.exit_code == 1
    assert "Error: cannot read" in missing.output


def test_bad_map_option_is_a_usage_error(data_dir, db_url):
    result = runner.invoke(app, _args("preview", data_dir, db_url, "--map", "colour=Importe"))

    assert result.exit_code == 2


def test_map_option_overrides_mapping(data_dir, db_url):
    result = runner.invoke(
        app, _args("preview", data_dir, db_url, "--map", "date=Fecha Valor")
    )

    assert result.exit_code == 0, result.output
    assert "date='Fecha Valor'" in result.output


def test_init_db_with_seed(tmp_path):
    url = f"sqlite+pysqlite:///{tmp_path / 'fresh.sqlite'}"

    result = runner.invoke(app, ["init-db", "--seed-categories", "--database-url", url])

    assert result.exit_code == 0, result.output
    assert "Schema ready." in result.output
    assert "Seeded " in result.output
    assert load_taxonomy_from_db(database_url=url) == list(load_default_taxonomy())


def test_preview_prints_row_breakdown(data_dir, db_url):
    result = runner.invoke(app, _args("preview", data_dir, db_url))

    assert result.exit_code == 0, result.output
    assert "Dates: 2026-01-15 .. 2026-01-23    Income rows: 2    Expense rows: 7" in result.output
    assert (
        "Categories: Alimentación 2, Trabajo 1, Transporte 1, Ocio 1, Salud 1, "
        "Transferencia 1, Vivienda 1, Servicios 1"
    ) in result.output


def test_rules_file_replaces_bundled_rules(data_dir, db_url, tmp_path):
    rules = tmp_path / "rules.json"
    rules.write_text(
        json.dumps(
            {
                "schema_version": 1,
                "rules": [
                    {"category": "Ocio", "sub_category": "Cine y Eventos", "keywords": ["netflix"]}
                ],
            }
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, _args("preview", data_dir, db_url, "--rules", str(rules)))

    assert result.exit_code == 0, result.output
    assert "Ocio / Cine y Eventos" in result.output
    assert "Uncategorized" in result.output


def test_malformed_rules_file_is_an_error(data_dir, db_url, tmp_path):
    rules = tmp_path / "rules.json"
    rules.write_text('{"schema_version": 1, "rules": [{"category": "X"}]}', encoding="utf-8")

    result = runner.invoke(app, _args("preview", data_dir, db_url, "--rules", str(rules)))

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_init_db_seeds_taxonomy_file(tmp_path):
    url = f"sqlite+pysqlite:///{tmp_path / 'custom.sqlite'}"
    taxonomy = tmp_path / "categories.json"
    taxonomy.write_text(
        json.dumps(
            {
                "schema_version": 1,
                "categories": [
                    {"name": "Comida", "type": "EXPENSE", "sub_categories": ["Café", "Menú"]},
                    {"name": "Sueldo", "type": "INCOME"},
                ],
            }
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["init-db", "--taxonomy", str(taxonomy), "--database-url", url])

    assert result.exit_code == 0, result.output
    assert "Seeded 4 categories." in result.output
    assert load_taxonomy_from_db(database_url=url) == [
        Category("Comida", TransactionType.EXPENSE, ("Café", "Menú")),
        Category("Sueldo", TransactionType.INCOME, ()),
    ]
