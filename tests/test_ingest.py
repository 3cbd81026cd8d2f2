from __future__ import annotations

import datetime
import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from statement_ingest.config import Settings
from statement_ingest.errors import DocumentNotFoundError, InvalidStateError
from statement_ingest.ingest import NO_TRANSACTIONS_ERROR, IngestionService
from statement_ingest.models import (
    Account,
    AccountType,
    FileStatus,
    ImportOptions,
    StatementType,
    StrategyKey,
)


def _events(caplog, name):
    return [r for r in caplog.records if getattr(r, "event", None) == name]


def _only_account(store):
    assert len(store.accounts) == 1, f"Cuentas: {list(store.accounts.values())}"
    return next(iter(store.accounts.values()))


def _monthly(month: int, last_day: int, amount: str, ending: str) -> str:
    return (
        f"Statement Period: {month:02d}/01/2024 - {month:02d}/{last_day}/2024\n"
        f"{month:02d}/05/2024 Coffee Shop {amount}\n"
        f"Ending Balance: {ending}\n"
    )


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def test_csv_import_creates_account_and_statement(service, store, write_file, load_sample):
    path = write_file("export.csv", load_sample("checking_export.csv"))
    result = service.process_file(path, "u1")

    assert result.success, result.errors
    assert result.file_type == "csv"
    assert result.strategy == "CSV"
    assert result.transactions_found == 3
    assert result.transactions_imported == 3
    assert result.duplicates == 0

    account = _only_account(store)
    assert account.name == "Imported Checking Account"
    assert result.final_account_id == account.id
    assert account.balance == 2433.68

    amounts = sorted(t.amount for t in store.transactions)
    assert amounts == [-54.32, -12.0, 2500.0]

    (statement,) = store.statements
    assert statement.statement_type == StatementType.CUSTOM
    assert statement.period_start_date == datetime.date(2024, 1, 15)
    assert statement.period_end_date == datetime.date(2024, 1, 20)
    assert statement.notes == "Imported from CSV file with 3 transactions. Calculated balance: 2433.68"

    (section,) = statement.sections
    assert section.ending_balance is None
    assert section.total_debits == 66.32
    assert section.total_credits == 2500.0
    assert section.transaction_count == 3


def test_csv_reimport_is_idempotent(service, store, write_file, load_sample):
    path = write_file("export.csv", load_sample("checking_export.csv"))
    service.process_file(path, "u1")
    again = service.process_file(path, "u1")

    assert again.success
    assert again.transactions_imported == 0
    assert again.duplicates == 3
    assert len(store.transactions) == 3
    assert _only_account(store).balance == 2433.68


def test_csv_categories(service, store, write_file, load_sample):
    path = write_file("export.csv", load_sample("checking_export.csv"))
    service.process_file(path, "u1")

    by_description = {t.description: store.categories[t.category_id].name for t in store.transactions}
    assert by_description == {
        "Grocery Store": "Needs Review",
        "Payroll Deposit": "Transfer In",
        "Random Merchant XYZ": "Needs Review",
    }
    needs_review = [c for c in store.categories.values() if c.name == "Needs Review"]
    assert len(needs_review) == 1 and needs_review[0].is_system


def test_categorizer_failure_falls_back_to_needs_review(store, settings, caplog):
    class Exploding:
        def categorize(self, description, amount, user_id):
            raise RuntimeError("modelo caído")

    service = IngestionService(store, Exploding(), settings=settings)
    result = service.process_csv_text("Date,Description,Amount\n01/15/2024,Coffee,-4.50\n", "u1")

    assert result.success
    assert result.transactions_imported == 1
    (tx,) = store.transactions
    assert store.categories[tx.category_id].name == "Needs Review"
    assert _events(caplog, "categorization_failed")


def test_description_length_comes_from_settings(store, tmp_path):
    short = Settings(UPLOAD_DIR=tmp_path, PROCESSED_DIR=tmp_path, MAX_DESCRIPTION_LENGTH=10)
    service = IngestionService(store, settings=short)
    text = "Date,Description,Amount\n01/15/2024,Grocery Store Downtown Location,-54.32\n"

    service.process_csv_text(text, "u1")
    again = service.process_csv_text(text, "u1")

    (tx,) = store.transactions
    assert tx.description == "Grocery St"
    assert again.duplicates == 1


def test_description_length_setting_is_bounded(tmp_path):
    with pytest.raises(ValidationError):
        Settings(UPLOAD_DIR=tmp_path, MAX_DESCRIPTION_LENGTH=0)
    with pytest.raises(ValidationError):
        Settings(UPLOAD_DIR=tmp_path, MAX_DESCRIPTION_LENGTH=300)


def test_credit_card_csv_sign(service, store):
    options = ImportOptions(account_type=AccountType.CREDIT_CARD, bank_name="Chase")
    result = service.process_csv_text("Date,Description,Amount\n01/15/2024,Grocery Store,-54.32\n", "u1", options)

    assert result.success
    assert result.bank_type == "CHASE"
    (tx,) = store.transactions
    assert tx.amount == -54.32
    assert _only_account(store).name == "Chase Credit Card"


# ---------------------------------------------------------------------------
# Statements (texto)
# ---------------------------------------------------------------------------


def test_td_checking_statement(service, store, write_file, load_sample):
    path = write_file("td.txt", load_sample("td_checking.txt"))
    result = service.process_file(path, "u1", ImportOptions(account_type=AccountType.CHECKING))

    assert result.success, result.errors
    assert result.bank_type == "TD_BANK"
    assert result.strategy == StrategyKey.TD_BANK_CHECKING.value
    assert result.transactions_imported == 3
    assert result.statement_balance == 1400.0
    assert result.statement_period_start == datetime.date(2025, 3, 5)
    assert result.statement_period_end == datetime.date(2025, 4, 4)
    assert any("revisar manualmente" in w for w in result.warnings)

    account = _only_account(store)
    assert account.name == "TD Bank Checking"
    assert account.institution == "TD Bank"
    assert account.balance == 1400.0
    assert sorted(t.amount for t in store.transactions) == [-200.0, -100.0, 500.0]

    (section,) = store.statements[0].sections
    assert section.beginning_balance == 1200.0
    assert section.ending_balance == 1400.0
    assert section.total_debits == 300.0
    assert section.total_credits == 500.0


def test_td_credit_card_statement_signs(service, store, write_file, load_sample):
    path = write_file("td_cc.txt", load_sample("td_credit_card.txt"))
    result = service.process_file(path, "u1", ImportOptions(account_type=AccountType.CREDIT_CARD))

    assert result.success, result.errors
    assert result.strategy == StrategyKey.TD_BANK_CREDIT_CARD.value
    assert sorted(t.amount for t in store.transactions) == [-100.0, 19.94]
    assert _only_account(store).balance == 419.94


def test_existing_account_is_reused(service, store, write_file, load_sample):
    existing = store.create_account(
        Account(id="", user_id="u1", name="Mi TD", type=AccountType.CHECKING, institution="TD Bank")
    )
    path = write_file("td.txt", load_sample("td_checking.txt"))
    result = service.process_file(path, "u1")

    assert result.final_account_id == existing.id
    assert len(store.accounts) == 1


def test_unknown_explicit_account_is_an_error(service, store, write_file, load_sample):
    path = write_file("generic.txt", load_sample("generic_march.txt"))
    result = service.process_file(path, "u1", ImportOptions(account_id="missing"))

    assert not result.success
    assert result.errors == ["No existe la cuenta: missing"]
    assert store.transactions == []


def test_generic_statement_recalculates_balance(service, store, write_file, load_sample):
    path = write_file("generic.txt", load_sample("generic_march.txt"))
    result = service.process_file(path, "u1")

    assert result.success
    assert result.strategy == StrategyKey.GENERIC.value
    assert result.statement_balance is None
    assert result.statement_period_start == datetime.date(2024, 3, 1)
    assert result.statement_period_end == datetime.date(2024, 3, 30)
    assert _only_account(store).balance == 1410.30


def test_older_statement_does_not_overwrite_balance(service, store, caplog):
    service.process_statement_text(_monthly(2, 29, "5.50", "900.00"), "u1")
    older = service.process_statement_text(_monthly(1, 31, "4.50", "1,000.00"), "u1")

    assert older.success
    assert older.statement_balance == 1000.0
    assert _only_account(store).balance == 900.0
    assert any("no se actualizó" in w for w in older.warnings)
    assert _events(caplog, "balance_superseded")

    service.process_statement_text(_monthly(3, 31, "6.00", "850.00"), "u1")
    assert _only_account(store).balance == 850.0
    assert len(store.statements) == 3


def test_statement_crossing_the_year_keeps_transactions_in_period(service, store):
    text = (
        "Statement Period: 12/15/2023 - 01/14/2024\n"
        "12/20 Coffee Shop Downtown 5.00\n"
        "01/05 Grocery Mart Store 20.00\n"
    )
    result = service.process_statement_text(text, "u1")

    assert result.success, result.errors
    assert result.statement_period_start == datetime.date(2023, 12, 15)
    assert result.statement_period_end == datetime.date(2024, 1, 14)
    assert sorted(t.date for t in store.transactions) == [datetime.date(2023, 12, 20), datetime.date(2024, 1, 5)]

    (statement,) = store.statements
    (section,) = statement.sections
    assert section.transaction_count == 2
    assert section.total_debits == 25.0


def test_csv_after_statement_keeps_anchored_balance(service, store):
    service.process_statement_text(_monthly(1, 31, "4.50", "1,000.00"), "u1")
    service.process_csv_text("Date,Description,Amount\n02/02/2024,Bakery,-10.00\n", "u1")

    assert len(store.transactions) == 2
    assert _only_account(store).balance == 1000.0


def test_ally_multi_account_statement(service, store, write_file, load_sample):
    path = write_file("ally.txt", load_sample("ally_savings_multi.txt"))
    result = service.process_file(path, "u1", ImportOptions(account_type=AccountType.SAVINGS))

    assert result.success, result.errors
    assert result.bank_type == "ALLY_BANK"
    assert result.final_account_id is None
    assert result.transactions_imported == 2
    assert len(result.accounts) == 2

    balances = {a.name: a.balance for a in store.accounts.values()}
    assert balances == {"Emergency Fund": 20035.0, "Vacation Savings": 950.0}
    assert all(a.institution == "Ally Bank" for a in store.accounts.values())

    (statement,) = store.statements
    assert statement.notes == "Multi-account statement with 2 accounts"
    assert [s.account_number for s in statement.sections] == ["xxxxxx1234", "xxxxxx5678"]
    assert statement.sections[0].total_credits == 35.0
    assert statement.sections[1].total_debits == 50.0
    assert statement.sections[1].last_four == "5678"

    by_account = {store.accounts[t.account_id].name: t.amount for t in store.transactions}
    assert by_account == {"Emergency Fund": 35.0, "Vacation Savings": -50.0}


def test_ally_statement_created_under_every_account_lock(service, store, write_file, load_sample, monkeypatch):
    path = write_file("ally.txt", load_sample("ally_savings_multi.txt"))
    create_statement = store.create_statement
    held = []

    def recording(statement):
        held.append([service._account_lock(s.account_id).locked() for s in statement.sections])
        return create_statement(statement)

    monkeypatch.setattr(store, "create_statement", recording)
    result = service.process_file(path, "u1", ImportOptions(account_type=AccountType.SAVINGS))

    assert result.success, result.errors
    assert held == [[True, True]]
    # al terminar no queda ningún lock tomado
    assert not any(service._account_lock(a).locked() for a in store.accounts)


def test_ally_reimport_reuses_sub_accounts(service, store, write_file, load_sample):
    path = write_file("ally.txt", load_sample("ally_savings_multi.txt"))
    options = ImportOptions(account_type=AccountType.SAVINGS)
    service.process_file(path, "u1", options)
    again = service.process_file(path, "u1", options)

    assert again.duplicates == 2
    assert len(store.accounts) == 2


# ---------------------------------------------------------------------------
# Errores de entrada
# ---------------------------------------------------------------------------


def test_missing_file(service, tmp_path, caplog):
    result = service.process_file(tmp_path / "nope.csv", "u1")

    assert not result.success
    assert result.errors and result.errors[0].startswith("No existe el archivo")
    assert _events(caplog, "input_error")


def test_unsupported_extension(service, write_file):
    path = write_file("statement.xlsx", "x")
    result = service.process_file(path, "u1")

    assert not result.success
    assert "Tipo de archivo no soportado: .xlsx" in result.errors[0]


def test_empty_file(service, write_file):
    result = service.process_file(write_file("empty.txt", "   \n"), "u1")
    assert result.errors == ["No se encontró contenido de texto en el archivo"]


def test_no_transactions(service, store, write_file):
    result = service.process_file(write_file("blank.txt", "Nothing to see here\n"), "u1")

    assert not result.success
    assert result.errors == [NO_TRANSACTIONS_ERROR]
    assert store.accounts == {}
    assert store.statements == []


# ---------------------------------------------------------------------------
# Ciclo de vida de un archivo subido
# ---------------------------------------------------------------------------


def _register(service, load_sample, name="checking export.csv", sample="checking_export.csv", **options):
    content = load_sample(sample).encode("utf-8")
    return service.register_upload("u1", content, name, ImportOptions(**options))


def test_upload_lifecycle(service, store, settings, load_sample):
    uploaded = _register(service, load_sample)
    assert uploaded.status == FileStatus.PENDING
    assert Path(uploaded.file_path).parent == Path(settings.UPLOAD_DIR)
    assert uploaded.filename.startswith("checking_export_")

    result = service.process_uploaded_file(uploaded.id)
    assert result.success

    stored = store.get_uploaded_file(uploaded.id)
    assert stored.status == FileStatus.COMPLETED
    assert stored.error_message is None
    assert stored.transaction_count == 3
    assert stored.processed_at is not None
    assert stored.account_id == result.final_account_id
    assert Path(stored.file_path).parent == Path(settings.PROCESSED_DIR)
    assert Path(stored.file_path).exists()
    assert not Path(uploaded.file_path).exists()

    details = json.loads(stored.processing_details)
    assert details["transactions_found"] == 3
    assert details["strategy"] == "CSV"
    assert len(details["transactions"]) == 3

    assert all(t.id for t in store.transactions)
    (statement,) = store.statements
    assert statement.uploaded_file_id == uploaded.id

    with pytest.raises(InvalidStateError):
        service.process_uploaded_file(uploaded.id)


def test_upload_with_no_transactions_fails(service, store):
    uploaded = service.register_upload("u1", b"Nothing to see here\n", "notes.txt")
    result = service.process_uploaded_file(uploaded.id)

    stored = store.get_uploaded_file(uploaded.id)
    assert not result.success
    assert stored.status == FileStatus.FAILED
    assert stored.error_message == NO_TRANSACTIONS_ERROR
    assert Path(stored.file_path).exists(), "Un archivo fallido queda en uploads"


def test_failure_mid_import_then_retry(service, store, load_sample, monkeypatch, caplog):
    uploaded = _register(service, load_sample)

    def broken(statement):
        raise RuntimeError("db down")

    monkeypatch.setattr(store, "create_statement", broken)
    result = service.process_uploaded_file(uploaded.id)

    stored = store.get_uploaded_file(uploaded.id)
    assert result.errors == ["db down"]
    assert stored.status == FileStatus.FAILED
    assert stored.error_message == "db down"
    # las transacciones ya insertadas no se revierten
    assert len(store.transactions) == 3
    assert _events(caplog, "processing_failed")

    monkeypatch.undo()
    reset = service.retry_upload(uploaded.id)
    assert reset.status == FileStatus.PENDING
    assert reset.error_message is None
    assert reset.processed_at is None

    again = service.process_uploaded_file(uploaded.id)
    assert again.success
    assert again.transactions_imported == 0
    assert again.duplicates == 3
    assert store.get_uploaded_file(uploaded.id).status == FileStatus.COMPLETED


def test_retry_requires_failed(service, load_sample):
    uploaded = _register(service, load_sample)
    with pytest.raises(InvalidStateError):
        service.retry_upload(uploaded.id)


def test_unknown_upload(service):
    with pytest.raises(DocumentNotFoundError):
        service.process_uploaded_file("missing")


def test_update_metadata_resets_to_pending(service, store, load_sample):
    # subido como checking: el layout de tarjeta no se reconoce
    uploaded = _register(service, load_sample, name="td.txt", sample="td_credit_card.txt")
    first = service.process_uploaded_file(uploaded.id)
    assert not first.success
    assert first.strategy == StrategyKey.GENERIC.value
    assert store.get_uploaded_file(uploaded.id).status == FileStatus.FAILED

    updated = service.update_metadata(uploaded.id, account_type=AccountType.CREDIT_CARD, bank_name="TD Bank")
    assert updated.account_type == AccountType.CREDIT_CARD
    assert updated.bank_name == "TD Bank"
    assert updated.status == FileStatus.PENDING
    assert updated.processing_details is None

    second = service.process_uploaded_file(uploaded.id)
    assert second.success, second.errors
    assert second.strategy == StrategyKey.TD_BANK_CREDIT_CARD.value
    assert second.transactions_imported == 2


def test_update_metadata_rejected_while_processing(service, store, load_sample):
    uploaded = _register(service, load_sample)
    store.update_uploaded_file(uploaded.id, status=FileStatus.PROCESSING)

    with pytest.raises(InvalidStateError):
        service.update_metadata(uploaded.id, bank_name="Chase")
