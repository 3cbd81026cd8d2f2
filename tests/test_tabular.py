from __future__ import annotations

import datetime

from statement_ingest.models import AccountType, Direction
from statement_ingest.normalize import signed_amount
from statement_ingest.tabular import map_headers, parse_csv_transactions, split_rows


def test_checking_single_amount_column_negative_is_expense():
    text = "Date,Description,Amount\n01/15/2024,Grocery Store,-54.32\n"
    txs = parse_csv_transactions(text, AccountType.CHECKING)

    assert len(txs) == 1
    tx = txs[0]
    assert tx.date == datetime.date(2024, 1, 15)
    assert tx.description == "Grocery Store"
    assert tx.amount == 54.32
    assert tx.direction == Direction.EXPENSE
    assert signed_amount(tx.direction, tx.amount, AccountType.CHECKING) == -54.32


def test_credit_card_single_amount_column_negative_is_payment():
    """
    Regresión: en tarjeta de crédito el monto de la columna única ya viene en
    la convención del ledger (negativo = baja la deuda) => INCOME, firmado -54.32.
    """
    text = "Date,Description,Amount\n01/15/2024,Grocery Store,-54.32\n"
    txs = parse_csv_transactions(text, AccountType.CREDIT_CARD)

    assert len(txs) == 1
    assert txs[0].direction == Direction.INCOME
    assert signed_amount(txs[0].direction, txs[0].amount, AccountType.CREDIT_CARD) == -54.32


def test_credit_card_positive_amount_is_charge():
    text = "Date,Description,Amount\n01/15/2024,Coffee,4.50\n"
    txs = parse_csv_transactions(text, AccountType.CREDIT_CARD)
    assert txs[0].direction == Direction.EXPENSE
    assert signed_amount(txs[0].direction, txs[0].amount, AccountType.CREDIT_CARD) == 4.50


def test_malformed_row_is_dropped_not_counted():
    text = (
        "Date,Description,Amount,Balance\n"
        "01/15/2024,Grocery Store,-54.32\n"
        "01/16/2024,Payroll,2500.00,2445.68\n"
    )
    txs = parse_csv_transactions(text, AccountType.CHECKING)
    assert len(txs) == 1, "La fila con 3 valores debe descartarse"
    assert txs[0].description == "Payroll"


def test_debit_and_credit_columns():
    text = (
        "Posted Date,Memo,Debit,Credit\n"
        "02/01/2024,ATM Withdrawal,60.00,\n"
        "02/02/2024,Direct Deposit,,1200.00\n"
        "02/03/2024,Nothing here,,\n"
    )
    txs = parse_csv_transactions(text, AccountType.CHECKING)

    assert [t.direction for t in txs] == [Direction.EXPENSE, Direction.INCOME]
    assert [t.amount for t in txs] == [60.0, 1200.0]


def test_credit_wins_when_both_columns_are_filled():
    text = (
        "Date,Description,Debit,Credit\n"
        "02/05/2024,Reversal Adjustment,15.00,40.00\n"
        "02/06/2024,Card Purchase,22.10,0.00\n"
    )
    txs = parse_csv_transactions(text, AccountType.CHECKING)

    assert [(t.amount, t.direction) for t in txs] == [
        (40.0, Direction.INCOME),
        # un crédito en cero no cuenta: queda el débito
        (22.10, Direction.EXPENSE),
    ]


def test_rows_without_date_or_description_are_skipped():
    text = (
        "Date,Description,Amount\n"
        "not a date,Coffee,-4.50\n"
        "01/15/2024,,-4.50\n"
        "01/15/2024,Zero,0.00\n"
        "01/16/2024,Valid,-1.00\n"
    )
    txs = parse_csv_transactions(text, AccountType.CHECKING)
    assert [t.description for t in txs] == ["Valid"]


def test_map_headers_assigns_each_column_once():
    mapping = map_headers(["Transaction Date", "Transaction Description", "Transaction Amount"])
    assert mapping["date"] == 0
    assert mapping["amount"] == 2
    assert mapping["description"] == 1


def test_split_rows_quoted_values():
    header, rows = split_rows('Date,Description,Amount\n01/15/2024,"Store, Inc.",-1.00\n')
    assert header == ["Date", "Description", "Amount"]
    assert rows == [["01/15/2024", "Store, Inc.", "-1.00"]]


def test_unmapped_header_returns_nothing(caplog):
    txs = parse_csv_transactions("Foo,Bar\n1,2\n", AccountType.CHECKING)
    assert txs == []
    assert any(getattr(r, "event", None) == "csv_header_unmapped" for r in caplog.records)
