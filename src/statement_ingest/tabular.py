from __future__ import annotations

import csv
import io
import logging
from typing import Dict, List, Optional, Tuple

from .models import AccountType, Direction, ParsedTransaction
from .parse import Amount, clean_description, parse_amount, parse_date


logger = logging.getLogger(__name__)


# campo semántico -> nombres de columna aceptados (ya normalizados)
HEADER_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "date": ("date", "transaction date", "posted date", "posting date", "trans date", "post date"),
    "debit": ("debit", "debit amount", "withdrawal", "withdrawals"),
    "credit": ("credit", "credit amount", "deposit", "deposits"),
    "amount": ("amount", "transaction amount"),
    "description": ("description", "memo", "transaction", "details", "reference", "payee"),
}


def _normalize_header(name: str) -> str:
    """'  "Posted  Date" ' -> 'posted date'"""
    return " ".join(name.strip().strip('"').strip("'").split()).lower()


def map_headers(headers: List[str]) -> Dict[str, int]:
    """
    Construye campo -> índice de columna.
    - primero coincidencias exactas, luego por substring
    - una columna se asigna a un solo campo ('transaction date' no puede
      terminar también como 'description' por contener 'transaction')
    """
    normalized = [_normalize_header(h) for h in headers]
    mapping: Dict[str, int] = {}
    taken: set = set()

    for exact in (True, False):
        for field, synonyms in HEADER_SYNONYMS.items():
            if field in mapping:
                continue
            for idx, header in enumerate(normalized):
                if idx in taken:
                    continue
                hit = header in synonyms if exact else any(s in header for s in synonyms)
                if hit:
                    mapping[field] = idx
                    taken.add(idx)
                    break

    return mapping


def split_rows(text: str) -> Tuple[List[str], List[List[str]]]:
    """
    Header + filas bien formadas. Filas con distinta cantidad de columnas que
    el header se descartan (no invalidan el archivo).
    """
    lines = [ln for ln in text.splitlines() if ln.strip()]
    if len(lines) < 2:
        return [], []

    reader = csv.reader(io.StringIO("\n".join(lines)))
    records = list(reader)
    header = [h.strip() for h in records[0]]

    rows: List[List[str]] = []
    dropped = 0
    for record in records[1:]:
        if len(record) != len(header):
            dropped += 1
            continue
        rows.append([v.strip() for v in record])

    if dropped:
        logger.debug("Filas CSV descartadas por columnas: %d", dropped, extra={"event": "csv_rows_dropped"})
    return header, rows


def _cell(row: List[str], mapping: Dict[str, int], field: str) -> str:
    idx = mapping.get(field)
    if idx is None:
        return ""
    return row[idx]


def _direction_for_signed_column(amount: Amount, account_type: AccountType) -> Direction:
    # Columna única con signo: el monto ya viene en la convención del ledger
    negative = amount.debit
    if account_type.is_credit:
        return Direction.INCOME if negative else Direction.EXPENSE
    return Direction.EXPENSE if negative else Direction.INCOME


def row_to_transaction(
    row: List[str],
    mapping: Dict[str, int],
    account_type: AccountType,
) -> Optional[ParsedTransaction]:
    date = parse_date(_cell(row, mapping, "date"))
    if date is None:
        return None

    description = clean_description(_cell(row, mapping, "description"))
    if not description:
        return None

    amount = parse_amount(_cell(row, mapping, "amount"))
    if amount is not None:
        direction = _direction_for_signed_column(amount, account_type)
    else:
        debit = parse_amount(_cell(row, mapping, "debit"))
        credit = parse_amount(_cell(row, mapping, "credit"))
        # con las dos columnas llenas gana el crédito
        if credit is not None:
            amount, direction = credit, Direction.INCOME
        elif debit is not None:
            amount, direction = debit, Direction.EXPENSE
        else:
            return None

    return ParsedTransaction(date=date, description=description, amount=amount.value, direction=direction)


def parse_csv_transactions(text: str, account_type: AccountType) -> List[ParsedTransaction]:
    header, rows = split_rows(text)
    if not header:
        return []

    mapping = map_headers(header)
    if "date" not in mapping or not ({"amount", "debit", "credit"} & set(mapping)):
        logger.warning(
            "Header CSV sin columnas reconocibles: %s",
            header,
            extra={"event": "csv_header_unmapped", "header": header},
        )
        return []

    txs: List[ParsedTransaction] = []
    for row in rows:
        tx = row_to_transaction(row, mapping, account_type)
        if tx is not None:
            txs.append(tx)
    return txs
