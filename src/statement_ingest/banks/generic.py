from __future__ import annotations

import datetime
import re
from typing import List, Optional, Tuple

from ..models import AccountType, Direction, ParsedTransaction, StrategyKey
from ..normalize import classify_direction, direction_from_signed
from ..parse import Amount, clean_description, parse_amount
from .base import DateParser, Strategy


_DATE = r"\d{1,2}/\d{1,2}/\d{2,4}"
_SHORT_DATE = r"\d{1,2}/\d{1,2}"
_AMT = r"-?\$?\d[\d,]*\.\d{2}(?:\s?CR)?"

# (nombre, regex). Orden = prioridad; la primera forma que calza en la línea gana.
LINE_SHAPES: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("date_desc_amount", re.compile(rf"^({_DATE})\s+([^$\d\n]+?)\s+({_AMT})\s*$")),
    ("date_date_desc_amount", re.compile(rf"^({_DATE})\s+{_DATE}\s+([^$\d\n]+?)\s+({_AMT})\s*$")),
    ("short_date_desc_amount", re.compile(rf"^({_SHORT_DATE})\s+([^$\d\n]+?)\s+({_AMT})\s*$")),
    # dos montos: débito/crédito o monto/balance; se toma el primero
    # (la descripción puede traer números: STORE 123, CHECK 1001)
    ("date_desc_two_amounts", re.compile(rf"^({_DATE})\s+(.+?)\s+({_AMT})\s+{_AMT}\s*$")),
    ("date_desc_ref_amount", re.compile(rf"^({_DATE})\s+(.+?)\s+({_AMT})\s*$")),
    ("desc_amount", re.compile(rf"^([A-Za-z][^$\d\n]+?)\s+({_AMT})\s*$")),
)

IGNORE_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"interest paid",
        r"service charges",
        r"fees",
        r"balance summary",
        r"account summary",
        r"page \d+ of \d+",
        r"continued on next page",
        r"beginning balance",
        r"ending balance",
        r"total deposits",
        r"total withdrawals",
        r"statement period",
        r"customer service",
        r"account number",
        r"routing number",
    )
)

NON_TRANSACTION_WORDS = ("TOTAL", "BALANCE", "SUMMARY", "PAGE", "ACCOUNT", "STATEMENT", "PERIOD")

MIN_LINE_LENGTH = 10
MIN_DESCRIPTION_LENGTH = 3

_LEADING_DATE_RE = re.compile(rf"^({_DATE}|{_SHORT_DATE})\b")


def _direction(amount: Amount, description: str, account_type: AccountType) -> Direction:
    if amount.debit:
        return direction_from_signed(-amount.value, account_type)
    if amount.credit:
        return Direction.INCOME
    return classify_direction(description, account_type)


class GenericStrategy(Strategy):
    """
    Fallback línea por línea:
    - descarta líneas cortas o de 'boilerplate' (balances, páginas, totales)
    - prueba formas de línea en orden de prioridad
    - 'descripción + monto' sin fecha usa la última fecha vista (o se descarta)
    """

    key = StrategyKey.GENERIC
    name = "Generic Bank Statement"

    def parse(self, text: str, account_type: AccountType) -> List[ParsedTransaction]:
        to_date = self.date_parser(text)
        txs: List[ParsedTransaction] = []
        last_date: Optional[datetime.date] = None

        for raw in (text or "").splitlines():
            line = raw.strip()
            if len(line) < MIN_LINE_LENGTH:
                continue

            lead = _LEADING_DATE_RE.match(line)
            if lead:
                seen = to_date(lead.group(1))
                if seen:
                    last_date = seen

            if any(p.search(line) for p in IGNORE_PATTERNS):
                continue

            tx = self._match_line(line, to_date, last_date, account_type)
            if tx is not None:
                txs.append(tx)

        self.log.debug("%s: %d transacciones", self.name, len(txs))
        return txs

    def _match_line(
        self,
        line: str,
        to_date: DateParser,
        last_date: Optional[datetime.date],
        account_type: AccountType,
    ) -> Optional[ParsedTransaction]:
        for shape, pattern in LINE_SHAPES:
            m = pattern.match(line)
            if not m:
                continue

            if shape == "desc_amount":
                date = last_date
                desc_raw, amount_raw = m.group(1), m.group(2)
            else:
                date = to_date(m.group(1))
                desc_raw, amount_raw = m.group(2), m.group(3)

            # la forma calzó: si el resto no sirve, la línea se descarta (no se prueba otra forma)
            if date is None:
                return None

            description = clean_description(desc_raw)
            if len(description) < MIN_DESCRIPTION_LENGTH:
                return None
            upper = description.upper()
            if any(w in upper for w in NON_TRANSACTION_WORDS):
                return None

            amount = parse_amount(amount_raw)
            if amount is None:
                return None

            return ParsedTransaction(
                date=date,
                description=description,
                amount=amount.value,
                direction=_direction(amount, description, account_type),
            )
        return None
