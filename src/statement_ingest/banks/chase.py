from __future__ import annotations

import re
from typing import Dict, List, Optional

from ..models import AccountType, Direction, ParsedTransaction, StrategyKey
from ..parse import MONEY_RE, clean_description, money_candidates, nonempty_lines
from .base import DateParser, Strategy


SECTION_DIRECTIONS: Dict[str, Direction] = {
    "DEPOSITS AND ADDITIONS": Direction.INCOME,
    "CHECKS PAID": Direction.EXPENSE,
    "ATM & DEBIT CARD WITHDRAWALS": Direction.EXPENSE,
    "ELECTRONIC WITHDRAWALS": Direction.EXPENSE,
    "OTHER WITHDRAWALS": Direction.EXPENSE,
    "FEES": Direction.EXPENSE,
}

SECTION_RE = re.compile(
    r"^(" + "|".join(re.escape(s) for s in SECTION_DIRECTIONS) + r")\s*(\(continued\))?$"
)
SECTION_END_RE = re.compile(r"^(Total\b|DAILY ENDING BALANCE|ATM & DEBIT CARD SUMMARY)", re.IGNORECASE)
COLUMN_HEADER_RE = re.compile(r"^(DATE|DESCRIPTION|AMOUNT|CHECK NO\.?)\b", re.IGNORECASE)
MD_RE = re.compile(r"^(\d{1,2}/\d{1,2})\s+")
# '1234 ^ 01/05 $150.00'
CHECK_LINE_RE = re.compile(r"^(\d{3,6})\s+(?:\^\s+)?(?:\S+\s+)?(\d{1,2}/\d{1,2})\s+\$?([\d,]+\.\d{2})$")


class ChaseCheckingStrategy(Strategy):
    """
    Checking Chase: secciones en mayúsculas ('DEPOSITS AND ADDITIONS', 'ELECTRONIC WITHDRAWALS', ...),
    cada una con dirección fija. Una línea 'Total ...' cierra la sección.
    Cada transacción empieza con MM/DD; el monto es el último monto del bloque.
    """

    key = StrategyKey.CHASE_CHECKING
    name = "Chase Checking"

    def parse(self, text: str, account_type: AccountType) -> List[ParsedTransaction]:
        to_date = self.date_parser(text)
        txs: List[ParsedTransaction] = []
        section: Optional[str] = None
        block: List[str] = []

        def flush() -> None:
            if block and section:
                tx = self._from_block(block, SECTION_DIRECTIONS[section], to_date)
                if tx is not None:
                    txs.append(tx)
            block.clear()

        for line in nonempty_lines(text):
            m = SECTION_RE.match(line)
            if m:
                flush()
                section = m.group(1)
                continue

            if SECTION_END_RE.match(line):
                flush()
                section = None
                continue

            if section is None or COLUMN_HEADER_RE.match(line):
                continue

            if section == "CHECKS PAID":
                cm = CHECK_LINE_RE.match(line)
                if cm:
                    tx = self._check(cm, to_date)
                    if tx is not None:
                        txs.append(tx)
                continue

            if MD_RE.match(line):
                flush()
                block.append(line)
            elif block:
                block.append(line)

        flush()
        self.log.debug("%s: %d transacciones", self.name, len(txs))
        return txs

    def _from_block(self, block: List[str], direction: Direction, to_date: DateParser) -> Optional[ParsedTransaction]:
        md = MD_RE.match(block[0])
        date = to_date(md.group(1))
        if date is None:
            return None

        joined = " ".join(block)
        amounts = money_candidates(joined)
        if not amounts or amounts[-1] <= 0:
            return None

        body = joined[md.end():]
        last = None
        for last in MONEY_RE.finditer(body):
            pass
        if last is not None:
            body = body[: last.start()].rstrip("$ ") + " " + body[last.end():]
        description = clean_description(body)
        if not description:
            return None

        return ParsedTransaction(date=date, description=description, amount=amounts[-1], direction=direction)

    def _check(self, m: "re.Match[str]", to_date: DateParser) -> Optional[ParsedTransaction]:
        date = to_date(m.group(2))
        amount = float(m.group(3).replace(",", ""))
        if date is None or amount <= 0:
            return None
        return ParsedTransaction(
            date=date,
            description=f"Check {m.group(1)}",
            amount=round(amount, 2),
            direction=Direction.EXPENSE,
        )
