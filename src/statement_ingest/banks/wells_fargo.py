from __future__ import annotations

import re
from typing import List, Optional

from ..models import AccountType, Direction, ParsedTransaction, StrategyKey
from ..normalize import classify_direction
from ..parse import clean_description, money_candidates, nonempty_lines, to_money
from ..segment import TableSection, find_table_sections
from .base import DateParser, Strategy


DATE_RE = re.compile(r"^(\d{1,2}/\d{1,2})\b")
BEGIN_RE = re.compile(r"Beginning balance on\s+\d{1,2}/\d{1,2}\s+\$?([0-9,]+\.\d{2})", re.IGNORECASE)
_TRAILING_AMOUNTS_RE = re.compile(
    r"\s+\d{1,3}(?:,\d{3})*(?:\.\d{2})(?:\s+\d{1,3}(?:,\d{3})*(?:\.\d{2}))?\s*$"
)


def _clean_first_line(first_line: str) -> str:
    # quitar fecha al inicio
    s = re.sub(r"^\d{1,2}/\d{1,2}\s*", "", first_line).strip()
    # quitar hasta dos montos al final (amount y balance típicamente)
    return _TRAILING_AMOUNTS_RE.sub("", s).strip()


def _split_blocks(lines: List[str]) -> List[List[str]]:
    """
    Una transacción inicia con una línea que comienza con fecha M/D;
    las líneas siguientes (sin fecha) se agregan a la descripción.
    """
    blocks: List[List[str]] = []
    current: List[str] = []
    for line in lines:
        line = line.strip()
        if not line:
            continue
        if DATE_RE.match(line):
            if current:
                blocks.append(current)
            current = [line]
        elif current:
            current.append(line)
    if current:
        blocks.append(current)
    return blocks


def _section_account_type(section: TableSection) -> Optional[AccountType]:
    ctx = " ".join(section.context_lines or []).lower()
    if "savings" in ctx:
        return AccountType.SAVINGS
    if "checking" in ctx:
        return AccountType.CHECKING
    return None


class WellsFargoStrategy(Strategy):
    """
    Wells Fargo (checking / savings):
    - tablas 'Transaction history' (una por cuenta)
    - el monto y el balance vienen al final de la primera línea de cada bloque
    - dirección: por la variación del balance corrido cuando se puede, si no por palabras clave
    """

    key = StrategyKey.WELLS_FARGO_DEPOSIT
    name = "Wells Fargo Deposit"

    def parse(self, text: str, account_type: AccountType) -> List[ParsedTransaction]:
        to_date = self.date_parser(text)
        sections = find_table_sections(nonempty_lines(text))
        if not sections:
            return []

        # statement combinado: quedarse con las tablas de la cuenta declarada
        typed = [s for s in sections if _section_account_type(s) == account_type]
        if typed and len(typed) < len(sections):
            self.log.info(
                "Statement con %d tablas; se usan %d de tipo %s",
                len(sections),
                len(typed),
                account_type.value,
                extra={"event": "wells_fargo_sections_filtered"},
            )
            sections = typed

        begin = BEGIN_RE.search(text)
        opening = to_money(begin.group(1)) if begin and len(sections) == 1 else None

        txs: List[ParsedTransaction] = []
        for section in sections:
            txs.extend(self._parse_section(section.lines, to_date, account_type, opening))
        self.log.debug("%s: %d transacciones", self.name, len(txs))
        return txs

    def _parse_section(
        self,
        lines: List[str],
        to_date: DateParser,
        account_type: AccountType,
        opening: Optional[float],
    ) -> List[ParsedTransaction]:
        txs: List[ParsedTransaction] = []
        last_balance = opening

        for block in _split_blocks(lines):
            first = block[0]
            date = to_date(DATE_RE.match(first).group(1))
            if date is None:
                continue

            nums = money_candidates(first)
            balance: Optional[float] = None
            # si hay 2+ montos al final => (amount, balance)
            if len(nums) >= 2:
                raw_amount, balance = nums[-2], nums[-1]
            elif len(nums) == 1:
                raw_amount = nums[0]
            else:
                continue
            if raw_amount <= 0:
                continue

            desc_rest = " ".join(x.strip() for x in block[1:])
            description = clean_description(f"{_clean_first_line(first)} {desc_rest}")
            if not description:
                continue

            direction = self._direction(description, raw_amount, balance, last_balance, account_type)
            if balance is not None:
                last_balance = balance

            txs.append(
                ParsedTransaction(date=date, description=description, amount=raw_amount, direction=direction)
            )
        return txs

    def _direction(
        self,
        description: str,
        amount: float,
        balance: Optional[float],
        last_balance: Optional[float],
        account_type: AccountType,
    ) -> Direction:
        if balance is not None and last_balance is not None:
            delta = round(balance - last_balance, 2)
            if abs(abs(delta) - amount) <= 0.01:
                return Direction.INCOME if delta > 0 else Direction.EXPENSE
        return classify_direction(description, account_type)
