from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple

from ..models import AccountInfo, AccountType, Direction, ParsedTransaction, StrategyKey
from ..normalize import classify_direction
from ..parse import clean_description, nonempty_lines, parse_date, to_money
from .base import Strategy


ACCOUNT_TABLE_HEADERS = ("Account Name", "Account Number", "Beginning Balance", "Ending Balance")

_DOLLARS = r"-?\$[\d,]+\.\d{2}"

# 'Emergency Fund xxxxxx1234 $20,000.00 $18,537.56'
ACCOUNT_ROW_RE = re.compile(rf"^(.+?)\s+(x{{3,}}\d{{2,6}})\s+({_DOLLARS})\s+({_DOLLARS})$", re.IGNORECASE)

FULL_DATE_LINE_RE = re.compile(r"^(\d{2}/\d{2}/\d{4})$")
DOLLAR_LINE_RE = re.compile(rf"^({_DOLLARS})$")
ACTIVITY_ROW_RE = re.compile(rf"^(\d{{2}}/\d{{2}}/\d{{4}})\s+(.+?)((?:\s+{_DOLLARS}){{1,3}})$")
DOLLAR_TOKEN_RE = re.compile(_DOLLARS)

ACTIVITY_HEADER_WORDS = {"date", "description", "credits", "debits", "balance", "activity"}
BALANCE_ROW_MARKERS = ("BEGINNING BALANCE", "ENDING BALANCE")


def _locate_account_table(lines: List[str]) -> Optional[Tuple[int, int]]:
    """(índice primera fila, índice después de la última) de la tabla resumen apilada."""
    for i in range(len(lines) - len(ACCOUNT_TABLE_HEADERS)):
        if all(h in lines[i + k] for k, h in enumerate(ACCOUNT_TABLE_HEADERS)):
            start = i + len(ACCOUNT_TABLE_HEADERS)
            end = start
            while end + 3 < len(lines):
                number, begin, ending = lines[end + 1], lines[end + 2], lines[end + 3]
                if "xxxx" not in number.lower() or "$" not in begin or "$" not in ending:
                    break
                end += 4
            return start, end
    return None


def extract_account_info(text: str) -> List[AccountInfo]:
    """
    Tabla resumen de un statement multi-cuenta de Ally:
        Account Name / Account Number / Beginning Balance / Ending Balance
    seguida de grupos de 4 líneas (nombre, número enmascarado, balance inicial, final).
    Si el texto viene en una línea por cuenta también se reconoce.
    """
    lines = nonempty_lines(text)
    accounts: List[AccountInfo] = []

    located = _locate_account_table(lines)
    if located:
        start, end = located
        for i in range(start, end, 4):
            name, number, begin, ending = lines[i : i + 4]
            try:
                accounts.append(
                    AccountInfo(
                        name=name,
                        account_number=number,
                        beginning_balance=to_money(begin),
                        ending_balance=to_money(ending),
                    )
                )
            except ValueError:
                break
        if accounts:
            return accounts

    seen = set()
    for ln in lines:
        m = ACCOUNT_ROW_RE.match(ln)
        if not m or m.group(2).lower() in seen:
            continue
        seen.add(m.group(2).lower())
        accounts.append(
            AccountInfo(
                name=m.group(1).strip(),
                account_number=m.group(2),
                beginning_balance=to_money(m.group(3)),
                ending_balance=to_money(m.group(4)),
            )
        )
    return accounts


def _account_for_line(line: str, accounts: List[AccountInfo]) -> Optional[AccountInfo]:
    low = line.lower()
    for acct in accounts:
        if acct.account_number.lower() in low:
            return acct
        if low == acct.name.lower():
            return acct
        if acct.last_four and re.search(rf"x{{2,}}{acct.last_four}\b", low):
            return acct
    return None


def _signed_tokens(tokens: List[str]) -> List[Tuple[float, bool]]:
    out = []
    for tok in tokens:
        tok = tok.strip()
        out.append((abs(to_money(tok.lstrip("-"))), tok.startswith("-")))
    return out


class AllySavingsStrategy(Strategy):
    """
    Ahorro Ally (uno o varios sub-cuentas en el mismo PDF).

    Cada transacción se etiqueta con la sub-cuenta cuya cabecera (número
    enmascarado o nombre) apareció más recientemente antes de ella.
    Columnas de actividad: Credits / Debits / Balance (débitos con '-').
    """

    key = StrategyKey.ALLY_BANK_SAVINGS
    name = "Ally Bank Savings"

    def parse(self, text: str, account_type: AccountType) -> List[ParsedTransaction]:
        lines = nonempty_lines(text)
        accounts = extract_account_info(text)
        table = _locate_account_table(lines)

        txs: List[ParsedTransaction] = []
        current: Optional[AccountInfo] = None
        pending: Optional[Dict[str, object]] = None

        def finish() -> None:
            nonlocal pending
            if pending is not None:
                tx = self._build(pending, account_type)
                if tx is not None:
                    txs.append(tx)
            pending = None

        for idx, line in enumerate(lines):
            if table and table[0] - len(ACCOUNT_TABLE_HEADERS) <= idx < table[1]:
                continue

            acct = _account_for_line(line, accounts)
            if acct is not None:
                finish()
                current = acct
                continue

            tag = current.account_number if current else None

            m = ACTIVITY_ROW_RE.match(line)
            if m:
                finish()
                pending = {
                    "date": m.group(1),
                    "desc": [m.group(2)],
                    "amounts": DOLLAR_TOKEN_RE.findall(m.group(3)),
                    "account": tag,
                }
                finish()
                continue

            m = FULL_DATE_LINE_RE.match(line)
            if m:
                finish()
                pending = {"date": m.group(1), "desc": [], "amounts": [], "account": tag}
                continue

            if pending is None:
                continue

            m = DOLLAR_LINE_RE.match(line)
            if m:
                pending["amounts"].append(m.group(1))
                if len(pending["amounts"]) == 3:
                    finish()
                continue

            if pending["amounts"]:
                # fila completa; la línea actual no pertenece a ella
                finish()
                continue

            if line.lower() not in ACTIVITY_HEADER_WORDS and len(pending["desc"]) < 3:
                pending["desc"].append(line)

        finish()

        tagged = sum(1 for t in txs if t.account_number)
        self.log.debug(
            "%s: %d transacciones (%d con sub-cuenta)",
            self.name,
            len(txs),
            tagged,
            extra={"event": "ally_parsed", "accounts": len(accounts)},
        )
        return txs

    def _build(self, pending: Dict[str, object], account_type: AccountType) -> Optional[ParsedTransaction]:
        description = clean_description(" ".join(pending["desc"]))
        if not description or any(mk in description.upper() for mk in BALANCE_ROW_MARKERS):
            return None

        tokens = _signed_tokens(pending["amounts"])
        if not tokens:
            return None

        value = 0.0
        direction: Optional[Direction] = None
        if len(tokens) == 3:
            (credit, credit_neg), (debit, _), _balance = tokens
            if credit > 0:
                value, direction = credit, (Direction.EXPENSE if credit_neg else Direction.INCOME)
            elif debit > 0:
                value, direction = debit, Direction.EXPENSE
        else:
            # [monto, balance] o [monto]
            amount, negative = tokens[0]
            if amount > 0:
                value = amount
                direction = Direction.EXPENSE if negative else classify_direction(description, account_type)

        date = parse_date(str(pending["date"]))
        if date is None or direction is None or value <= 0:
            return None

        return ParsedTransaction(
            date=date,
            description=description,
            amount=round(value, 2),
            direction=direction,
            account_number=pending["account"],
        )
