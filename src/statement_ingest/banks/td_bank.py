from __future__ import annotations

import re
from typing import Dict, List, Optional

from ..models import AccountType, Direction, ParsedTransaction, StrategyKey
from ..normalize import classify_direction
from ..parse import clean_description, nonempty_lines, to_money
from ..streams import ColumnStreams, merge_continuations
from .base import DateParser, Strategy


_MON = r"(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)"
_MONEY = r"(\d{1,3}(?:,\d{3})+\.\d{2}|\d+\.\d{2})"

MONTH_DAY_RE = re.compile(rf"^{_MON}\s+(\d{{1,2}})$")
REF_NUMBER_RE = re.compile(r"^\d{6,}$")
CC_AMOUNT_RE = re.compile(rf"^{_MONEY}(\s+CR)?$", re.IGNORECASE)

# 'Mar 30 Mar 31 82544551 UBER *TRIP HELP.UBER.COMCA 19.94'
CC_INLINE_RE = re.compile(
    rf"^{_MON}\s+(\d{{1,2}})\s+{_MON}\s+(\d{{1,2}})\s+(\d+)\s+(.+?)\s+{_MONEY}(\s+CR)?\s*$"
)
# 'UBER *TRIP Mar 30 Mar 31 ... 19.94' (layout viejo)
CC_INLINE_LEGACY_RE = re.compile(
    rf"^(.+?)\s+{_MON}\s+(\d{{1,2}})\s+{_MON}\s+(\d{{1,2}})\s+.*?{_MONEY}(\s+CR)?\s*$"
)

AMOUNT_BLOCK_HEADER = "Amount"
AMOUNT_BLOCK_STOP = ("Fees", "TOTAL", "Interest")


class TDCreditCardStrategy(Strategy):
    """
    Tarjeta TD: el texto trae grupos
        fecha transacción / fecha posteo / referencia / descripción (1+ líneas)
    y recién después un bloque 'Amount' con los montos en el mismo orden.
    Se juntan como columnas y se re-ensamblan por posición.
    """

    key = StrategyKey.TD_BANK_CREDIT_CARD
    name = "TD Bank Credit Card"

    def parse(self, text: str, account_type: AccountType) -> List[ParsedTransaction]:
        to_date = self.date_parser(text)
        lines = nonempty_lines(text)

        txs = self._parse_grouped(lines, to_date)
        if not txs:
            txs = self._parse_inline(lines, to_date)
        self.log.debug("%s: %d transacciones", self.name, len(txs))
        return txs

    def _collect_details(self, lines: List[str], streams: ColumnStreams) -> None:
        i = 0
        while i + 3 < len(lines):
            if not (
                MONTH_DAY_RE.match(lines[i])
                and MONTH_DAY_RE.match(lines[i + 1])
                and REF_NUMBER_RE.match(lines[i + 2])
            ):
                i += 1
                continue

            j = i + 3
            parts: List[str] = []
            while j < len(lines):
                ln = lines[j]
                if MONTH_DAY_RE.match(ln) or REF_NUMBER_RE.match(ln) or ln == AMOUNT_BLOCK_HEADER:
                    break
                parts.append(ln)
                j += 1

            if parts:
                # la fecha de posteo es la que cuenta para el ledger
                streams.push("post_date", lines[i + 1])
                streams.push("description", " ".join(parts))
            i = j

    def _collect_amounts(self, lines: List[str], streams: ColumnStreams) -> None:
        in_block = False
        for ln in lines:
            if ln == AMOUNT_BLOCK_HEADER:
                in_block = True
                continue
            if not in_block:
                continue
            if any(stop in ln for stop in AMOUNT_BLOCK_STOP):
                in_block = False
                continue
            m = CC_AMOUNT_RE.match(ln)
            if m:
                streams.push("amount", (to_money(m.group(1)), bool(m.group(2))))

    def _parse_grouped(self, lines: List[str], to_date: DateParser) -> List[ParsedTransaction]:
        streams = ColumnStreams("post_date", "description", "amount", log=self.log)
        self._collect_details(lines, streams)
        self._collect_amounts(lines, streams)

        txs: List[ParsedTransaction] = []
        for row in streams.zip_rows():
            date = to_date(row["post_date"])
            value, is_credit = row["amount"]
            description = clean_description(row["description"])
            if date is None or not description or value <= 0:
                continue
            txs.append(
                ParsedTransaction(
                    date=date,
                    description=description,
                    amount=value,
                    direction=Direction.INCOME if is_credit else Direction.EXPENSE,
                )
            )
        return txs

    def _parse_inline(self, lines: List[str], to_date: DateParser) -> List[ParsedTransaction]:
        txs: List[ParsedTransaction] = []
        for ln in lines:
            m = CC_INLINE_RE.match(ln)
            if m:
                post, desc, amount, cr = f"{m.group(3)} {m.group(4)}", m.group(6), m.group(7), m.group(8)
            else:
                m = CC_INLINE_LEGACY_RE.match(ln)
                if not m:
                    continue
                post, desc, amount, cr = f"{m.group(4)} {m.group(5)}", m.group(1), m.group(6), m.group(7)

            date = to_date(post)
            value = to_money(amount)
            description = clean_description(desc)
            if date is None or not description or value <= 0:
                continue
            txs.append(
                ParsedTransaction(
                    date=date,
                    description=description,
                    amount=value,
                    direction=Direction.INCOME if cr else Direction.EXPENSE,
                )
            )
        return txs


# ---------------------------------------------------------------------------
# Checking
# ---------------------------------------------------------------------------

SECTION_DIRECTIONS: Dict[str, Direction] = {
    "electronic deposits": Direction.INCOME,
    "deposits": Direction.INCOME,
    "other credits": Direction.INCOME,
    "electronic payments": Direction.EXPENSE,
    "checks paid": Direction.EXPENSE,
    "other withdrawals": Direction.EXPENSE,
    "service charges": Direction.EXPENSE,
}

SECTION_RE = re.compile(
    r"^(" + "|".join(re.escape(s) for s in SECTION_DIRECTIONS) + r")\s*(\(continued\))?:?$",
    re.IGNORECASE,
)
TABLE_HEADER_MARKERS = ("POSTING DATE", "DESCRIPTION", "AMOUNT")
SECTION_END_MARKERS = ("SUBTOTAL:", "DAILY BALANCE", "FEES FOR THIS PERIOD")
BOILERPLATE_MARKERS = (
    "BALANCE",
    "FINANCE CHARGES",
    "INTEREST NOTICE",
    "FDIC INSURED",
    "PAGE:",
    "STATEMENT PERIOD",
)
TRANSACTION_CODE_PREFIXES = ("ELECTRONIC PMT", "ACH DEPOSIT", "ACH DEBIT", "ETRANSFER", "CCD DEPOSIT", "DEBIT CARD")

SHORT_DATE_LINE_RE = re.compile(r"^(\d{1,2}/\d{1,2})$")
AMOUNT_LINE_RE = re.compile(rf"^{_MONEY}$")
INLINE_ROW_RE = re.compile(rf"^(\d{{1,2}}/\d{{1,2}})\s+(.+?)\s+{_MONEY}$")
CHECK_NUMBER_RE = re.compile(r"^\d{1,6}$")


def _starts_transaction(line: str) -> bool:
    return line.upper().startswith(TRANSACTION_CODE_PREFIXES)


class TDCheckingStrategy(Strategy):
    """
    Checking TD: secciones con nombre ('Electronic Deposits', 'Electronic Payments', ...).
    Dentro de cada sección las fechas, montos y descripciones llegan como
    líneas sueltas; se acumulan en tres buffers y se re-asocian al cerrar la sección.
    También acepta filas en una sola línea ('03/05 ACH DEPOSIT ... 1,250.00').
    """

    key = StrategyKey.TD_BANK_CHECKING
    name = "TD Bank Checking"

    def parse(self, text: str, account_type: AccountType) -> List[ParsedTransaction]:
        to_date = self.date_parser(text)
        streams = ColumnStreams("date", "description", "amount", log=self.log)
        txs: List[ParsedTransaction] = []

        section: Optional[str] = None
        last_inline: Optional[Dict[str, object]] = None
        inline_rows: List[Dict[str, object]] = []

        def flush() -> None:
            txs.extend(self._rows_from_streams(streams, section, account_type, to_date))
            txs.extend(self._rows_from_inline(inline_rows, section, account_type, to_date))
            streams.clear()
            inline_rows.clear()

        for line in nonempty_lines(text):
            upper = line.upper()

            sm = SECTION_RE.match(line)
            if sm:
                flush()
                section = sm.group(1).lower()
                last_inline = None
                self.log.debug("Sección TD: %s", section)
                continue

            if any(mk in upper for mk in SECTION_END_MARKERS):
                flush()
                section = None
                last_inline = None
                continue

            if section is None:
                continue

            if any(mk in line for mk in TABLE_HEADER_MARKERS):
                continue

            if SHORT_DATE_LINE_RE.match(line):
                streams.push("date", line)
                last_inline = None
                continue

            if AMOUNT_LINE_RE.match(line):
                streams.push("amount", to_money(line))
                last_inline = None
                continue

            im = INLINE_ROW_RE.match(line)
            if im:
                last_inline = {"date": im.group(1), "parts": [im.group(2)], "amount": to_money(im.group(3))}
                inline_rows.append(last_inline)
                continue

            if section == "checks paid" and CHECK_NUMBER_RE.match(line):
                streams.push("description", f"CHECK {line}")
                continue

            if len(line) <= 5 or any(mk in upper for mk in BOILERPLATE_MARKERS):
                continue

            if last_inline is not None and len(last_inline["parts"]) <= 2 and not _starts_transaction(line):
                last_inline["parts"].append(line)
                continue

            streams.push("description", line)

        flush()
        self.log.debug("%s: %d transacciones", self.name, len(txs))
        return txs

    def _direction(self, section: Optional[str], description: str, account_type: AccountType) -> Direction:
        if section in SECTION_DIRECTIONS:
            return SECTION_DIRECTIONS[section]
        return classify_direction(description, account_type)

    def _rows_from_streams(
        self,
        streams: ColumnStreams,
        section: Optional[str],
        account_type: AccountType,
        to_date: DateParser,
    ) -> List[ParsedTransaction]:
        if not streams.has_all():
            return []

        merged = merge_continuations(
            streams.get("description"),
            slots=len(streams.get("date")),
            starts_new=_starts_transaction,
        )
        streams.replace("description", merged)

        out: List[ParsedTransaction] = []
        for row in streams.zip_rows():
            date = to_date(row["date"])
            description = clean_description(row["description"])
            if date is None or not description or row["amount"] <= 0:
                continue
            out.append(
                ParsedTransaction(
                    date=date,
                    description=description,
                    amount=row["amount"],
                    direction=self._direction(section, description, account_type),
                )
            )
        return out

    def _rows_from_inline(
        self,
        rows: List[Dict[str, object]],
        section: Optional[str],
        account_type: AccountType,
        to_date: DateParser,
    ) -> List[ParsedTransaction]:
        out: List[ParsedTransaction] = []
        for row in rows:
            date = to_date(str(row["date"]))
            description = clean_description(" ".join(row["parts"]))
            amount = float(row["amount"])
            if date is None or not description or amount <= 0:
                continue
            out.append(
                ParsedTransaction(
                    date=date,
                    description=description,
                    amount=amount,
                    direction=self._direction(section, description, account_type),
                )
            )
        return out
