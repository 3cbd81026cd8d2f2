from __future__ import annotations

import datetime
import logging
import re
from typing import List, Optional, Sequence, Tuple

from .detect import infer_statement_year
from .models import ParsedTransaction, StatementInfo
from .parse import AMOUNT_LINE_RE, Period, nonempty_lines, parse_date, to_money
from .segment import isolate_section


logger = logging.getLogger(__name__)

HEADER_LINES = 50

_FULL = r"\d{1,2}/\d{1,2}/\d{4}"
_DASHED = r"\d{1,2}-\d{1,2}-\d{4}"
_ISO = r"\d{4}-\d{1,2}-\d{1,2}"
_NAMED = r"[A-Za-z]{3,9}\.?\s+\d{1,2},?\s+\d{4}"
_SHORT = r"\d{1,2}/\d{1,2}"
_SEP = r"\s*(?:-|–|—|\bto\b|\bthrough\b|\bthru\b)\s*"
_LABEL = r"(?:statement period|billing period|period|from)[:\s]*"
_MONEY = r"(-?\$?\s*(?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2})"

# Orden = prioridad. El segundo elemento indica si las fechas son cortas (sin año).
PERIOD_PATTERNS: Tuple[Tuple["re.Pattern[str]", bool], ...] = tuple(
    (re.compile(p, re.IGNORECASE), short)
    for p, short in (
        (rf"{_LABEL}({_FULL}){_SEP}({_FULL})", False),
        (rf"{_LABEL}({_NAMED}){_SEP}({_NAMED})", False),
        (rf"{_LABEL}({_ISO}){_SEP}({_ISO})", False),
        (rf"{_LABEL}({_DASHED}){_SEP}({_DASHED})", False),
        (rf"({_FULL}){_SEP}({_FULL})", False),
        (rf"({_NAMED}){_SEP}({_NAMED})", False),
        (rf"({_ISO}){_SEP}({_ISO})", False),
        (rf"({_DASHED}){_SEP}({_DASHED})", False),
        (rf"(?:statement period|period)[:\s]*({_SHORT}){_SEP}({_SHORT})\b", True),
    )
)

STATEMENT_DATE_PATTERNS = tuple(
    re.compile(rf"{label}[:\s]*({_FULL}|{_NAMED}|{_ISO})", re.IGNORECASE)
    for label in (r"statement date", r"statement closing date", r"closing date", r"\bas of")
)

BEGINNING_LABELS = ("beginning balance", "opening balance", "previous balance", "starting balance")
ENDING_LABELS = ("ending balance", "closing balance", "final balance", "current balance")

# misma línea: nunca se cruza un salto de línea entre el label y el monto
_SAME_LINE = r"{label}(?:\s+on\s+{date})?[ \t:]*{money}"

ACCOUNT_SUMMARY_RE = re.compile(r"account summary", re.IGNORECASE)
SUMMARY_STOP_RE = re.compile(r"daily balance|transaction|activity|page \d+", re.IGNORECASE)

_ANY_FULL_DATE_RE = re.compile(rf"(?<![\d/])({_FULL}|{_DASHED}|{_ISO})(?![\d/])")


def _labeled(labels: Sequence[str]) -> List["re.Pattern[str]"]:
    return [
        re.compile(
            _SAME_LINE.format(label=re.escape(lbl), date=r"\d{1,2}/\d{1,2}(?:/\d{2,4})?", money=_MONEY),
            re.IGNORECASE,
        )
        for lbl in labels
    ]


BEGINNING_PATTERNS = _labeled(BEGINNING_LABELS)
ENDING_PATTERNS = _labeled(ENDING_LABELS)
NEW_BALANCE_PATTERNS = _labeled(("new balance",))


def _first_labeled(lines: Sequence[str], patterns: Sequence["re.Pattern[str]"]) -> Optional[float]:
    for pattern in patterns:
        for ln in lines:
            m = pattern.search(ln)
            if m:
                return to_money(m.group(1).replace(" ", ""))
    return None


def _amount_after_label(lines: Sequence[str], labels: Sequence[str]) -> Optional[float]:
    """Label solo en su línea y el monto en la siguiente."""
    for i, ln in enumerate(lines[:-1]):
        low = ln.lower().rstrip(":")
        if low in labels and AMOUNT_LINE_RE.match(lines[i + 1]):
            return to_money(lines[i + 1])
    return None


def _period_from_lines(lines: Sequence[str], year: Optional[int]) -> Optional[Period]:
    for ln in lines:
        for pattern, short in PERIOD_PATTERNS:
            m = pattern.search(ln)
            if not m:
                continue
            start = parse_date(m.group(1), year)
            end = parse_date(m.group(2), year)
            if short and start and end and start > end:
                # periodo que cruza fin de año (12/15 - 01/14)
                start = parse_date(m.group(1), end.year - 1)
            if start and end and start <= end:
                return start, end
    return None


def _dates_in_text(text: str) -> List[datetime.date]:
    out = []
    for token in _ANY_FULL_DATE_RE.findall(text):
        dt = parse_date(token)
        if dt:
            out.append(dt)
    return out


def stated_period(text: str) -> Optional[Period]:
    """Periodo escrito en el documento (primeras líneas, luego todo); nunca inferido."""
    lines = nonempty_lines(text)
    year = infer_statement_year(text)
    return _period_from_lines(lines[:HEADER_LINES], year) or _period_from_lines(lines, year)


def extract_period(
    text: str,
    transactions: Optional[Sequence[ParsedTransaction]] = None,
) -> Tuple[Optional[datetime.date], Optional[datetime.date], bool]:
    """
    (inicio, fin, inferido):
    - patrones con label en las primeras líneas, luego en todo el documento
    - si no hay: min/max de las fechas de las transacciones
      (o, sin transacciones, de las fechas completas del texto)
    """
    found = stated_period(text)
    if found:
        return found[0], found[1], False

    dates = [t.date for t in transactions] if transactions else _dates_in_text(text)
    if dates:
        return min(dates), max(dates), True
    return None, None, False


def extract_statement_date(lines: Sequence[str]) -> Optional[datetime.date]:
    for ln in lines:
        for pattern in STATEMENT_DATE_PATTERNS:
            m = pattern.search(ln)
            if m:
                dt = parse_date(m.group(1))
                if dt:
                    return dt
    return None


def _positional_ending_balance(summary_lines: Sequence[str]) -> Tuple[Optional[float], int]:
    """
    Layout TD: los labels y los montos van en líneas separadas. Después de la
    línea 'Ending Balance' el primer monto suelto es el de otra fila
    ('Electronic Payments'); el segundo es el balance final.
    Devuelve (monto, cantidad de montos encontrados).
    """
    idx = next((i for i, ln in enumerate(summary_lines) if "ending balance" in ln.lower()), None)
    if idx is None:
        return None, 0

    amounts = [to_money(ln) for ln in summary_lines[idx + 1:] if AMOUNT_LINE_RE.match(ln)]
    if len(amounts) >= 2:
        return amounts[1], len(amounts)
    if len(amounts) == 1:
        return amounts[0], 1
    return None, 0


def _line_by_line_ending(lines: Sequence[str]) -> Optional[float]:
    """Último recurso: 'new balance' gana; si no, el último 'ending balance' con monto."""
    last_ending: Optional[float] = None
    for i, ln in enumerate(lines):
        low = ln.lower()
        context = " ".join(lines[max(0, i - 1) : i + 2]).lower()
        value = None
        m = re.search(_MONEY, ln)
        if m:
            value = to_money(m.group(1).replace(" ", ""))
        elif i + 1 < len(lines) and AMOUNT_LINE_RE.match(lines[i + 1]):
            value = to_money(lines[i + 1])
        if value is None:
            continue

        if "new balance" in low:
            return value
        if "ending balance" in low and "electronic payments" not in context:
            last_ending = value
    return last_ending


def extract_statement_info(
    text: str,
    transactions: Optional[Sequence[ParsedTransaction]] = None,
    log: Optional[logging.Logger] = None,
) -> StatementInfo:
    """
    Extracción best-effort (primer match por campo):
    1) patrones con label ('Statement Period: X to Y', 'Ending Balance 1,234.56')
    2) búsqueda acotada al 'Account Summary'
    3) desambiguación por posición cuando label y monto están en líneas separadas
    4) periodo inferido de las fechas de las transacciones
    """
    log = log or logger
    lines = nonempty_lines(text)
    info = StatementInfo()

    start, end, inferred = extract_period(text, transactions)
    info.period_start_date, info.period_end_date, info.period_inferred = start, end, inferred
    info.statement_date = extract_statement_date(lines) or end

    info.beginning_balance = _first_labeled(lines, BEGINNING_PATTERNS)
    if info.beginning_balance is None:
        info.beginning_balance = _amount_after_label(lines, BEGINNING_LABELS)

    summary = isolate_section(text, ACCOUNT_SUMMARY_RE, SUMMARY_STOP_RE)
    summary_lines = nonempty_lines(summary) if summary else []

    ending = _first_labeled(lines, NEW_BALANCE_PATTERNS)
    source = "new_balance" if ending is not None else None

    if ending is None and summary_lines:
        ending = _first_labeled(summary_lines, ENDING_PATTERNS)
        source = "account_summary" if ending is not None else None

    if ending is None and summary_lines:
        ending, count = _positional_ending_balance(summary_lines)
        if ending is not None:
            source = "summary_positional"
            info.balance_needs_review = True
            if count == 1:
                log.warning(
                    "Balance final por posición con un solo monto tras 'Ending Balance' (%.2f); revisar",
                    ending,
                    extra={"event": "positional_balance_single", "balance": ending},
                )
            else:
                log.info(
                    "Balance final por posición (2do monto tras 'Ending Balance'): %.2f",
                    ending,
                    extra={"event": "positional_balance", "balance": ending},
                )

    if ending is None:
        ending = _first_labeled(lines, ENDING_PATTERNS)
        source = "labeled" if ending is not None else None

    if ending is None:
        ending = _line_by_line_ending(lines)
        source = "line_scan" if ending is not None else None

    info.ending_balance = ending
    info.ending_balance_source = source
    return info
