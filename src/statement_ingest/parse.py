from __future__ import annotations

import datetime
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple


MAX_DESCRIPTION_LENGTH = 255

MIN_YEAR = 1900
MAX_YEAR = 2100

# (inicio, fin) del periodo del estado de cuenta
Period = Tuple[datetime.date, datetime.date]

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

# Montos tipo 1,234.56 / 1234.56
MONEY_RE = re.compile(r"(?<![\d.])(\d{1,3}(?:,\d{3})+\.\d{2}|\d+\.\d{2})(?![\d])")
AMOUNT_LINE_RE = re.compile(r"^\$?\d{1,3}(?:,\d{3})*\.\d{2}$|^\$?\d+\.\d{2}$")

SHORT_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})$")
_NUMERIC_DATE_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})$")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_MONTH_NAME_DATE_RE = re.compile(r"^([A-Za-z]{3,9})\.?\s+(\d{1,2}),?\s+(\d{4})$")
_MONTH_DAY_RE = re.compile(r"^([A-Za-z]{3,9})\.?\s+(\d{1,2})$")

_UNSAFE_CHARS_RE = re.compile(r"[^\w\s\-.,&@#]")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")

_DEBIT_MARKERS = ("DB",)
_CREDIT_MARKERS = ("CR", "CREDIT", "PAYMENT")


@dataclass(frozen=True)
class Amount:
    value: float          # magnitud, nunca negativa
    debit: bool = False   # '-', '(...)' o 'DB'
    credit: bool = False  # 'CR', 'CREDIT', 'PAYMENT'


def month_number(name: str) -> Optional[int]:
    key = name.strip().rstrip(".").lower()
    if len(key) < 3:
        return None
    num = MONTHS.get(key[:3])
    if num is None:
        return None
    full = datetime.date(2000, num, 1).strftime("%B").lower()
    if not full.startswith(key):
        return None
    return num


def make_date(year: int, month: int, day: int) -> Optional[datetime.date]:
    """Fecha válida o None (año 1900-2100, mes/día reales)."""
    if not (MIN_YEAR <= year <= MAX_YEAR):
        return None
    try:
        return datetime.date(year, month, day)
    except ValueError:
        return None


def _expand_two_digit_year(yy: int) -> int:
    return 2000 + yy if yy < 50 else 1900 + yy


def _days_outside(dt: datetime.date, period: Period) -> int:
    start, end = period
    if dt < start:
        return (start - dt).days
    if dt > end:
        return (dt - end).days
    return 0


def date_in_period(month: int, day: int, period: Period) -> Optional[datetime.date]:
    """
    Fecha sin año resuelta contra el periodo: el año que la deja dentro del
    periodo o, si ninguno, el más cercano (12/20 en 12/15/2023 - 01/14/2024 es
    2023; 01/05 es 2024; 12/28 en un periodo de enero cae en el año anterior).
    """
    start, end = period
    candidates = [make_date(y, month, day) for y in range(start.year - 1, end.year + 2)]
    valid = [dt for dt in candidates if dt]
    if not valid:
        return None
    return min(valid, key=lambda dt: (_days_outside(dt, period), -dt.toordinal()))


def _short_date(year: int, month: int, day: int, period: Optional[Period]) -> Optional[datetime.date]:
    if period:
        return date_in_period(month, day, period)
    return make_date(year, month, day)


def parse_date(
    token: str,
    default_year: Optional[int] = None,
    period: Optional[Period] = None,
) -> Optional[datetime.date]:
    """
    Intenta, en orden:
    - MM/DD/YYYY y MM/DD/YY (YY < 50 => 20YY, si no 19YY)
    - YYYY-MM-DD
    - 'Mar 05 2025' / 'March 5, 2025'
    - MM/DD o 'Mar 05': con periodo, el año que cae en él; si no, default_year
      (o el año actual)
    Un candidato fuera de rango se descarta y se prueba el siguiente formato.
    """
    s = (token or "").strip()
    if not s:
        return None

    m = _NUMERIC_DATE_RE.match(s)
    if m:
        month, day, year_s = int(m.group(1)), int(m.group(2)), m.group(3)
        year = int(year_s) if len(year_s) == 4 else _expand_two_digit_year(int(year_s))
        dt = make_date(year, month, day)
        if dt:
            return dt

    m = _ISO_DATE_RE.match(s)
    if m:
        dt = make_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if dt:
            return dt

    m = _MONTH_NAME_DATE_RE.match(s)
    if m:
        month = month_number(m.group(1))
        if month:
            dt = make_date(int(m.group(3)), month, int(m.group(2)))
            if dt:
                return dt

    year = default_year or datetime.date.today().year

    m = SHORT_DATE_RE.match(s)
    if m:
        return _short_date(year, int(m.group(1)), int(m.group(2)), period)

    m = _MONTH_DAY_RE.match(s)
    if m:
        month = month_number(m.group(1))
        if month:
            return _short_date(year, month, int(m.group(2)), period)

    return None


def parse_amount(token: str) -> Optional[Amount]:
    """
    '$1,234.56', '-45.00', '(45.00)', '12.00 CR', '30.00 DB' -> Amount.
    Cero o NaN -> None (nunca se importa una transacción de monto 0).
    """
    s = (token or "").strip().upper()
    if not s:
        return None

    debit = s.startswith("-") or s.endswith("-") or (s.startswith("(") and s.endswith(")"))
    debit = debit or any(s.endswith(mk) or f" {mk}" in s for mk in _DEBIT_MARKERS)
    credit = any(mk in s for mk in _CREDIT_MARKERS)

    compact = s.replace("$", "").replace(",", "").replace(" ", "")
    m = _NUMBER_RE.search(compact)
    if not m:
        return None
    try:
        value = float(m.group(0))
    except ValueError:
        return None
    if math.isnan(value) or value == 0:
        return None

    return Amount(value=round(value, 2), debit=debit, credit=credit)


def to_money(s: str) -> float:
    return round(float(s.replace("$", "").replace(",", "").strip()), 2)


def money_candidates(line: str) -> List[float]:
    # Captura montos tipo 1,234.56 en el orden en que aparecen
    return [to_money(m) for m in MONEY_RE.findall(line)]


def clean_description(text: str, max_length: int = MAX_DESCRIPTION_LENGTH) -> str:
    s = _UNSAFE_CHARS_RE.sub("", text or "")
    s = re.sub(r"\s+", " ", s).strip()
    return s[:max_length].rstrip()


def nonempty_lines(text: str) -> List[str]:
    return [ln.strip() for ln in (text or "").splitlines() if ln.strip()]
