from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .models import AccountType, Bank, StatementType, StrategyKey


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentInfo:
    bank: Bank
    detected_bank: Bank
    confidence: int
    statement_year: Optional[int]
    strategy: StrategyKey


# Orden de chequeo: Ally primero (un statement de Ally puede mencionar otros bancos
# en descripciones de transferencias, p.ej. "CHASE CREDIT CRD").
_PRIORITY_INDICATORS: Tuple[Tuple[Bank, Tuple[str, ...]], ...] = (
    (Bank.ALLY_BANK, ("ALLY BANK", "ALLY.COM")),
    (Bank.TD_BANK, ("TD BANK", "TORONTO-DOMINION", "TD.COM", "TD CONVENIENCE CHECKING", "TD CASH VISA")),
    (Bank.CHASE, ("CHASE", "JPMORGAN CHASE", "CHASE.COM")),
    (Bank.WELLS_FARGO, ("WELLS FARGO", "WELLSFARGO.COM")),
)

# Para el score de confianza (0-100)
_CONFIDENCE_INDICATORS: Dict[Bank, Dict[str, Tuple[str, ...]]] = {
    Bank.TD_BANK: {
        "indicators": ("TD Bank", "Toronto-Dominion", "td.com", "TD Canada Trust"),
        "strong": ("TD Bank", "Toronto-Dominion Bank"),
    },
    Bank.ALLY_BANK: {
        "indicators": ("Ally Bank", "ally.com", "Ally Financial", "GMAC Bank"),
        "strong": ("Ally Bank", "Ally Financial Inc"),
    },
    Bank.CHASE: {
        "indicators": ("Chase", "JPMorgan Chase", "chase.com", "J.P. Morgan"),
        "strong": ("JPMorgan Chase Bank", "Chase Bank"),
    },
    Bank.WELLS_FARGO: {
        "indicators": ("Wells Fargo", "wellsfargo.com", "Wells Fargo Bank"),
        "strong": ("Wells Fargo Bank", "Wells Fargo & Company"),
    },
}

_STRATEGY_RULES: Tuple[Tuple[Bank, Tuple[AccountType, ...], StrategyKey], ...] = (
    (Bank.TD_BANK, (AccountType.CREDIT_CARD,), StrategyKey.TD_BANK_CREDIT_CARD),
    (Bank.TD_BANK, (AccountType.CHECKING,), StrategyKey.TD_BANK_CHECKING),
    (Bank.ALLY_BANK, (AccountType.SAVINGS,), StrategyKey.ALLY_BANK_SAVINGS),
    (Bank.WELLS_FARGO, (AccountType.CHECKING, AccountType.SAVINGS), StrategyKey.WELLS_FARGO_DEPOSIT),
    (Bank.CHASE, (AccountType.CHECKING,), StrategyKey.CHASE_CHECKING),
)

_YEAR_RE = re.compile(r"\b(20\d{2})\b")
_STATEMENT_PERIOD_RE = re.compile(r"statement period", re.IGNORECASE)

_pattern_cache: Dict[str, "re.Pattern[str]"] = {}


def _contains(text: str, indicator: str) -> bool:
    """Búsqueda case-insensitive con límites de palabra ('PURCHASE' no es 'CHASE')."""
    pat = _pattern_cache.get(indicator)
    if pat is None:
        pat = re.compile(r"(?<![A-Za-z0-9])" + re.escape(indicator) + r"(?![A-Za-z0-9])", re.IGNORECASE)
        _pattern_cache[indicator] = pat
    return bool(pat.search(text))


def detect_bank(text: str) -> Bank:
    for bank, indicators in _PRIORITY_INDICATORS:
        if any(_contains(text, ind) for ind in indicators):
            return bank
    return Bank.UNKNOWN


def bank_confidence(text: str, bank: Bank) -> int:
    """
    Score heurístico de la detección:
    - +40 por indicador fuerte
    - +15 por indicador normal (+10 extra si hay más de uno)
    """
    spec = _CONFIDENCE_INDICATORS.get(bank)
    if not spec:
        return 0

    score = 40 * sum(1 for ind in spec["strong"] if _contains(text, ind))
    matched = [ind for ind in spec["indicators"] if _contains(text, ind)]
    score += 15 * len(matched)
    if len(matched) > 1:
        score += 10
    return min(score, 100)


def bank_from_name(name: Optional[str]) -> Bank:
    """Traduce el nombre de institución declarado por el usuario ('TD Bank', 'ally', ...)."""
    if not name:
        return Bank.UNKNOWN
    upper = name.strip().upper()
    if "ALLY" in upper:
        return Bank.ALLY_BANK
    if "TD BANK" in upper or upper == "TD" or upper.startswith("TD ") or "TORONTO-DOMINION" in upper:
        return Bank.TD_BANK
    if "WELLS FARGO" in upper:
        return Bank.WELLS_FARGO
    if "CHASE" in upper:
        return Bank.CHASE
    return Bank.UNKNOWN


def select_strategy(
    bank: Bank,
    account_type: AccountType,
    statement_type: Optional[StatementType] = None,
) -> StrategyKey:
    """
    Reglas explícitas (banco x tipo de cuenta). Ninguna regla depende hoy del
    statement_type; se recibe para que una regla futura pueda usarlo.
    """
    for rule_bank, account_types, key in _STRATEGY_RULES:
        if bank == rule_bank and account_type in account_types:
            return key
    return StrategyKey.GENERIC


def infer_statement_year(text: str) -> Optional[int]:
    """
    Inferir año: buscar 20xx cerca de "Statement period" si existe;
    fallback: primer año que aparezca en el texto.
    """
    m = _STATEMENT_PERIOD_RE.search(text)
    if m:
        window = text[m.start() : m.start() + 500]
        ym = _YEAR_RE.search(window)
        if ym:
            return int(ym.group(1))

    ym = _YEAR_RE.search(text)
    if ym:
        return int(ym.group(1))
    return None


def inspect_document(
    text: str,
    account_type: AccountType,
    bank_name: Optional[str] = None,
    statement_type: Optional[StatementType] = None,
) -> DocumentInfo:
    detected = detect_bank(text)
    declared = bank_from_name(bank_name)
    bank = declared if declared != Bank.UNKNOWN else detected

    info = DocumentInfo(
        bank=bank,
        detected_bank=detected,
        confidence=bank_confidence(text, detected),
        statement_year=infer_statement_year(text),
        strategy=select_strategy(bank, account_type, statement_type),
    )
    logger.info(
        "Banco detectado: %s (confianza %d), estrategia %s",
        info.detected_bank.display_name,
        info.confidence,
        info.strategy.value,
        extra={"event": "bank_detected", "bank": info.bank.value, "strategy": info.strategy.value},
    )
    return info
