from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple, Type

from ..models import AccountType, ParsedTransaction, StrategyKey
from .ally_bank import AllySavingsStrategy
from .base import Strategy
from .chase import ChaseCheckingStrategy
from .generic import GenericStrategy
from .td_bank import TDCheckingStrategy, TDCreditCardStrategy
from .wells_fargo import WellsFargoStrategy


logger = logging.getLogger(__name__)

STRATEGIES: Dict[StrategyKey, Type[Strategy]] = {
    StrategyKey.TD_BANK_CREDIT_CARD: TDCreditCardStrategy,
    StrategyKey.TD_BANK_CHECKING: TDCheckingStrategy,
    StrategyKey.ALLY_BANK_SAVINGS: AllySavingsStrategy,
    StrategyKey.WELLS_FARGO_DEPOSIT: WellsFargoStrategy,
    StrategyKey.CHASE_CHECKING: ChaseCheckingStrategy,
    StrategyKey.GENERIC: GenericStrategy,
}


def get_strategy(key: StrategyKey, log: Optional[logging.Logger] = None) -> Strategy:
    return STRATEGIES.get(key, GenericStrategy)(log=log)


def run_strategies(
    key: StrategyKey,
    text: str,
    account_type: AccountType,
    log: Optional[logging.Logger] = None,
) -> Tuple[List[ParsedTransaction], StrategyKey]:
    """
    Corre la estrategia elegida; si no encuentra nada cae a la genérica.
    Devuelve (transacciones, estrategia que efectivamente las produjo).
    """
    log = log or logger
    strategy = get_strategy(key, log)
    txs = strategy.parse(text, account_type)
    if txs or strategy.key == StrategyKey.GENERIC:
        return txs, strategy.key

    log.info(
        "%s no encontró transacciones; usando parser genérico",
        strategy.name,
        extra={"event": "strategy_fallback", "strategy": strategy.key.value},
    )
    generic = get_strategy(StrategyKey.GENERIC, log)
    return generic.parse(text, account_type), generic.key
