from __future__ import annotations

import datetime
import functools
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from ..detect import infer_statement_year
from ..models import AccountType, ParsedTransaction, StrategyKey
from ..parse import parse_date
from ..statement_info import stated_period


# token de fecha -> fecha (o None)
DateParser = Callable[[str], Optional[datetime.date]]


class Strategy(ABC):
    """Contrato común: (texto crudo, tipo de cuenta) -> transacciones parseadas."""

    key: StrategyKey = StrategyKey.GENERIC
    name: str = "BASE"

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log or logging.getLogger(self.__class__.__module__)

    @abstractmethod
    def parse(self, text: str, account_type: AccountType) -> List[ParsedTransaction]:
        """Lista vacía = este layout no se reconoció (el caller cae al genérico)."""
        raise NotImplementedError

    def date_parser(self, text: str) -> DateParser:
        """
        Fechas sin año (MM/DD, 'Mar 05'): si el documento declara su periodo,
        cada fecha toma el año que la deja dentro de él (un estado de cuenta
        dic-ene reparte sus fechas entre los dos años); si no, el año del documento.
        """
        year = infer_statement_year(text) or datetime.date.today().year
        period = stated_period(text)
        if period:
            self.log.debug("%s: periodo declarado %s - %s", self.name, period[0], period[1])
        return functools.partial(parse_date, default_year=year, period=period)
