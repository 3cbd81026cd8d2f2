from __future__ import annotations

import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Direction(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class AccountType(str, Enum):
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    CREDIT_CARD = "CREDIT_CARD"
    CREDIT = "CREDIT"
    INVESTMENT = "INVESTMENT"
    LOAN = "LOAN"

    @property
    def is_credit(self) -> bool:
        # Cuentas donde un balance mayor = más deuda
        return self in (AccountType.CREDIT_CARD, AccountType.CREDIT)

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class StatementType(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUAL = "ANNUAL"
    TRANSACTION_HISTORY = "TRANSACTION_HISTORY"
    CUSTOM = "CUSTOM"


class FileStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Bank(str, Enum):
    TD_BANK = "TD_BANK"
    ALLY_BANK = "ALLY_BANK"
    CHASE = "CHASE"
    WELLS_FARGO = "WELLS_FARGO"
    UNKNOWN = "UNKNOWN"

    @property
    def display_name(self) -> str:
        return _BANK_DISPLAY_NAMES[self]


_BANK_DISPLAY_NAMES = {
    Bank.TD_BANK: "TD Bank",
    Bank.ALLY_BANK: "Ally Bank",
    Bank.CHASE: "Chase Bank",
    Bank.WELLS_FARGO: "Wells Fargo",
    Bank.UNKNOWN: "Generic Bank",
}


class StrategyKey(str, Enum):
    TD_BANK_CREDIT_CARD = "TD_BANK_CREDIT_CARD"
    TD_BANK_CHECKING = "TD_BANK_CHECKING"
    ALLY_BANK_SAVINGS = "ALLY_BANK_SAVINGS"
    WELLS_FARGO_DEPOSIT = "WELLS_FARGO_DEPOSIT"
    CHASE_CHECKING = "CHASE_CHECKING"
    GENERIC = "GENERIC_BANK_STATEMENT"


# ---------------------------------------------------------------------------
# Tipos efímeros (viven solo durante el procesamiento de un archivo)
# ---------------------------------------------------------------------------


class ParsedTransaction(BaseModel):
    date: datetime.date
    description: str
    amount: float = Field(..., gt=0, description="Magnitud (siempre positiva); el signo lo decide direction")
    direction: Direction
    account_number: Optional[str] = Field(
        default=None, description="Sub-cuenta detectada en statements multi-cuenta"
    )


class AccountInfo(BaseModel):
    name: str
    account_number: str
    beginning_balance: Optional[float] = None
    ending_balance: Optional[float] = None

    @property
    def last_four(self) -> str:
        digits = "".join(ch for ch in self.account_number if ch.isdigit())
        return digits[-4:]


class StatementInfo(BaseModel):
    statement_date: Optional[datetime.date] = None
    period_start_date: Optional[datetime.date] = None
    period_end_date: Optional[datetime.date] = None
    beginning_balance: Optional[float] = None
    ending_balance: Optional[float] = None
    period_inferred: bool = False
    balance_needs_review: bool = False
    ending_balance_source: Optional[str] = None


class ImportOptions(BaseModel):
    """Pistas que entrega quien sube el archivo."""

    account_id: Optional[str] = None
    account_type: AccountType = AccountType.CHECKING
    bank_name: Optional[str] = None
    statement_type: Optional[StatementType] = None


class ProcessingResult(BaseModel):
    success: bool = False
    transactions_found: int = 0
    transactions_imported: int = 0
    duplicates: int = 0
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    bank_type: Optional[str] = None
    bank_confidence: int = 0
    strategy: Optional[str] = None
    file_type: Optional[str] = None
    transactions: List[ParsedTransaction] = Field(default_factory=list)
    statement_balance: Optional[float] = None
    statement_date: Optional[datetime.date] = None
    statement_period_start: Optional[datetime.date] = None
    statement_period_end: Optional[datetime.date] = None
    statement_id: Optional[str] = None
    final_account_id: Optional[str] = None
    accounts: List[AccountInfo] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Registros persistidos (los posee el LedgerStore)
# ---------------------------------------------------------------------------


class Account(BaseModel):
    id: str
    user_id: str
    name: str
    type: AccountType
    institution: Optional[str] = None
    account_number: Optional[str] = None
    last_four: Optional[str] = None
    balance: float = 0.0
    is_active: bool = True


class Category(BaseModel):
    id: str
    name: str
    is_system: bool = False


class LedgerTransaction(BaseModel):
    id: str
    user_id: str
    account_id: str
    category_id: Optional[str] = None
    date: datetime.date
    description: str
    amount: float = Field(..., description="Monto con signo según el tipo de cuenta")


class StatementAccountSection(BaseModel):
    id: str = ""
    statement_id: str = ""
    account_id: str
    account_name: str
    account_number: Optional[str] = None
    last_four: Optional[str] = None
    beginning_balance: Optional[float] = None
    ending_balance: Optional[float] = None
    total_debits: float = 0.0
    total_credits: float = 0.0
    transaction_count: int = 0


class Statement(BaseModel):
    id: str = ""
    user_id: str
    uploaded_file_id: Optional[str] = None
    statement_date: datetime.date
    period_start_date: datetime.date
    period_end_date: datetime.date
    statement_type: StatementType = StatementType.MONTHLY
    is_reconciled: bool = False
    notes: Optional[str] = None
    sections: List[StatementAccountSection] = Field(default_factory=list)


class UploadedFile(BaseModel):
    id: str
    user_id: str
    filename: str
    original_name: str
    file_path: str
    file_size: int = 0
    account_id: Optional[str] = None
    account_type: AccountType = AccountType.CHECKING
    bank_name: Optional[str] = None
    statement_type: Optional[StatementType] = None
    status: FileStatus = FileStatus.PENDING
    error_message: Optional[str] = None
    processed_at: Optional[datetime.datetime] = None
    transaction_count: Optional[int] = None
    processing_details: Optional[str] = None

    def options(self) -> ImportOptions:
        return ImportOptions(
            account_id=self.account_id,
            account_type=self.account_type,
            bank_name=self.bank_name,
            statement_type=self.statement_type,
        )
