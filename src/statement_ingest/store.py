from __future__ import annotations

import datetime
import threading
import uuid
from typing import Any, Dict, List, Optional, Protocol

from .models import (
    Account,
    AccountType,
    Category,
    LedgerTransaction,
    Statement,
    UploadedFile,
)


def new_id() -> str:
    return uuid.uuid4().hex


class LedgerStore(Protocol):
    """Lo que la ingesta necesita de la capa de persistencia."""

    # cuentas
    def find_account(
        self, user_id: str, account_type: AccountType, institution: Optional[str] = None
    ) -> Optional[Account]: ...

    def find_account_by_identity(
        self, user_id: str, institution: Optional[str], last_four: str, name: str
    ) -> Optional[Account]: ...

    def create_account(self, account: Account) -> Account: ...

    def get_account(self, account_id: str) -> Optional[Account]: ...

    def update_account_balance(self, account_id: str, balance: float) -> Account: ...

    # categorías
    def get_or_create_category(self, name: str, is_system: bool = False) -> Category: ...

    # transacciones
    def find_duplicate_transaction(
        self, account_id: str, date: datetime.date, amount: float, description: str
    ) -> Optional[LedgerTransaction]: ...

    def create_transaction(self, tx: LedgerTransaction) -> LedgerTransaction: ...

    def sum_transactions(self, account_id: str) -> float: ...

    def list_transactions(
        self, account_id: str, start: datetime.date, end: datetime.date
    ) -> List[LedgerTransaction]: ...

    # statements
    def latest_statement_for_account(self, account_id: str) -> Optional[Statement]: ...

    def has_section_with_ending_balance(self, account_id: str) -> bool: ...

    def create_statement(self, statement: Statement) -> Statement: ...

    # archivos subidos
    def create_uploaded_file(self, uploaded: UploadedFile) -> UploadedFile: ...

    def get_uploaded_file(self, file_id: str) -> Optional[UploadedFile]: ...

    def update_uploaded_file(self, file_id: str, **fields: Any) -> UploadedFile: ...


class InMemoryLedgerStore:
    """
    Implementación en memoria del LedgerStore: sirve para la CLI y como doble de prueba.
    Los registros se guardan como copias para que nadie los mute por fuera del store.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.accounts: Dict[str, Account] = {}
        self.categories: Dict[str, Category] = {}
        self.transactions: List[LedgerTransaction] = []
        self.statements: List[Statement] = []
        self.uploaded_files: Dict[str, UploadedFile] = {}

    # -- cuentas -------------------------------------------------------------

    def find_account(
        self, user_id: str, account_type: AccountType, institution: Optional[str] = None
    ) -> Optional[Account]:
        with self._lock:
            for acc in self.accounts.values():
                if acc.user_id != user_id or acc.type != account_type or not acc.is_active:
                    continue
                if institution is None or acc.institution == institution:
                    return acc.model_copy()
        return None

    def find_account_by_identity(
        self, user_id: str, institution: Optional[str], last_four: str, name: str
    ) -> Optional[Account]:
        with self._lock:
            for acc in self.accounts.values():
                if acc.user_id != user_id or acc.institution != institution:
                    continue
                if (last_four and acc.last_four == last_four) or acc.name == name:
                    return acc.model_copy()
        return None

    def create_account(self, account: Account) -> Account:
        with self._lock:
            if not account.id:
                account = account.model_copy(update={"id": new_id()})
            self.accounts[account.id] = account.model_copy()
            return account

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._lock:
            acc = self.accounts.get(account_id)
            return acc.model_copy() if acc else None

    def update_account_balance(self, account_id: str, balance: float) -> Account:
        with self._lock:
            acc = self.accounts[account_id]
            acc.balance = round(balance, 2)
            return acc.model_copy()

    # -- categorías ----------------------------------------------------------

    def get_or_create_category(self, name: str, is_system: bool = False) -> Category:
        with self._lock:
            for cat in self.categories.values():
                if cat.name == name:
                    return cat.model_copy()
            cat = Category(id=new_id(), name=name, is_system=is_system)
            self.categories[cat.id] = cat
            return cat.model_copy()

    # -- transacciones -------------------------------------------------------

    def find_duplicate_transaction(
        self, account_id: str, date: datetime.date, amount: float, description: str
    ) -> Optional[LedgerTransaction]:
        with self._lock:
            for tx in self.transactions:
                if (
                    tx.account_id == account_id
                    and tx.date == date
                    and abs(tx.amount - amount) < 0.005
                    and tx.description == description
                ):
                    return tx.model_copy()
        return None

    def create_transaction(self, tx: LedgerTransaction) -> LedgerTransaction:
        with self._lock:
            if not tx.id:
                tx = tx.model_copy(update={"id": new_id()})
            self.transactions.append(tx.model_copy())
            return tx

    def sum_transactions(self, account_id: str) -> float:
        with self._lock:
            return round(sum(t.amount for t in self.transactions if t.account_id == account_id), 2)

    def list_transactions(
        self, account_id: str, start: datetime.date, end: datetime.date
    ) -> List[LedgerTransaction]:
        with self._lock:
            return [
                t.model_copy()
                for t in self.transactions
                if t.account_id == account_id and start <= t.date <= end
            ]

    # -- statements ----------------------------------------------------------

    def _statements_for(self, account_id: str) -> List[Statement]:
        return [s for s in self.statements if any(sec.account_id == account_id for sec in s.sections)]

    def latest_statement_for_account(self, account_id: str) -> Optional[Statement]:
        with self._lock:
            found = self._statements_for(account_id)
            if not found:
                return None
            return max(found, key=lambda s: s.period_end_date).model_copy(deep=True)

    def has_section_with_ending_balance(self, account_id: str) -> bool:
        with self._lock:
            return any(
                sec.account_id == account_id and sec.ending_balance is not None
                for s in self.statements
                for sec in s.sections
            )

    def create_statement(self, statement: Statement) -> Statement:
        with self._lock:
            statement = statement.model_copy(deep=True)
            statement.id = statement.id or new_id()
            for sec in statement.sections:
                sec.id = sec.id or new_id()
                sec.statement_id = statement.id
            self.statements.append(statement)
            return statement.model_copy(deep=True)

    # -- archivos subidos ----------------------------------------------------

    def create_uploaded_file(self, uploaded: UploadedFile) -> UploadedFile:
        with self._lock:
            if not uploaded.id:
                uploaded = uploaded.model_copy(update={"id": new_id()})
            self.uploaded_files[uploaded.id] = uploaded.model_copy()
            return uploaded

    def get_uploaded_file(self, file_id: str) -> Optional[UploadedFile]:
        with self._lock:
            f = self.uploaded_files.get(file_id)
            return f.model_copy() if f else None

    def update_uploaded_file(self, file_id: str, **fields: Any) -> UploadedFile:
        with self._lock:
            current = self.uploaded_files[file_id]
            updated = current.model_copy(update=fields)
            self.uploaded_files[file_id] = updated
            return updated.model_copy()
