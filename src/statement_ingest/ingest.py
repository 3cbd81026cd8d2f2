from __future__ import annotations

import contextlib
import datetime
import json
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .banks.ally_bank import extract_account_info
from .banks.registry import run_strategies
from .categorize import Categorizer, RuleCategorizer
from .config import Settings, settings as default_settings
from .detect import bank_from_name, inspect_document
from .errors import DocumentNotFoundError, IngestionError, InvalidStateError
from .extract import extract_text, file_kind
from .models import (
    Account,
    AccountInfo,
    AccountType,
    Bank,
    FileStatus,
    ImportOptions,
    LedgerTransaction,
    ParsedTransaction,
    ProcessingResult,
    Statement,
    StatementAccountSection,
    StatementInfo,
    StatementType,
    UploadedFile,
)
from .normalize import signed_amount
from .parse import clean_description
from .statement_info import extract_statement_info
from .store import LedgerStore
from .tabular import parse_csv_transactions
from .uploads import move_to_processed, save_upload


NO_TRANSACTIONS_ERROR = "No se encontraron transacciones en el archivo"


class IngestionService:
    """
    Orquesta la ingesta de un statement:
    extracción -> parsing (CSV o estrategia por banco) -> cuenta destino ->
    dedup + categorización + inserción -> balance -> Statement.

    El balance de cada cuenta se actualiza bajo un lock por cuenta: dos imports
    al mismo tiempo sobre la misma cuenta se serializan dentro del proceso.
    """

    def __init__(
        self,
        store: LedgerStore,
        categorizer: Optional[Categorizer] = None,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.settings = settings or default_settings
        self.categorizer = categorizer or RuleCategorizer(store, settings=self.settings)
        self.log = logger or logging.getLogger(__name__)
        self._locks_guard = threading.Lock()
        self._account_locks: Dict[str, threading.Lock] = {}

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def process_file(
        self,
        path: Union[str, Path],
        user_id: str,
        options: Optional[ImportOptions] = None,
        uploaded_file_id: Optional[str] = None,
    ) -> ProcessingResult:
        options = options or ImportOptions()
        result = ProcessingResult()
        try:
            result.file_type = file_kind(path)
            text = extract_text(path, self.settings)
        except IngestionError as exc:
            self.log.warning("No se pudo leer %s: %s", path, exc, extra={"event": "input_error"})
            result.errors.append(str(exc))
            return result

        if result.file_type == "csv":
            return self.process_csv_text(text, user_id, options, uploaded_file_id, result)
        return self.process_statement_text(text, user_id, options, uploaded_file_id, result)

    def process_csv_text(
        self,
        text: str,
        user_id: str,
        options: Optional[ImportOptions] = None,
        uploaded_file_id: Optional[str] = None,
        result: Optional[ProcessingResult] = None,
    ) -> ProcessingResult:
        options = options or ImportOptions()
        result = result or ProcessingResult(file_type="csv")
        declared = bank_from_name(options.bank_name)
        result.bank_type = declared.value
        result.strategy = "CSV"

        txs = parse_csv_transactions(text, options.account_type)
        result.transactions = txs
        result.transactions_found = len(txs)
        if not txs:
            result.errors.append(NO_TRANSACTIONS_ERROR)
            return result

        try:
            account = self._resolve_account(user_id, options, options.bank_name)
        except IngestionError as exc:
            result.errors.append(str(exc))
            return result

        self._import_transactions(txs, account, user_id, result)

        start = min(t.date for t in txs)
        end = max(t.date for t in txs)
        with self._account_lock(account.id):
            self._recalculate_balance(account)
            calculated = self.store.sum_transactions(account.id)
            section = self._section_for(account, start, end)
            statement = self.store.create_statement(
                Statement(
                    user_id=user_id,
                    uploaded_file_id=uploaded_file_id,
                    statement_date=end,
                    period_start_date=start,
                    period_end_date=end,
                    statement_type=StatementType.CUSTOM,
                    notes=(
                        f"Imported from CSV file with {result.transactions_imported} transactions. "
                        f"Calculated balance: {calculated:.2f}"
                    ),
                    sections=[section],
                )
            )

        result.statement_id = statement.id
        result.statement_date = end
        result.statement_period_start = start
        result.statement_period_end = end
        result.final_account_id = account.id
        result.success = True
        return result

    def process_statement_text(
        self,
        text: str,
        user_id: str,
        options: Optional[ImportOptions] = None,
        uploaded_file_id: Optional[str] = None,
        result: Optional[ProcessingResult] = None,
    ) -> ProcessingResult:
        """Texto de un statement (PDF ya extraído o .txt): banco -> estrategia -> import."""
        options = options or ImportOptions()
        result = result or ProcessingResult(file_type="txt")

        doc = inspect_document(text, options.account_type, options.bank_name, options.statement_type)
        result.bank_type = doc.bank.value
        result.bank_confidence = doc.confidence

        txs, used = run_strategies(doc.strategy, text, options.account_type, log=self.log)
        result.strategy = used.value
        result.transactions = txs
        result.transactions_found = len(txs)
        if not txs:
            result.errors.append(NO_TRANSACTIONS_ERROR)
            return result

        info = extract_statement_info(text, txs, log=self.log)
        if info.balance_needs_review:
            result.warnings.append(
                f"Balance final tomado por posición en el resumen ({info.ending_balance:.2f}); revisar manualmente"
            )

        institution = options.bank_name or (doc.bank.display_name if doc.bank != Bank.UNKNOWN else None)
        accounts = extract_account_info(text) if doc.bank == Bank.ALLY_BANK else []
        result.accounts = accounts

        try:
            if len(accounts) > 1:
                self._import_multi_account(txs, accounts, info, user_id, options, institution, uploaded_file_id, result)
            else:
                if accounts and info.ending_balance is None:
                    info.ending_balance = accounts[0].ending_balance
                    info.beginning_balance = info.beginning_balance or accounts[0].beginning_balance
                self._import_single_account(txs, info, user_id, options, institution, uploaded_file_id, result)
        except IngestionError as exc:
            result.errors.append(str(exc))
            return result

        result.statement_balance = info.ending_balance
        result.statement_date = info.statement_date
        result.statement_period_start = info.period_start_date
        result.statement_period_end = info.period_end_date
        result.success = True
        return result

    def _import_single_account(
        self,
        txs: List[ParsedTransaction],
        info: StatementInfo,
        user_id: str,
        options: ImportOptions,
        institution: Optional[str],
        uploaded_file_id: Optional[str],
        result: ProcessingResult,
    ) -> None:
        account = self._resolve_account(user_id, options, institution)
        self._import_transactions(txs, account, user_id, result)

        start, end = self._period(info, txs)
        with self._account_lock(account.id):
            if info.ending_balance is not None:
                self._apply_statement_balance(account, info.ending_balance, end, result)
            else:
                self._recalculate_balance(account)

            section = self._section_for(account, start, end, info.beginning_balance, info.ending_balance)
            statement = self.store.create_statement(
                Statement(
                    user_id=user_id,
                    uploaded_file_id=uploaded_file_id,
                    statement_date=info.statement_date or end,
                    period_start_date=start,
                    period_end_date=end,
                    statement_type=options.statement_type or StatementType.MONTHLY,
                    sections=[section],
                )
            )
        result.statement_id = statement.id
        result.final_account_id = account.id

    def _import_multi_account(
        self,
        txs: List[ParsedTransaction],
        accounts: List[AccountInfo],
        info: StatementInfo,
        user_id: str,
        options: ImportOptions,
        institution: Optional[str],
        uploaded_file_id: Optional[str],
        result: ProcessingResult,
    ) -> None:
        """
        Un statement con varias cuentas (p.ej. el resumen de Ally): una cuenta por
        sub-cuenta y cada transacción va a la cuenta cuyo número la etiquetó el parser.
        No se fija una cuenta final: se llega a ellas por las secciones del Statement.
        """
        resolved: Dict[str, Account] = {}
        for ai in accounts:
            resolved[ai.account_number] = self._resolve_sub_account(user_id, options, institution, ai)

        grouped: Dict[str, List[ParsedTransaction]] = {number: [] for number in resolved}
        for tx in txs:
            if tx.account_number in grouped:
                grouped[tx.account_number].append(tx)
            else:
                result.warnings.append(
                    f"Transacción sin sub-cuenta identificada, no importada: {tx.date} {tx.description} {tx.amount:.2f}"
                )
                self.log.warning(
                    "Transacción sin sub-cuenta: %s",
                    tx.description,
                    extra={"event": "subaccount_unmatched"},
                )

        for number, account in resolved.items():
            self._import_transactions(grouped[number], account, user_id, result)

        start, end = self._period(info, txs)
        sections: List[StatementAccountSection] = []
        with self._accounts_locked(a.id for a in resolved.values()):
            for ai in accounts:
                account = resolved[ai.account_number]
                if ai.ending_balance is not None:
                    self._apply_statement_balance(account, ai.ending_balance, end, result)
                sections.append(
                    self._section_for(
                        account,
                        start,
                        end,
                        ai.beginning_balance,
                        ai.ending_balance,
                        account_number=ai.account_number,
                        name=ai.name,
                    )
                )

            statement = self.store.create_statement(
                Statement(
                    user_id=user_id,
                    uploaded_file_id=uploaded_file_id,
                    statement_date=info.statement_date or end,
                    period_start_date=start,
                    period_end_date=end,
                    statement_type=options.statement_type or StatementType.MONTHLY,
                    notes=f"Multi-account statement with {len(accounts)} accounts",
                    sections=sections,
                )
            )
        result.statement_id = statement.id
        result.final_account_id = None

    # ------------------------------------------------------------------
    # Cuentas
    # ------------------------------------------------------------------

    def _resolve_account(self, user_id: str, options: ImportOptions, institution: Optional[str]) -> Account:
        """
        Cuenta destino:
        1) la indicada explícitamente
        2) una del usuario con ese tipo e institución
        3) cualquiera del usuario con ese tipo
        4) una nueva, nombrada por institución + tipo
        """
        if options.account_id:
            account = self.store.get_account(options.account_id)
            if account is None:
                raise IngestionError(f"No existe la cuenta: {options.account_id}")
            return account

        account = None
        if institution:
            account = self.store.find_account(user_id, options.account_type, institution)
        account = account or self.store.find_account(user_id, options.account_type)
        if account is not None:
            return account

        label = options.account_type.label
        name = f"{institution} {label}" if institution else f"Imported {label} Account"
        account = self.store.create_account(
            Account(id="", user_id=user_id, name=name, type=options.account_type, institution=institution)
        )
        self.log.info("Cuenta creada: %s", name, extra={"event": "account_created", "account_id": account.id})
        return account

    def _resolve_sub_account(
        self,
        user_id: str,
        options: ImportOptions,
        institution: Optional[str],
        ai: AccountInfo,
    ) -> Account:
        account = self.store.find_account_by_identity(user_id, institution, ai.last_four, ai.name)
        if account is not None:
            return account
        account = self.store.create_account(
            Account(
                id="",
                user_id=user_id,
                name=ai.name,
                type=options.account_type,
                institution=institution,
                account_number=ai.account_number,
                last_four=ai.last_four or None,
            )
        )
        self.log.info(
            "Sub-cuenta creada: %s (%s)",
            ai.name,
            ai.account_number,
            extra={"event": "account_created", "account_id": account.id},
        )
        return account

    def _account_lock(self, account_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._account_locks.setdefault(account_id, threading.Lock())

    @contextlib.contextmanager
    def _accounts_locked(self, account_ids: Iterable[str]) -> Iterator[None]:
        """Locks de varias cuentas, siempre en orden de id (dos imports nunca se cruzan)."""
        with contextlib.ExitStack() as stack:
            for account_id in sorted(set(account_ids)):
                stack.enter_context(self._account_lock(account_id))
            yield

    # ------------------------------------------------------------------
    # Transacciones
    # ------------------------------------------------------------------

    def _import_transactions(
        self,
        txs: Sequence[ParsedTransaction],
        account: Account,
        user_id: str,
        result: ProcessingResult,
    ) -> None:
        limit = self.settings.MAX_DESCRIPTION_LENGTH
        for tx in txs:
            description = clean_description(tx.description, limit)
            try:
                amount = signed_amount(tx.direction, tx.amount, account.type)
                if self.store.find_duplicate_transaction(account.id, tx.date, amount, description):
                    result.duplicates += 1
                    self.log.debug(
                        "Duplicada: %s %s %.2f",
                        tx.date,
                        description,
                        amount,
                        extra={"event": "duplicate_skipped", "account_id": account.id},
                    )
                    continue

                self.store.create_transaction(
                    LedgerTransaction(
                        id="",
                        user_id=user_id,
                        account_id=account.id,
                        category_id=self._category_for(description, amount, user_id),
                        date=tx.date,
                        description=description,
                        amount=amount,
                    )
                )
                result.transactions_imported += 1
            except Exception as exc:
                result.errors.append(f"Error importando '{description}': {exc}")
                self.log.warning(
                    "Falló el import de '%s': %s",
                    description,
                    exc,
                    extra={"event": "transaction_import_failed"},
                )

    def _category_for(self, description: str, amount: float, user_id: str) -> str:
        try:
            categorized = self.categorizer.categorize(description, amount, user_id)
        except Exception as exc:
            self.log.warning(
                "Categorización falló para '%s': %s",
                description,
                exc,
                extra={"event": "categorization_failed"},
            )
            categorized = None

        if categorized is None or categorized.category_id is None or categorized.needs_review:
            return self.store.get_or_create_category(self.settings.NEEDS_REVIEW_CATEGORY, is_system=True).id
        return categorized.category_id

    # ------------------------------------------------------------------
    # Balances y statements
    # ------------------------------------------------------------------

    def _apply_statement_balance(
        self,
        account: Account,
        ending_balance: float,
        period_end: datetime.date,
        result: ProcessingResult,
    ) -> bool:
        """
        Solo un statement igual o más nuevo que el último registrado pisa el balance;
        reprocesar uno viejo no debe sobreescribir un balance más reciente.
        Se llama con el lock de la cuenta tomado y antes de crear el Statement nuevo.
        """
        latest = self.store.latest_statement_for_account(account.id)
        if latest is not None and period_end < latest.period_end_date:
            self.log.warning(
                "Statement al %s es anterior al último (%s); no se actualiza el balance de %s",
                period_end,
                latest.period_end_date,
                account.name,
                extra={"event": "balance_superseded", "account_id": account.id},
            )
            result.warnings.append(
                f"El balance de {account.name} no se actualizó: ya existe un statement más reciente "
                f"({latest.period_end_date})"
            )
            return False

        self.store.update_account_balance(account.id, ending_balance)
        self.log.info(
            "Balance de %s actualizado a %.2f",
            account.name,
            ending_balance,
            extra={"event": "balance_updated", "account_id": account.id},
        )
        return True

    def _recalculate_balance(self, account: Account) -> Optional[float]:
        """Balance = suma de transacciones, salvo que ya exista un balance anclado a un statement."""
        if self.store.has_section_with_ending_balance(account.id):
            self.log.info(
                "%s tiene balances de statement; no se recalcula por suma",
                account.name,
                extra={"event": "balance_recalculation_skipped", "account_id": account.id},
            )
            return None
        total = self.store.sum_transactions(account.id)
        self.store.update_account_balance(account.id, total)
        self.log.info(
            "Balance de %s recalculado: %.2f",
            account.name,
            total,
            extra={"event": "balance_recalculated", "account_id": account.id},
        )
        return total

    @staticmethod
    def _period(info: StatementInfo, txs: Sequence[ParsedTransaction]) -> Tuple[datetime.date, datetime.date]:
        start = info.period_start_date or min(t.date for t in txs)
        end = info.period_end_date or max(t.date for t in txs)
        return start, end

    def _section_for(
        self,
        account: Account,
        start: datetime.date,
        end: datetime.date,
        beginning_balance: Optional[float] = None,
        ending_balance: Optional[float] = None,
        account_number: Optional[str] = None,
        name: Optional[str] = None,
    ) -> StatementAccountSection:
        period_txs = self.store.list_transactions(account.id, start, end)
        return StatementAccountSection(
            account_id=account.id,
            account_name=name or account.name,
            account_number=account_number or account.account_number,
            last_four=account.last_four,
            beginning_balance=beginning_balance,
            ending_balance=ending_balance,
            total_debits=round(sum(-t.amount for t in period_txs if t.amount < 0), 2),
            total_credits=round(sum(t.amount for t in period_txs if t.amount > 0), 2),
            transaction_count=len(period_txs),
        )

    # ------------------------------------------------------------------
    # Archivos subidos
    # ------------------------------------------------------------------

    def register_upload(
        self,
        user_id: str,
        content: bytes,
        original_name: str,
        options: Optional[ImportOptions] = None,
    ) -> UploadedFile:
        options = options or ImportOptions()
        filename, path = save_upload(content, original_name, self.settings)
        uploaded = self.store.create_uploaded_file(
            UploadedFile(
                id="",
                user_id=user_id,
                filename=filename,
                original_name=original_name,
                file_path=str(path),
                file_size=len(content),
                account_id=options.account_id,
                account_type=options.account_type,
                bank_name=options.bank_name,
                statement_type=options.statement_type,
            )
        )
        self.log.info("Archivo registrado: %s", original_name, extra={"event": "upload_registered"})
        return uploaded

    def _get_uploaded(self, file_id: str) -> UploadedFile:
        uploaded = self.store.get_uploaded_file(file_id)
        if uploaded is None:
            raise DocumentNotFoundError(f"No existe el archivo subido: {file_id}")
        return uploaded

    def process_uploaded_file(self, file_id: str) -> ProcessingResult:
        """PENDING -> PROCESSING -> COMPLETED | FAILED."""
        uploaded = self._get_uploaded(file_id)
        if uploaded.status != FileStatus.PENDING:
            raise InvalidStateError(f"El archivo {file_id} no está pendiente (estado: {uploaded.status.value})")

        self.store.update_uploaded_file(file_id, status=FileStatus.PROCESSING)
        try:
            result = self.process_file(uploaded.file_path, uploaded.user_id, uploaded.options(), file_id)
            details = {
                "transactions_found": result.transactions_found,
                "transactions_imported": result.transactions_imported,
                "duplicates": result.duplicates,
                "errors": result.errors,
                "warnings": result.warnings,
                "bank_type": result.bank_type,
                "file_type": result.file_type,
                "strategy": result.strategy,
                "transactions": [t.model_dump(mode="json") for t in result.transactions],
                "accounts": [a.model_dump(mode="json") for a in result.accounts],
            }
            self.store.update_uploaded_file(
                file_id,
                status=FileStatus.COMPLETED if result.success else FileStatus.FAILED,
                error_message="; ".join(result.errors) or None,
                processed_at=datetime.datetime.now(),
                transaction_count=result.transactions_imported,
                processing_details=json.dumps(details, ensure_ascii=False),
                account_id=result.final_account_id or uploaded.account_id,
            )
            if result.success:
                archived = move_to_processed(Path(uploaded.file_path), self.settings)
                self.store.update_uploaded_file(file_id, file_path=str(archived))
        except Exception as exc:
            self.log.exception("Error procesando %s", uploaded.original_name, extra={"event": "processing_failed"})
            self.store.update_uploaded_file(
                file_id,
                status=FileStatus.FAILED,
                error_message=str(exc) or exc.__class__.__name__,
                processed_at=datetime.datetime.now(),
            )
            return ProcessingResult(errors=[str(exc) or exc.__class__.__name__])

        self.log.info(
            "%s procesado: %d importadas, %d duplicadas, %d errores",
            uploaded.original_name,
            result.transactions_imported,
            result.duplicates,
            len(result.errors),
            extra={"event": "file_processed", "file_id": file_id},
        )
        return result

    def retry_upload(self, file_id: str) -> UploadedFile:
        uploaded = self._get_uploaded(file_id)
        if uploaded.status != FileStatus.FAILED:
            raise InvalidStateError(
                f"Solo se reintentan archivos con estado FAILED (estado actual: {uploaded.status.value})"
            )
        return self._reset(file_id)

    def update_metadata(
        self,
        file_id: str,
        account_id: Optional[str] = None,
        account_type: Optional[AccountType] = None,
        bank_name: Optional[str] = None,
        statement_type: Optional[StatementType] = None,
    ) -> UploadedFile:
        """Corrige las pistas del archivo y lo deja PENDING para reprocesarlo."""
        uploaded = self._get_uploaded(file_id)
        if uploaded.status == FileStatus.PROCESSING:
            raise InvalidStateError(f"El archivo {file_id} se está procesando")

        changes = {
            "account_id": account_id,
            "account_type": account_type,
            "bank_name": bank_name,
            "statement_type": statement_type,
        }
        self.store.update_uploaded_file(file_id, **{k: v for k, v in changes.items() if v is not None})
        return self._reset(file_id)

    def _reset(self, file_id: str) -> UploadedFile:
        return self.store.update_uploaded_file(
            file_id,
            status=FileStatus.PENDING,
            error_message=None,
            processed_at=None,
            transaction_count=None,
            processing_details=None,
        )
