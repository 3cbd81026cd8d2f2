from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from .categorize import RuleCategorizer
from .config import settings
from .ingest import IngestionService
from .logging_config import configure_logging
from .models import AccountType, ImportOptions, ProcessingResult, StatementType
from .store import InMemoryLedgerStore


def _summary_table(rows: List[tuple]) -> Table:
    table = Table(title="Resumen de importación")
    for col in ("Archivo", "Banco", "Estrategia", "Encontradas", "Importadas", "Duplicadas", "Balance", "Errores"):
        table.add_column(col)
    for name, r in rows:
        balance = f"{r.statement_balance:,.2f}" if r.statement_balance is not None else "-"
        table.add_row(
            name,
            r.bank_type or "-",
            r.strategy or "-",
            str(r.transactions_found),
            str(r.transactions_imported),
            str(r.duplicates),
            balance,
            str(len(r.errors)),
        )
    return table


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Ingesta de estados de cuenta (CSV / PDF / TXT)")
    parser.add_argument("files", nargs="+", help="Rutas a los archivos (se procesan en orden)")
    parser.add_argument(
        "--account-type",
        default=AccountType.CHECKING.value,
        choices=[t.value for t in AccountType],
        help="Tipo de cuenta declarado",
    )
    parser.add_argument("--bank", default=None, help="Nombre del banco (opcional; si no, se detecta)")
    parser.add_argument(
        "--statement-type",
        default=None,
        choices=[t.value for t in StatementType],
        help="Tipo de statement (opcional)",
    )
    parser.add_argument("--user", default="local", help="Usuario dueño de las cuentas")
    parser.add_argument("--out", default="", help="Ruta de salida JSON (opcional)")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Nivel de logging")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    console = Console()

    store = InMemoryLedgerStore()
    service = IngestionService(store, RuleCategorizer(store))
    options = ImportOptions(
        account_type=AccountType(args.account_type),
        bank_name=args.bank,
        statement_type=StatementType(args.statement_type) if args.statement_type else None,
    )

    results: List[tuple] = []
    for file in args.files:
        path = Path(file)
        console.print(f"Procesando: {path}", style="bold")
        result: ProcessingResult = service.process_file(path, args.user, options)
        for err in result.errors:
            console.print(f"  error: {err}", style="red")
        for warn in result.warnings:
            console.print(f"  aviso: {warn}", style="yellow")
        results.append((path.name, result))

    console.print(_summary_table(results))

    if args.out:
        payload = {
            "results": [{"file": name, **r.model_dump(mode="json")} for name, r in results],
            "accounts": [a.model_dump(mode="json") for a in store.accounts.values()],
            "transactions": [t.model_dump(mode="json") for t in store.transactions],
            "statements": [s.model_dump(mode="json") for s in store.statements],
        }
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        console.print(f"OK -> {out_path}", style="bold green")

    total = sum(r.transactions_imported for _, r in results)
    console.print(f"Transacciones importadas: {total}", style="bold cyan")
    return 0 if all(r.success for _, r in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
