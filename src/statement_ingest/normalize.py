from __future__ import annotations

from typing import Tuple

from .models import AccountType, Direction


# Cuentas de depósito (checking / savings / ...)
DEPOSIT_INCOME_KEYWORDS: Tuple[str, ...] = (
    "ACH DEPOSIT",
    "DEPOSIT",
    "PAYROLL",
    "REFUND",
    "INTEREST EARNED",
    "INTEREST PAID",
    "DIVIDEND",
)

DEPOSIT_EXPENSE_KEYWORDS: Tuple[str, ...] = (
    "ELECTRONIC PMT",
    "ELECTRONIC PAYMENT",
    "ACH DEBIT",
    "ETRANSFER DEBIT",
    "TRANSFER",
    "PAYMENT",
    "DEBIT",
    "WITHDRAWAL",
    "ATM",
    "FEE",
    "CHARGE",
    "CHECK",
    "PURCHASE",
    "VENMO",
    "COINBASE",
    "CHASE CREDIT",
    "CITI CARD",
    "CREDIT CRD",
    "CREDIT CARD",
    "ALLY BANK",
    "SCHWAB",
    "COMCAST",
    "PECO ENERGY",
)

# Tarjetas / líneas de crédito: INCOME = pago que reduce la deuda
CREDIT_INCOME_KEYWORDS: Tuple[str, ...] = (
    "PAYMENT RECEIVED",
    "THANK YOU",
    "AUTOPAY",
    "ONLINE PAYMENT",
    "PAYMENT - ",
    "ELECTRONIC PAYMENT",
    "CREDIT ADJUSTMENT",
    "REFUND",
    "RETURN",
)


def _is_credit_line_mention(upper_desc: str) -> bool:
    # "CHASE CREDIT CRD AUTOPAY" es un pago a otra tarjeta, no un crédito recibido
    return "CREDIT CRD" in upper_desc or "CREDIT CARD" in upper_desc


def classify_direction(description: str, account_type: AccountType) -> Direction:
    """
    Reglas por palabra clave, en orden:
    - Crédito: pagos / refunds / returns => INCOME; todo lo demás => EXPENSE
    - Depósito: señales de ingreso primero (deposit, payroll, refund, interés,
      dividendos, 'credit' que no sea una tarjeta), luego señales de gasto;
      sin señal => EXPENSE
    """
    d = (description or "").upper()

    if account_type.is_credit:
        if any(k in d for k in CREDIT_INCOME_KEYWORDS):
            return Direction.INCOME
        return Direction.EXPENSE

    if any(k in d for k in DEPOSIT_INCOME_KEYWORDS):
        return Direction.INCOME
    if "CREDIT" in d and not _is_credit_line_mention(d):
        return Direction.INCOME
    if any(k in d for k in DEPOSIT_EXPENSE_KEYWORDS):
        return Direction.EXPENSE

    return Direction.EXPENSE


def signed_amount(direction: Direction, magnitude: float, account_type: AccountType) -> float:
    """
    Signo del ledger:
    - depósito: EXPENSE negativo, INCOME positivo
    - crédito:  EXPENSE positivo (sube la deuda), INCOME negativo (la baja)
    """
    value = round(abs(magnitude), 2)
    if account_type.is_credit:
        return value if direction == Direction.EXPENSE else -value
    return value if direction == Direction.INCOME else -value


def direction_from_signed(amount: float, account_type: AccountType) -> Direction:
    """Inversa de signed_amount."""
    if account_type.is_credit:
        return Direction.EXPENSE if amount > 0 else Direction.INCOME
    return Direction.INCOME if amount > 0 else Direction.EXPENSE
