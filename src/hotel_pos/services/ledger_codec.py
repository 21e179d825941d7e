"""
Кодек строк оплаты и долга, которые хранятся в orders.payment_method
и orders.debtor_name.

Новый формат: "cash:500,mpesa:300" и "Jane:200,John:150".
Старый формат: одно слово без двоеточия ("cash", "mobile", "card") означает,
что вся сумма amount_paid внесена этим способом, а одно имя без двоеточия
означает, что весь остаток долга висит на этом человеке.

Внутри сервиса работаем только со списками PaymentEntry / DebtorEntry,
строки появляются исключительно на границе хранения.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional
import re

CASH = "cash"
MPESA = "mpesa"
KCB = "kcb"

PAYMENT_METHODS = (CASH, MPESA, KCB)

# часть истории оплат, у которой способ неизвестен (старое значение "pending")
UNATTRIBUTED = "unattributed"

METHOD_LABELS = {
    CASH: "Cash",
    MPESA: "M-Pesa",
    KCB: "KCB",
    UNATTRIBUTED: "Unattributed",
}

# старые значения колонки и их соответствие текущим способам
METHOD_ALIASES = {
    "cash": CASH,
    "mpesa": MPESA,
    "mobile": MPESA,
    "kcb": KCB,
    "card": KCB,
    UNATTRIBUTED: UNATTRIBUTED,
}

RESERVED_CHARS = (",", ":")

_AMOUNT_RE = re.compile(r"^\d+(\.\d+)?$")


@dataclass(frozen=True)
class PaymentEntry:
    method: str
    amount: Decimal


@dataclass(frozen=True)
class DebtorEntry:
    name: str
    amount: Decimal


def format_amount(amount: Decimal) -> str:
    """500.00 -> "500", 500.50 -> "500.5" (без экспоненты)."""
    return format(Decimal(amount).normalize(), "f")


def parse_amount(text: str) -> Optional[Decimal]:
    text = text.strip()
    if not _AMOUNT_RE.match(text):
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def normalize_method(token: str) -> Optional[str]:
    return METHOD_ALIASES.get(token.strip().lower())


def has_reserved_chars(name: str) -> bool:
    return any(ch in name for ch in RESERVED_CHARS)


def clean_name(name: str) -> str:
    """Убирает из имени должника "," и ":"; старые записи хранили имя как есть."""
    for ch in RESERVED_CHARS:
        name = name.replace(ch, " ")
    return " ".join(name.split()) or "Unknown"


def total(entries: Iterable) -> Decimal:
    return sum((e.amount for e in entries), Decimal("0"))


# --- оплаты ---

def encode_payments(entries: Iterable[PaymentEntry]) -> Optional[str]:
    parts = [
        f"{e.method}:{format_amount(e.amount)}"
        for e in entries
        if e.amount > 0
    ]
    if not parts:
        return None
    return ",".join(parts)


def decode_payments(raw: Optional[str], amount_paid: Decimal = Decimal("0")) -> List[PaymentEntry]:
    """
    Разбирает payment_method в список PaymentEntry.
    Битые и неизвестные сегменты пропускаются, остальное разбирается.
    """
    if raw is None or not raw.strip():
        return []

    raw = raw.strip()

    # старый формат: одно слово, вся сумма amount_paid
    if ":" not in raw and "," not in raw:
        method = normalize_method(raw)
        amount = Decimal(amount_paid or 0)
        if method is None or amount <= 0:
            return []
        return [PaymentEntry(method=method, amount=amount)]

    entries = []
    for segment in raw.split(","):
        method_token, sep, amount_token = segment.partition(":")
        if not sep:
            continue
        method = normalize_method(method_token)
        amount = parse_amount(amount_token)
        if method is None or amount is None or amount <= 0:
            continue
        entries.append(PaymentEntry(method=method, amount=amount))
    return entries


def append_payments(
    raw: Optional[str],
    amount_paid: Decimal,
    new_entries: Iterable[PaymentEntry],
) -> Optional[str]:
    """
    Дописывает новые оплаты к истории, старый формат переводится в новый.
    Если разобранная история меньше amount_paid (например, старое "pending"),
    разница сохраняется отдельной записью unattributed.
    """
    existing = decode_payments(raw, amount_paid)
    gap = Decimal(amount_paid or 0) - total(existing)
    if gap > 0:
        existing.append(PaymentEntry(method=UNATTRIBUTED, amount=gap))
    return encode_payments(existing + list(new_entries))


def summarize_by_method(entries: Iterable[PaymentEntry]) -> Dict[str, Decimal]:
    summary = {method: Decimal("0") for method in PAYMENT_METHODS}
    for entry in entries:
        summary[entry.method] = summary.get(entry.method, Decimal("0")) + entry.amount
    return summary


def merge_by_method(entries: Iterable[PaymentEntry]) -> List[PaymentEntry]:
    """Складывает суммы одного способа, порядок первого появления сохраняется."""
    merged: Dict[str, Decimal] = {}
    for entry in entries:
        merged[entry.method] = merged.get(entry.method, Decimal("0")) + entry.amount
    return [PaymentEntry(method=m, amount=a) for m, a in merged.items()]


# --- должники ---

def encode_debtors(entries: Iterable[DebtorEntry]) -> Optional[str]:
    parts = []
    for e in entries:
        if e.amount <= 0:
            continue
        name = e.name.strip()
        if not name:
            raise ValueError("Debtor name must not be blank")
        if has_reserved_chars(name):
            raise ValueError(f"Debtor name {name!r} must not contain ',' or ':'")
        parts.append(f"{name}:{format_amount(e.amount)}")
    if not parts:
        return None
    return ",".join(parts)


def decode_debtors(raw: Optional[str], balance: Decimal = Decimal("0")) -> List[DebtorEntry]:
    if raw is None or not raw.strip():
        return []

    raw = raw.strip()

    # старый формат: одно имя, весь остаток на нём.
    # Запятую не проверяем: старые имена писались без ограничений ("Smith, John")
    if ":" not in raw:
        amount = Decimal(balance or 0)
        if amount <= 0:
            return []
        return [DebtorEntry(name=raw, amount=amount)]

    entries = []
    for segment in raw.split(","):
        name, sep, amount_token = segment.partition(":")
        name = name.strip()
        if not sep or not name:
            continue
        amount = parse_amount(amount_token)
        if amount is None or amount <= 0:
            continue
        entries.append(DebtorEntry(name=name, amount=amount))
    return entries
