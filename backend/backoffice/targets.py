# Overview: PaymentTarget variant (cash drawer, bank account, card) and its wire/storage forms.

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .errors import ValidationError


KIND_CASH = "cash"
KIND_BANK = "bank"
KIND_CARD = "card"

VALID_TARGET_KINDS = (KIND_CASH, KIND_BANK, KIND_CARD)

# Older clients send these method names
_METHOD_ALIASES = {
    "bank_transfer": KIND_BANK,
    "bank-transfer": KIND_BANK,
    "online": KIND_BANK,
}


@dataclass(frozen=True)
class Cash:
    def describe(self) -> str:
        return "cash"


@dataclass(frozen=True)
class Bank:
    account_id: int

    def describe(self) -> str:
        return f"bank #{self.account_id}"


@dataclass(frozen=True)
class Card:
    card_id: int

    def describe(self) -> str:
        return f"card #{self.card_id}"


PaymentTarget = Union[Cash, Bank, Card]


def target_columns(target: PaymentTarget) -> tuple[str, int | None]:
    """Split a target into its (target_kind, target_ref) storage columns."""
    if isinstance(target, Cash):
        return KIND_CASH, None
    if isinstance(target, Bank):
        return KIND_BANK, target.account_id
    if isinstance(target, Card):
        return KIND_CARD, target.card_id
    raise TypeError(f"Unknown payment target: {target!r}")


def target_from_columns(kind: str, ref: int | None) -> PaymentTarget:
    if kind == KIND_CASH:
        return Cash()
    if kind == KIND_BANK:
        return Bank(int(ref))
    if kind == KIND_CARD:
        return Card(int(ref))
    raise TypeError(f"Unknown payment target kind: {kind!r}")


def target_key(target: PaymentTarget) -> str:
    kind, ref = target_columns(target)
    return kind if ref is None else f"{kind}:{ref}"


def target_sort_key(target: PaymentTarget) -> tuple[int, int]:
    kind, ref = target_columns(target)
    return VALID_TARGET_KINDS.index(kind), ref or 0


def target_to_dict(target: PaymentTarget) -> dict:
    if isinstance(target, Cash):
        return {"method": KIND_CASH}
    if isinstance(target, Bank):
        return {"method": KIND_BANK, "bank_account_id": target.account_id}
    if isinstance(target, Card):
        return {"method": KIND_CARD, "card_id": target.card_id}
    raise TypeError(f"Unknown payment target: {target!r}")


def _positive_id(value, field: str) -> int:
    try:
        ident = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} is required", {"field": field})
    if ident <= 0:
        raise ValidationError(f"{field} must be positive", {"field": field})
    return ident


def parse_target(data: dict | None) -> PaymentTarget:
    """
    Parse the wire form of a payment target.

    Accepts {"method": "cash"}, {"method": "bank", "bank_account_id": 3},
    {"method": "card", "card_id": 2}; camelCase ids are accepted too.
    """
    if not isinstance(data, dict):
        raise ValidationError("payment method is required")
    method = str(data.get("method") or data.get("payment_method") or "").strip().lower()
    method = _METHOD_ALIASES.get(method, method)

    if method == KIND_CASH:
        return Cash()
    if method == KIND_BANK:
        raw = data.get("bank_account_id", data.get("bankAccountId"))
        return Bank(_positive_id(raw, "bank_account_id"))
    if method == KIND_CARD:
        raw = data.get("card_id", data.get("cardId"))
        return Card(_positive_id(raw, "card_id"))
    raise ValidationError(
        f"Invalid payment method: {method or '<missing>'}",
        {"valid_methods": list(VALID_TARGET_KINDS)},
    )
