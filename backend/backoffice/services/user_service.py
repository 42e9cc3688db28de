# Overview: Service-layer lookups for acting users, bank accounts and cards.

from __future__ import annotations

from ..errors import NotFound, RefundTargetInvalid, ValidationError
from ..extensions import db
from ..models import BankAccount, Card, User
from ..targets import Bank, Card as CardTarget, Cash


def get_actor(user_id) -> User:
    """Resolve the acting user; inactive users cannot act."""
    if user_id is None:
        raise ValidationError("acting user is required")
    try:
        ident = int(user_id)
    except (TypeError, ValueError):
        raise ValidationError("acting user id must be an integer", {"user_id": str(user_id)})
    user = db.session.get(User, ident)
    if not user or not user.is_active:
        raise NotFound(f"User {ident} not found", {"user_id": ident})
    return user


def ensure_target_exists(target) -> None:
    """Bank accounts and cards referenced by a payment must exist and be active."""
    if isinstance(target, Cash):
        return
    if isinstance(target, Bank):
        account = db.session.get(BankAccount, target.account_id)
        if not account or not account.is_active:
            raise NotFound(f"Bank account {target.account_id} not found", {"bank_account_id": target.account_id})
        return
    if isinstance(target, CardTarget):
        card = db.session.get(Card, target.card_id)
        if not card or not card.is_active:
            raise NotFound(f"Card {target.card_id} not found", {"card_id": target.card_id})
        return
    raise TypeError(f"Unknown payment target: {target!r}")


def ensure_refund_target(target) -> None:
    """Refunds go back to the cash drawer or an active bank account only."""
    if isinstance(target, Cash):
        return
    if isinstance(target, Bank):
        account = db.session.get(BankAccount, target.account_id)
        if not account or not account.is_active:
            raise RefundTargetInvalid(
                f"Bank account {target.account_id} not found for refund",
                {"bank_account_id": target.account_id},
            )
        return
    if isinstance(target, CardTarget):
        raise RefundTargetInvalid("Refunds can only be made to cash or a bank account", {"method": "card"})
    raise TypeError(f"Unknown payment target: {target!r}")
