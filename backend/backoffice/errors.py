# Overview: Domain error taxonomy raised by services and mapped to JSON by routes.

from __future__ import annotations


class LedgerError(Exception):
    """
    Base for every business-rule failure in the back office.

    Routes turn these into {"error", "code", "details"} with http_status.
    """
    code = "LEDGER_ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class NotFound(LedgerError):
    code = "NOT_FOUND"
    http_status = 404


class ValidationError(LedgerError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"
    http_status = 400


class ConflictError(LedgerError):
    """409-level concurrent modification or uniqueness clash."""
    code = "CONFLICT"
    http_status = 409


class QuantityInvalid(LedgerError):
    code = "QUANTITY_INVALID"
    http_status = 422


class StockWouldGoNegative(QuantityInvalid):
    code = "STOCK_WOULD_GO_NEGATIVE"


class PaymentExceedsTotal(LedgerError):
    code = "PAYMENT_EXCEEDS_TOTAL"
    http_status = 422


class InsufficientBalance(LedgerError):
    code = "INSUFFICIENT_BALANCE"
    http_status = 422


class InvalidAmount(LedgerError):
    code = "INVALID_AMOUNT"
    http_status = 422


class EditWindowExpired(LedgerError):
    code = "EDIT_WINDOW_EXPIRED"
    http_status = 409


class CostImmutable(LedgerError):
    code = "COST_IMMUTABLE"
    http_status = 409


class AlreadyCancelled(LedgerError):
    code = "ALREADY_CANCELLED"
    http_status = 409


class CancelWindowExpired(LedgerError):
    code = "CANCEL_WINDOW_EXPIRED"
    http_status = 409


class RefundRequired(LedgerError):
    code = "REFUND_REQUIRED"
    http_status = 422


class RefundTargetInvalid(LedgerError):
    code = "REFUND_TARGET_INVALID"
    http_status = 422


class TransactionNotPending(LedgerError):
    code = "TRANSACTION_NOT_PENDING"
    http_status = 409


class ConfirmationRequired(LedgerError):
    code = "CONFIRMATION_REQUIRED"
    http_status = 409
