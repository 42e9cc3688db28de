from .catalog import Product, BankAccount, Card, User
from .transactions import Transaction, LineItem, TransactionPayment, Counterparty, DocumentSequence
from .ledger import (
    LedgerEntry,
    ClosingBalanceSnapshot,
    ClosingBalanceLine,
    OpeningBalance,
    OpeningBalanceLine,
    DailyConfirmation,
    BalanceLock,
)

__all__ = [
    'Product', 'BankAccount', 'Card', 'User',
    'Transaction', 'LineItem', 'TransactionPayment', 'Counterparty', 'DocumentSequence',
    'LedgerEntry', 'ClosingBalanceSnapshot', 'ClosingBalanceLine',
    'OpeningBalance', 'OpeningBalanceLine', 'DailyConfirmation', 'BalanceLock',
]
