from .base import BaseClient
from .cash_transactions_client import CashTransactionsClient
from .orders_client import OrdersClient
from .registry_client import RegistryClient

__all__ = [
    "BaseClient",
    "CashTransactionsClient",
    "OrdersClient",
    "RegistryClient",
]
