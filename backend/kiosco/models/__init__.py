from .catalog import Product, RestockSource, RestockPurchase
from .combos import Combo, ComboItem
from .sales import Sale, SaleItem, ComboSale, SALE_STATUS_ACTIVE, SALE_STATUS_VOIDED
from .registers import CashRegisterClosing
from .settings import ExchangeRateConfig
from .ledger import LedgerEvent

__all__ = [
    'Product', 'RestockSource', 'RestockPurchase',
    'Combo', 'ComboItem',
    'Sale', 'SaleItem', 'ComboSale', 'SALE_STATUS_ACTIVE', 'SALE_STATUS_VOIDED',
    'CashRegisterClosing',
    'ExchangeRateConfig',
    'LedgerEvent',
]
