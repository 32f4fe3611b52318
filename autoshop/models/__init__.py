# autoshop/models/__init__.py
from .money import Money
from .branch import Branch
from .client import Client
from .product import Product, Currency
from .order import Order, OrderItem, OrderStatus, PaymentType
from .debtor import Debtor, DebtorPayment, DebtorStatus, OrderDebt
from .transaction import Transaction, TransactionType, RelatedModel, Balance
