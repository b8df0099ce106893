from .tenancy import Restaurant, DiningTable
from .auth import User, SessionToken, STAFF_ROLES
from .catalog import Product, Stock, StockMovement
from .orders import Order, OrderItem, Payment
from .billing import Subscription, SubscriptionPayment
from .logs import SystemLog

__all__ = [
    'Restaurant', 'DiningTable',
    'User', 'SessionToken', 'STAFF_ROLES',
    'Product', 'Stock', 'StockMovement',
    'Order', 'OrderItem', 'Payment',
    'Subscription', 'SubscriptionPayment',
    'SystemLog',
]
