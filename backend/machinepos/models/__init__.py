from .inventory import Machine, MACHINE_CATEGORIES
from .customers import Customer
from .orders import (
    Order,
    OrderItem,
    OrderExtra,
    ORDER_STATUSES,
    PAYMENT_STATUSES,
)

__all__ = [
    'Machine', 'MACHINE_CATEGORIES',
    'Customer',
    'Order', 'OrderItem', 'OrderExtra',
    'ORDER_STATUSES', 'PAYMENT_STATUSES',
]
