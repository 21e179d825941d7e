from .employee import Employee, StaffRoleEnum
from .menu_item import MenuItem
from .order import Order, OrderStatusEnum, OrderFulfillmentEnum
from .order_item import OrderItem, FulfillmentKindEnum

__all__ = [
    "Employee",
    "StaffRoleEnum",
    "MenuItem",
    "Order",
    "OrderStatusEnum",
    "OrderFulfillmentEnum",
    "OrderItem",
    "FulfillmentKindEnum",
]
