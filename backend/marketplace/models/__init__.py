from .users import User, Buyer, BuyerAddress, Seller, Driver, Admin, SessionToken
from .catalog import Warehouse, Inventory, InventoryStock, InventoryAddOn, Cylinder, refresh_inventory_total
from .orders import Order, OrderStatusHistory, CylinderVerification, Rating, PaymentEntry, TERMINAL_STATUSES
from .communications import Notification
from .documents import DocumentSequence

__all__ = [
    'User', 'Buyer', 'BuyerAddress', 'Seller', 'Driver', 'Admin', 'SessionToken',
    'Warehouse', 'Inventory', 'InventoryStock', 'InventoryAddOn', 'Cylinder', 'refresh_inventory_total',
    'Order', 'OrderStatusHistory', 'CylinderVerification', 'Rating', 'PaymentEntry', 'TERMINAL_STATUSES',
    'Notification',
    'DocumentSequence',
]
