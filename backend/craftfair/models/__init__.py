from .events import Event
from .artisans import Artisan
from .inventory import Product, InventoryMovement
from .sales import Sale, ProductChange

__all__ = [
    'Event',
    'Artisan',
    'Product', 'InventoryMovement',
    'Sale', 'ProductChange',
]
