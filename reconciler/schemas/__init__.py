from .events import InventoryEvent, LineItem, OrderEvent, NotificationRequest
from .catalog import Variant
