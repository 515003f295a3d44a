from .user import User, Wallet
from .order import Order, Direction, OrderStatus, WalletRef
from .notification import Notification

__all__ = ["User", "Wallet", "Order", "Direction", "OrderStatus", "WalletRef", "Notification"]
