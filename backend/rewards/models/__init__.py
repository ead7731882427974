from .users import User, SessionToken, ResetToken
from .promotions import Promotion
from .events import Event, EventOrganizer, EventGuest
from .ledger import Transaction, PurchaseDetail, PromotionUsage

__all__ = [
    'User', 'SessionToken', 'ResetToken',
    'Promotion',
    'Event', 'EventOrganizer', 'EventGuest',
    'Transaction', 'PurchaseDetail', 'PromotionUsage',
]
