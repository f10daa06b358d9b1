"""Initialize database package."""
from .database import Base, Database
from .models import User, Raffle, Purchase, Ticket, InstantPrize

__all__ = [
    'Base',
    'Database',
    'User',
    'Raffle',
    'Purchase',
    'Ticket',
    'InstantPrize',
]
