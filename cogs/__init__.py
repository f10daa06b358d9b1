"""Initialize cogs package."""
from .management import Management
from .raffles import Raffles
from .registration import Registration

__all__ = [
    'Management',
    'Raffles',
    'Registration'
]
