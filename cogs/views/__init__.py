from .purchase_views import PurchaseReviewView, RejectReasonModal
from .raffle_views import CreateRaffleModal
from .registration_views import RegistrationModal

__all__ = [
    'PurchaseReviewView',
    'RejectReasonModal',
    'CreateRaffleModal',
    'RegistrationModal'
]
