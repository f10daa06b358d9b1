"""Initialize services package."""
from .approval_service import PurchaseApprovalService
from .draw_service import DrawService
from .lifecycle_service import RaffleLifecycleService
from .notifier import Message, NotificationService, Notifier
from .payment_service import PaymentCodeGenerator, PixPaymentCodeGenerator
from .raffle_service import RaffleService
from .referral_service import ReferralBonusEngine
from .user_service import UserService

__all__ = [
    'PurchaseApprovalService',
    'DrawService',
    'RaffleLifecycleService',
    'Message',
    'NotificationService',
    'Notifier',
    'PaymentCodeGenerator',
    'PixPaymentCodeGenerator',
    'RaffleService',
    'ReferralBonusEngine',
    'UserService'
]
