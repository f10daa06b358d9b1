"""Custom exceptions for the raffle bot."""

class BotError(Exception):
    """Base exception for all bot-related errors."""
    pass

class DatabaseError(BotError):
    """Raised when the database cannot be set up or reached."""
    pass

class RaffleError(BotError):
    """Base class for raffle errors surfaced to callers."""
    pass

class NotFoundError(RaffleError):
    """Raised when a requested entity does not exist."""
    pass

class RaffleNotFoundError(NotFoundError):
    """Raised when a raffle cannot be found."""
    def __init__(self, raffle_id: int):
        self.raffle_id = raffle_id
        super().__init__(f"Raffle {raffle_id} not found")

class PurchaseNotFoundError(NotFoundError):
    """Raised when a purchase cannot be found."""
    def __init__(self, purchase_id: int):
        self.purchase_id = purchase_id
        super().__init__(f"Purchase {purchase_id} not found")

class UserNotRegisteredError(NotFoundError):
    """Raised when a Discord user has not registered yet."""
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} is not registered")

class ReferralCodeNotFoundError(NotFoundError):
    """Raised when a referral code does not belong to any user."""
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Referral code {code} not found")

class InvalidStateError(RaffleError):
    """Raised when an operation is attempted from the wrong lifecycle state."""
    def __init__(self, message: str, current_status: str = None):
        self.current_status = current_status
        super().__init__(message)

class CapacityExceededError(RaffleError):
    """Raised when a raffle does not have enough unsold tickets."""
    def __init__(self, raffle_id: int, requested: int, available: int):
        self.raffle_id = raffle_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Raffle {raffle_id} has insufficient tickets. "
            f"Requested: {requested}, Available: {available}"
        )

class InvalidInputError(RaffleError):
    """Raised when caller-supplied input is malformed."""
    pass

class InvalidAmountError(InvalidInputError):
    """Raised when a non-positive quantity or amount is provided."""
    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Invalid amount: {amount}. Amount must be positive.")

class InvalidDrawNumberError(InvalidInputError):
    """Raised when an external draw number contains non-digit characters."""
    def __init__(self, draw_number: str):
        self.draw_number = draw_number
        super().__init__(f"Invalid draw number '{draw_number}'. Only digits are allowed.")

class ConcurrencyConflictError(RaffleError):
    """Raised when a transaction is aborted by contention or timeout."""
    pass

class NoTicketsSoldError(RaffleError):
    """Raised when drawing a raffle that has no approved tickets."""
    def __init__(self, raffle_id: int):
        self.raffle_id = raffle_id
        super().__init__(f"Raffle {raffle_id} has no approved tickets to draw from")
