# ==========================================================
#                  EXCEPTIONS
# ==========================================================
class LedgerError(Exception):
    """Base error for the ledger engine. Messages are safe to show users."""
    status_code = 400

    def __init__(self, message="Request could not be processed"):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    pass


class InsufficientBalanceError(LedgerError):
    def __init__(self, message="Insufficient balance"):
        super().__init__(message)


class WithdrawalWindowError(LedgerError):
    def __init__(self, message="Withdrawals are only available Monday to Saturday, 09:00 - 17:00"):
        super().__init__(message)


class DailyLimitError(LedgerError):
    def __init__(self, message="Only one withdrawal is allowed per day"):
        super().__init__(message)


class PurchaseLimitError(LedgerError):
    def __init__(self, message="Purchase limit for this product has been reached"):
        super().__init__(message)


class VipLevelError(LedgerError):
    status_code = 403

    def __init__(self, message="Your VIP level is too low for this product"):
        super().__init__(message)


class NotFoundError(LedgerError):
    status_code = 404


class InvalidStateError(LedgerError):
    status_code = 409


class GatewayError(LedgerError):
    """Gateway call failed or timed out. The record it concerns is left Pending."""
    status_code = 502

    def __init__(self, message="Payment service is temporarily unavailable, please try again", detail=None):
        super().__init__(message)
        self.detail = detail
