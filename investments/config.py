from decimal import Decimal, ROUND_DOWN
from datetime import timedelta

CENT = Decimal("0.01")
RUPIAH = Decimal("1")


def to_money(value) -> Decimal:
    """Coerce to a two-place Decimal without going through float."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_DOWN)


# ==========================================================
#                  CONTRACT / ACCRUAL
# ==========================================================
class ContractConfig:
    ACCRUAL_PERIOD = timedelta(hours=24)
    PAYMENT_EXPIRY = timedelta(hours=24)

    # Gateway limits
    QRIS_MAX_AMOUNT = Decimal("10000000")
    BANK_MIN_AMOUNT = Decimal("10000")

    # Virtual-account channels the gateway accepts, with their bank codes
    VA_BANK_CODES = {
        "BCA": "014",
        "BNI": "009",
        "BRI": "002",
        "BSI": "451",
        "CIMB": "022",
        "DANAMON": "011",
        "MANDIRI": "008",
        "BMI": "147",
        "BNC": "490",
        "OCBC": "028",
        "PERMATA": "013",
        "SINARMAS": "153",
    }

    # Contracts in these states count against a product's purchase limit
    LIMIT_COUNTED_STATUSES = ("Running", "Completed", "Suspended")

    @staticmethod
    def bank_code_for(channel: str) -> str:
        return ContractConfig.VA_BANK_CODES[channel.strip().upper()]


# ==========================================================
#                  VIP LEVELS
# ==========================================================
class VipConfig:
    # (threshold, level), highest first
    THRESHOLDS = (
        (Decimal("150000000"), 5),
        (Decimal("30000000"), 4),
        (Decimal("10000000"), 3),
        (Decimal("1200000"), 2),
        (Decimal("50000"), 1),
    )


def vip_level_for(amount) -> int:
    """VIP level for a cumulative VIP-qualifying invested amount."""
    amount = Decimal(str(amount or 0))
    for threshold, level in VipConfig.THRESHOLDS:
        if amount >= threshold:
            return level
    return 0


# ==========================================================
#                  REFERRAL
# ==========================================================
class ReferralConfig:
    COMMISSION_PERCENT = Decimal("30")
    SPIN_TICKET_THRESHOLD = Decimal("100000")
    SPIN_TICKETS_PER_GRANT = 1

    @staticmethod
    def commission_for(amount: Decimal) -> Decimal:
        commission = (Decimal(amount) * ReferralConfig.COMMISSION_PERCENT) / Decimal("100")
        return commission.quantize(CENT, rounding=ROUND_DOWN)


# ==========================================================
#                  WITHDRAWALS
# ==========================================================
class WithdrawalConfig:
    OPEN_HOUR = 9
    CLOSE_HOUR = 17  # exclusive
    CLOSED_WEEKDAYS = (6,)  # Sunday

    @staticmethod
    def calculate_fee(amount: Decimal, percent: Decimal) -> Decimal:
        """Processing fee for a withdrawal, in whole rupiah so the payout is whole too"""
        fee = (Decimal(amount) * Decimal(percent)) / Decimal("100")
        return fee.quantize(RUPIAH, rounding=ROUND_DOWN)


# ==========================================================
#                  TRANSFERS
# ==========================================================
class TransferConfig:
    MIN_AMOUNT = Decimal("10000")
    MAX_AMOUNT = Decimal("10000000")
    REQUIRED_VIP = 3
