import random
import threading
import time
from datetime import datetime

_order_lock = threading.Lock()
_rand = random.Random()


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.utcnow()


def generate_order_id(user_id: int, prefix: str = "XIN") -> str:
    """Order id: prefix, six digits of the nanosecond clock, a 3-digit random and the user id."""
    with _order_lock:
        nano_part = time.time_ns() % 1_000_000
        rand_part = _rand.randint(100, 999)
    return f"{prefix}-{nano_part:06d}{rand_part:03d}{user_id}"


def generate_customer_no(user_id: int) -> str:
    """Virtual-account customer number, unique per request."""
    return f"{user_id}{time.time_ns() % 10_000_000_000:010d}"


def mask_account_number(account_number: str) -> str:
    if len(account_number) <= 6:
        return account_number
    return account_number[:4] + "****" + account_number[-4:]


def normalize_phone(number) -> str:
    """0812..., +62812... and 62812... all become 812..."""
    digits = "".join(ch for ch in str(number or "") if ch.isdigit())
    if digits.startswith("0"):
        digits = digits[1:]
    elif digits.startswith("62"):
        digits = digits[2:]
    return digits


def phone_variants(number):
    """Stored spellings a normalized number may have."""
    local = normalize_phone(number)
    if not local:
        return []
    return [local, f"0{local}", f"62{local}", f"+62{local}"]
