import secrets
import time
from datetime import date
from decimal import Decimal

from allocation.domain.model import today

# I, O, 0, 1 제외
READABLE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

_last_millis = {"cart": 0, "order": 0}
_sequence = {"cart": 0, "order": 0}


def encode(value: int) -> str:
    base = len(READABLE_ALPHABET)
    if value <= 0:
        return READABLE_ALPHABET[0]

    encoded = ""
    while value > 0:
        value, index = divmod(value, base)
        encoded = READABLE_ALPHABET[index] + encoded
    return encoded


def random_readable(length: int) -> str:
    return "".join(secrets.choice(READABLE_ALPHABET) for _ in range(length))


def date_code(day: date) -> str:
    return day.strftime("%y%m%d")


def _suffix(kind: str) -> str:
    now = int(time.time() * 1000)
    if now == _last_millis[kind]:
        _sequence[kind] += 1
    else:
        _last_millis[kind] = now
        _sequence[kind] = 0
    return encode(now)[-6:] + encode(_sequence[kind]) + random_readable(2)


def cart_unique_id(product_id: int, quantity: Decimal) -> str:
    qty = str(quantity).replace(".", "P")
    return f"C-{date_code(today())}-P{abs(int(product_id))}-Q{qty}-{_suffix('cart')}".upper()


def order_unique_id(reference: str, max_date_required: date) -> str:
    return (
        f"O-{date_code(today())}-{date_code(max_date_required)}"
        f"-{reference[-4:]}-{_suffix('order')}"
    ).upper()


def batch_code(product_id: int, start_date: date, end_date: date) -> str:
    millis = int(time.time() * 1000)
    return f"{product_id}{start_date:%d%m}{end_date:%d%m}{millis}"
