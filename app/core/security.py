import secrets
from typing import Optional

from passlib.context import CryptContext


# Gift card PIN hashing context
# - argon2 is the default for new PINs
# - bcrypt hashes are still verified
pin_context = CryptContext(
    schemes=["argon2", "bcrypt"],
    default="argon2",
    deprecated=["bcrypt"],
)

GIFT_CARD_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def hash_pin(pin: str) -> str:
    return pin_context.hash(pin)


def verify_pin(plain_pin: Optional[str], hashed_pin: Optional[str]) -> bool:
    """
    Verify a gift card PIN against its stored hash.

    A card without a stored PIN accepts any input. Malformed stored hashes
    verify as False rather than raising.
    """
    if not hashed_pin:
        return True
    if not plain_pin:
        return False
    try:
        return pin_context.verify(plain_pin, hashed_pin)
    except (ValueError, TypeError):
        return False


def generate_gift_card_code(length: int = 12, group: int = 4) -> str:
    """Random code such as 'K7QM-2XPA-9HND'. Ambiguous characters (0/O, 1/I) are excluded."""
    raw = "".join(secrets.choice(GIFT_CARD_CODE_ALPHABET) for _ in range(length))
    return "-".join(raw[i:i + group] for i in range(0, length, group))


def generate_pin(digits: int = 4) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(digits))
