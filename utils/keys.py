# utils/keys.py
import re

KEY_MAX_LENGTH = 10
KEY_PATTERN = re.compile(r"^[A-Z0-9]{1,%d}$" % KEY_MAX_LENGTH)
FALLBACK_KEY = "PRJ"
MAX_KEY_ATTEMPTS = 3


def derive_key(name: str) -> str:
    """First four letters/digits of ``name``, uppercased ("Demo App" -> "DEMO")."""
    base = re.sub(r"[^A-Za-z0-9]", "", name or "")[:4].upper()
    return base or FALLBACK_KEY


def normalize_key(key: str) -> str:
    key = (key or "").strip().upper()
    if not KEY_PATTERN.match(key):
        raise ValueError("key must be 1-%d letters or digits" % KEY_MAX_LENGTH)
    return key


def key_candidates(base: str, attempts: int = MAX_KEY_ATTEMPTS) -> list:
    """``KEY``, ``KEY2``, ``KEY3`` ... for collision retries."""
    base = normalize_key(base)
    out = [base]
    for i in range(2, attempts + 1):
        suffix = str(i)
        out.append(base[: KEY_MAX_LENGTH - len(suffix)] + suffix)
    return out
