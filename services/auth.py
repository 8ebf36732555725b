# services/auth.py
"""Credential Store: password hashing and stateless bearer credentials.

A credential is ``<payload>.<signature>`` where the payload is base64url JSON
holding the subject id, role and expiry, and the signature is an HMAC-SHA256
of the payload under the configured secret. Nothing is kept server side.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from services.errors import InvalidCredentials, InvalidOrExpiredCredential

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 120_000


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        _, iterations, salt, expected = password_hash.split("$")
        digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), int(iterations))
    except (ValueError, AttributeError):
        return False
    return hmac.compare_digest(digest.hex(), expected)



def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class CredentialStore:
    def __init__(self, store, secret: str, ttl: int, clock: Callable[[], float] = time.time,
                 iterations: int = PBKDF2_ITERATIONS):
        self.store = store
        self._secret = secret.encode("utf-8")
        self.ttl = ttl
        self.clock = clock
        self.iterations = iterations
        # checked when the email is unknown so both failure paths cost the same
        self._dummy_hash = hash_password(secrets.token_hex(8), iterations)

    def hash(self, password: str) -> str:
        return hash_password(password, self.iterations)

    def authenticate(self, email: str, password: str) -> Identity:
        """Identity for a valid email/password pair of an active account."""
        user = self.store.find_user_by_email(email or "")
        if user is None:
            verify_password(password or "", self._dummy_hash)
            logger.info("Login failed for unknown account")
            raise InvalidCredentials()
        if not verify_password(password or "", user.password_hash) or not user.is_active:
            logger.info("Login failed for user %s", user.id)
            raise InvalidCredentials()
        return Identity(user.id, user.role)

    def issue(self, identity: Identity) -> str:
        now = int(self.clock())
        claims = {"sub": identity.user_id, "role": identity.role, "iat": now, "exp": now + self.ttl}
        payload = _b64encode(json.dumps(claims, separators=(",", ":"), sort_keys=True).encode("utf-8"))
        return f"{payload}.{self._sign(payload)}"

    def verify(self, credential: Optional[str]) -> Identity:
        if not credential or not credential.isascii() or credential.count(".") != 1:
            raise InvalidOrExpiredCredential()
        payload, signature = credential.split(".")
        if not hmac.compare_digest(signature, self._sign(payload)):
            raise InvalidOrExpiredCredential()
        try:
            claims = json.loads(_b64decode(payload))
            user_id, role, expires = int(claims["sub"]), str(claims["role"]), int(claims["exp"])
        except (ValueError, KeyError, TypeError):
            raise InvalidOrExpiredCredential()
        if expires <= self.clock():
            raise InvalidOrExpiredCredential()
        return Identity(user_id, role)

    def _sign(self, payload: str) -> str:
        return _b64encode(hmac.new(self._secret, payload.encode("ascii"), hashlib.sha256).digest())
