"""
OTP Store
One-time codes, resend cooldowns and the password-reset verified flag, kept in Redis
"""

from __future__ import annotations
import logging
import secrets

logger = logging.getLogger(__name__)

PURPOSE_REGISTER = "register"
PURPOSE_FORGOT = "forgot"
VERIFIED_TTL = 300


class OtpStore:
    """Thin wrapper over a Redis client (decode_responses=True)"""

    def __init__(self, client, ttl: int = 120, cooldown: int = 60):
        self.client = client
        self.ttl = ttl
        self.cooldown = cooldown

    @staticmethod
    def generate_code() -> str:
        return f"{secrets.randbelow(1_000_000):06d}"

    @staticmethod
    def _otp_key(purpose: str, email: str) -> str:
        return f"otp:{purpose}:{email}"

    @staticmethod
    def _cooldown_key(purpose: str, email: str) -> str:
        return f"otp_cooldown:{purpose}:{email}"

    @staticmethod
    def _verified_key(email: str) -> str:
        return f"verified:forgot:{email}"

    def issue(self, purpose: str, email: str) -> str:
        """Store a fresh code and start the resend cooldown"""
        code = self.generate_code()
        self.client.set(self._otp_key(purpose, email), code, ex=self.ttl)
        self.client.set(self._cooldown_key(purpose, email), "1", ex=self.cooldown)
        return code

    def cooldown_remaining(self, purpose: str, email: str) -> int:
        ttl = self.client.ttl(self._cooldown_key(purpose, email))
        return ttl if ttl and ttl > 0 else 0

    def verify(self, purpose: str, email: str, code: str) -> tuple[bool, str]:
        """Check a code; a matching code is consumed"""
        stored = self.client.get(self._otp_key(purpose, email))
        if stored is None:
            return False, "Mã OTP đã hết hạn hoặc không tồn tại"
        if not secrets.compare_digest(str(stored), str(code).strip()):
            return False, "Mã OTP không chính xác"
        self.client.delete(self._otp_key(purpose, email))
        return True, ""

    def mark_verified(self, email: str) -> None:
        self.client.set(self._verified_key(email), "1", ex=VERIFIED_TTL)

    def is_verified(self, email: str) -> bool:
        return self.client.get(self._verified_key(email)) is not None

    def clear_verified(self, email: str) -> None:
        self.client.delete(self._verified_key(email))
