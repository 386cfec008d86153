import hmac
import logging
import secrets
from datetime import timedelta

from guardiant.clock import utcnow
from guardiant.config import OTP_TTL_MINUTES, OTP_MAX_ATTEMPTS
from guardiant.errors import OTPVerificationError
from guardiant.models import OTPChallenge


logger = logging.getLogger(__name__)


def generate_code() -> str:
    # Uniform over 100000..999999
    return f"{secrets.randbelow(900000) + 100000}"


class OTPVerifier:
    """One single-use, attempt-limited phone challenge per user."""

    def __init__(
        self,
        session,
        users,
        clock=utcnow,
        ttl=timedelta(minutes=OTP_TTL_MINUTES),
        max_attempts=OTP_MAX_ATTEMPTS,
    ):
        self.session = session
        self.users = users
        self.clock = clock
        self.ttl = ttl
        self.max_attempts = max_attempts

    def issue(self, user_id: str, phone_number: str) -> str:

        self.users.require(user_id)

        now = self.clock()
        code = generate_code()

        challenge = self.session.get(OTPChallenge, user_id)

        if challenge is None:
            challenge = OTPChallenge(user_id=user_id)
            self.session.add(challenge)

        challenge.code = code
        challenge.phone_number = phone_number
        challenge.created_at = now
        challenge.expires_at = now + self.ttl
        challenge.attempts = 0

        self.session.commit()

        logger.info("OTP challenge issued for %s", user_id)

        return code

    def verify(self, user_id: str, code: str):

        challenge = self.session.get(OTPChallenge, user_id)

        if challenge is None:
            raise OTPVerificationError("not-found", "No verification code found")

        now = self.clock()

        if now > challenge.expires_at:
            raise OTPVerificationError("expired", "The code has expired")

        # Lockout is not reset here, a new code must be issued
        if challenge.attempts >= self.max_attempts:
            raise OTPVerificationError("locked", "Too many failed attempts")

        if not hmac.compare_digest(str(code).encode(), challenge.code.encode()):
            challenge.attempts += 1
            self.session.commit()
            raise OTPVerificationError("mismatch", "Incorrect code")

        user = self.users.require(user_id)
        user.phone_verified = True
        user.phone_number = challenge.phone_number
        user.phone_verified_at = now

        self.session.delete(challenge)
        self.session.commit()

        logger.info("Phone verified for %s", user_id)
