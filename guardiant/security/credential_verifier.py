import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from guardiant.auth import hash_password, verify_password
from guardiant.clock import utcnow
from guardiant.errors import (
    ServiceError,
    INVALID_ARGUMENT,
    NOT_FOUND,
    PERMISSION_DENIED,
)
from guardiant.models import UnlockEvent, FailedAttempt, MODE_NORMAL
from guardiant.security.mode_machine import AlertType


logger = logging.getLogger(__name__)

PIN_MIN_LENGTH = 4
PIN_MAX_LENGTH = 6


class PinMatch(str, Enum):
    NORMAL = "normal"
    SECURITY = "security"
    NONE = "none"


@dataclass
class PinVerification:
    match: PinMatch
    alert_id: Optional[str] = None

    @property
    def mode(self):
        if self.match == PinMatch.NONE:
            return None
        return self.match.value

    @property
    def success(self):
        return self.match != PinMatch.NONE


def validate_pins(normal_pin, security_pin):

    if not normal_pin or not security_pin:
        raise ServiceError(INVALID_ARGUMENT, "Both PINs are required", "both-required")

    for pin in (normal_pin, security_pin):
        if not PIN_MIN_LENGTH <= len(pin) <= PIN_MAX_LENGTH:
            raise ServiceError(
                INVALID_ARGUMENT,
                f"PINs must be {PIN_MIN_LENGTH} to {PIN_MAX_LENGTH} digits long",
                "length",
            )

    if normal_pin == security_pin:
        raise ServiceError(INVALID_ARGUMENT, "PINs must be different", "must-differ")

    if not (normal_pin.isdecimal() and normal_pin.isascii()) or not (
        security_pin.isdecimal() and security_pin.isascii()
    ):
        raise ServiceError(INVALID_ARGUMENT, "PINs must contain digits only", "digits-only")


class CredentialVerifier:
    """
    Checks a PIN against the normal and the security hash.

    The normal hash is always tried first and the first match wins.
    PINs are validated distinct when saved, not here; were both hashes
    ever to match the same PIN, the security PIN could not be reached.
    """

    def __init__(self, session, users, mode_machine, clock=utcnow):
        self.session = session
        self.users = users
        self.mode_machine = mode_machine
        self.clock = clock

    # ---------------- SAVE ----------------

    def save_pins(self, user_id: str, normal_pin: str, security_pin: str):

        validate_pins(normal_pin, security_pin)

        user = self.users.require(user_id)
        now = self.clock()

        user.normal_pin_hash = hash_password(normal_pin)
        user.security_pin_hash = hash_password(security_pin)
        user.pins_updated_at = now
        user.pins_configured = True
        user.setup_last_step = "pins"

        self.session.commit()

        logger.info("PINs saved for %s", user_id)

    def change_pins(self, user_id: str, current_pin: str, new_normal_pin: str, new_security_pin: str):
        """Only the normal PIN authorizes a change."""

        if not current_pin:
            raise ServiceError(INVALID_ARGUMENT, "Current PIN is required")

        validate_pins(new_normal_pin, new_security_pin)

        result = self.verify(user_id, current_pin)

        if result.match != PinMatch.NORMAL:
            raise ServiceError(PERMISSION_DENIED, "Current PIN is incorrect")

        self.save_pins(user_id, new_normal_pin, new_security_pin)

    # ---------------- VERIFY ----------------

    def verify(self, user_id: str, pin: str) -> PinVerification:

        if not pin:
            raise ServiceError(INVALID_ARGUMENT, "PIN is required")

        user = self.users.require(user_id)

        if not user.has_pins:
            raise ServiceError(NOT_FOUND, "PIN configuration not found", "config-not-found")

        # Order matters: normal first
        if verify_password(pin, user.normal_pin_hash):
            self._log_unlock(user_id)
            return PinVerification(PinMatch.NORMAL)

        if verify_password(pin, user.security_pin_hash):
            # Never persist the PIN itself
            alert_id = self.mode_machine.activate(
                user_id,
                AlertType.PIN_SECURITY_USED,
                {"pinLength": len(pin)},
            )
            return PinVerification(PinMatch.SECURITY, alert_id)

        self._log_failed_attempt(user_id, len(pin))

        return PinVerification(PinMatch.NONE)

    # ---------------- SIDE CHANNEL ----------------

    def _log_unlock(self, user_id):

        try:
            now = self.clock()

            self.session.add(UnlockEvent(user_id=user_id, mode=MODE_NORMAL, timestamp=now))
            self.users.increment(user_id, total_unlocks=1, normal_unlocks=1)
            self.users.require(user_id).last_unlock = now

            self.session.commit()

        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Error logging unlock for %s", user_id)

    def _log_failed_attempt(self, user_id, pin_length):

        try:
            self.session.add(
                FailedAttempt(
                    user_id=user_id,
                    pin_length=pin_length,
                    timestamp=self.clock(),
                )
            )
            self.users.increment(user_id, failed_attempts=1)

            self.session.commit()

        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Error logging failed attempt for %s", user_id)
