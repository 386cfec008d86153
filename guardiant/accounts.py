"""Account lifecycle, setup progress and read-side glue."""

import logging

from guardiant.auth import hash_password, verify_password
from guardiant.clock import utcnow
from guardiant.config import MIN_PASSWORD_LENGTH, ALERTS_LIMIT, ACTIVITY_LIMIT
from guardiant.errors import (
    ServiceError,
    INVALID_ARGUMENT,
    UNAUTHENTICATED,
)
from guardiant.models import (
    User,
    UnlockEvent,
    FailedAttempt,
    ProtectedApp,
    MODE_NORMAL,
)


logger = logging.getLogger(__name__)


PROTECTION_FEATURES = {
    "basic": ["block_apps", "pin_protection"],
    "camouflage": [
        "block_apps", "pin_protection", "close_sessions",
        "hide_apps", "capture_evidence", "gps_tracking", "send_alerts",
    ],
    "extreme": [
        "block_apps", "pin_protection", "close_sessions", "hide_apps",
        "capture_evidence", "gps_tracking", "send_alerts",
        "delete_sensitive_data", "remote_wipe",
    ],
}


class AccountService:

    def __init__(self, session, users, alerts, clock=utcnow):
        self.session = session
        self.users = users
        self.alerts = alerts
        self.clock = clock

    # ---------------- LIFECYCLE ----------------

    def register(self, email: str, password: str, display_name: str = None) -> str:

        if not email or not password:
            raise ServiceError(INVALID_ARGUMENT, "Email and password are required")

        if len(password) < MIN_PASSWORD_LENGTH:
            raise ServiceError(
                INVALID_ARGUMENT,
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                "weak-password",
            )

        if self.users.get_by_email(email):
            raise ServiceError(INVALID_ARGUMENT, "Email already in use", "email-in-use")

        user = User(
            email=email,
            password=hash_password(password),
            display_name=display_name,
            current_mode=MODE_NORMAL,
            alert_active=False,
            mode_activated_at=None,
            push_token=None,
            emergency_contacts=[],
        )

        self.session.add(user)
        self.session.commit()

        logger.info("User %s registered", user.id)

        return user.id

    def authenticate(self, email: str, password: str) -> User:

        user = self.users.get_by_email(email)

        if not user or not verify_password(password, user.password):
            raise ServiceError(UNAUTHENTICATED, "Invalid login")

        return user

    def delete(self, user_id: str):

        user = self.users.require(user_id)

        # Alerts, history, apps and OTP challenge cascade with the user
        self.session.delete(user)
        self.session.commit()

        logger.info("User %s deleted", user_id)

    # ---------------- DEVICE ----------------

    def update_push_token(self, user_id: str, token: str):

        if not token:
            raise ServiceError(INVALID_ARGUMENT, "Push token is required", "token-required")

        self.users.set_push_token(user_id, token, self.clock())

    # ---------------- SETUP ----------------

    def save_protected_apps(self, user_id: str, apps: list) -> int:

        if not apps:
            raise ServiceError(
                INVALID_ARGUMENT,
                "At least one app is required",
                "empty-list",
            )

        user = self.users.require(user_id)
        now = self.clock()

        user.apps = [
            ProtectedApp(
                package_name=app.package_name,
                app_name=app.app_name,
                icon=app.icon or None,
                is_protected=True,
                added_at=now,
            )
            for app in apps
        ]
        user.apps_configured = True
        user.setup_last_step = "apps"

        self.session.commit()

        return len(apps)

    def set_protection_level(self, user_id: str, level: str):

        if level not in PROTECTION_FEATURES:
            raise ServiceError(INVALID_ARGUMENT, f"Unknown protection level: {level}")

        user = self.users.require(user_id)

        user.protection_level = level
        user.protection_configured = True
        user.setup_completed = True
        user.setup_last_step = "protection"
        user.setup_completed_at = self.clock()

        self.session.commit()

        return PROTECTION_FEATURES[level]

    def get_setup_status(self, user_id: str):

        user = self.users.require(user_id)
        record = user.to_dict()

        return {
            "setup": {
                "completed": user.setup_completed,
                "pinsConfigured": user.pins_configured,
                "appsConfigured": user.apps_configured,
                "protectionConfigured": user.protection_configured,
                "lastStep": user.setup_last_step,
            },
            "currentMode": record["currentMode"],
            "security": record["security"],
        }

    def get_user_config(self, user_id: str):

        user = self.users.require(user_id)

        if not user.has_pins:
            return None

        # PIN hashes never leave the server
        return {
            "userId": user.id,
            "protectionLevel": user.protection_level,
            "features": PROTECTION_FEATURES.get(user.protection_level, []),
            "protectedApps": [app.to_dict() for app in user.apps],
            "setupCompleted": user.setup_completed,
            "emergencyContacts": user.emergency_contacts or [],
        }

    def update_profile(self, user_id: str, display_name=None, phone_number=None, emergency_contacts=None):

        user = self.users.require(user_id)

        if emergency_contacts is not None and not isinstance(emergency_contacts, list):
            raise ServiceError(INVALID_ARGUMENT, "emergencyContacts must be a list")

        if display_name is not None:
            user.display_name = display_name

        if phone_number is not None:
            user.phone_number = phone_number

        if emergency_contacts is not None:
            user.emergency_contacts = emergency_contacts

        self.session.commit()

        return user.to_dict()

    # ---------------- READS ----------------

    def get_security_alerts(self, user_id: str, limit: int = ALERTS_LIMIT):
        return [a.to_dict() for a in self.alerts.list_unresolved(user_id, limit)]

    def get_activity_feed(self, user_id: str, limit: int = ACTIVITY_LIMIT):

        unlocks = (
            self.session.query(UnlockEvent)
            .filter(UnlockEvent.user_id == user_id)
            .order_by(UnlockEvent.timestamp.desc(), UnlockEvent.id.desc())
            .limit(limit)
            .all()
        )

        failed = (
            self.session.query(FailedAttempt)
            .filter(FailedAttempt.user_id == user_id)
            .order_by(FailedAttempt.timestamp.desc(), FailedAttempt.id.desc())
            .limit(limit)
            .all()
        )

        return {
            "unlocks": [u.to_dict() for u in unlocks],
            "failedAttempts": [f.to_dict() for f in failed],
        }
