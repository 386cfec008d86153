import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from guardiant.clock import utcnow, epoch_millis
from guardiant.database import Base
from guardiant.security.encryption import EncryptedJSON


MODE_NORMAL = "normal"
MODE_SECURITY = "security"

STATUS_ACTIVE = "active"
STATUS_RESOLVED = "resolved"


def new_id():
    return str(uuid.uuid4())


def _ts(value):
    return epoch_millis(value) if value else None


class User(Base):

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_id)

    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)
    display_name = Column(String, nullable=True)

    phone_number = Column(String, nullable=True)
    phone_verified = Column(Boolean, default=False, nullable=False)
    phone_verified_at = Column(DateTime, nullable=True)

    # Mode
    current_mode = Column(String, default=MODE_NORMAL, nullable=False)
    alert_active = Column(Boolean, default=False, nullable=False)
    mode_activated_at = Column(DateTime, nullable=True)

    # Device channel
    push_token = Column(String, nullable=True)
    push_token_updated_at = Column(DateTime, nullable=True)

    # Credentials
    normal_pin_hash = Column(String, nullable=True)
    security_pin_hash = Column(String, nullable=True)
    pins_updated_at = Column(DateTime, nullable=True)

    # Stats
    total_unlocks = Column(Integer, default=0, nullable=False)
    failed_attempts = Column(Integer, default=0, nullable=False)
    normal_unlocks = Column(Integer, default=0, nullable=False)
    # Security PIN entries are recorded as alerts, this stays 0
    security_unlocks = Column(Integer, default=0, nullable=False)
    last_unlock = Column(DateTime, nullable=True)

    # Setup progress
    pins_configured = Column(Boolean, default=False, nullable=False)
    apps_configured = Column(Boolean, default=False, nullable=False)
    protection_configured = Column(Boolean, default=False, nullable=False)
    setup_completed = Column(Boolean, default=False, nullable=False)
    setup_last_step = Column(String, nullable=True)
    setup_completed_at = Column(DateTime, nullable=True)
    protection_level = Column(String, default="basic", nullable=False)

    emergency_contacts = Column(JSON, default=list, nullable=False)
    status = Column(String, default="active", nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    alerts = relationship(
        "SecurityAlert",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    unlocks = relationship("UnlockEvent", cascade="all, delete-orphan")
    failed = relationship("FailedAttempt", cascade="all, delete-orphan")
    apps = relationship(
        "ProtectedApp",
        cascade="all, delete-orphan",
        order_by="ProtectedApp.id",
    )
    otp_challenge = relationship(
        "OTPChallenge",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def has_pins(self):
        return bool(self.normal_pin_hash and self.security_pin_hash)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "displayName": self.display_name,
            "phoneNumber": self.phone_number,
            "phoneVerified": self.phone_verified,
            "currentMode": self.current_mode,
            "security": {
                "alertActive": self.alert_active,
                "modeActivatedAt": _ts(self.mode_activated_at),
            },
            "stats": {
                "totalUnlocks": self.total_unlocks,
                "failedAttempts": self.failed_attempts,
                "normalUnlocks": self.normal_unlocks,
                "securityUnlocks": self.security_unlocks,
                "lastUnlock": _ts(self.last_unlock),
            },
            "pushTokenRegistered": self.push_token is not None,
            "status": self.status,
        }


class SecurityAlert(Base):

    __tablename__ = "security_alerts"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(
        String,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    type = Column(String, nullable=False)
    timestamp = Column(DateTime, default=utcnow, nullable=False)

    # `resolved` mirrors `status`, only written through mark_active / resolve
    status = Column(String, default=STATUS_ACTIVE, nullable=False)
    resolved = Column(Boolean, default=False, index=True, nullable=False)
    resolution_type = Column(String, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    details = Column(EncryptedJSON, nullable=True)

    user = relationship("User", back_populates="alerts")
    commands = relationship(
        "AlertCommand",
        back_populates="alert",
        cascade="all, delete-orphan",
    )

    def mark_active(self):
        self.status = STATUS_ACTIVE
        self.resolved = False
        self.resolution_type = None
        self.resolved_at = None

    def resolve(self, resolution_type, at):
        self.status = STATUS_RESOLVED
        self.resolved = True
        self.resolution_type = resolution_type
        self.resolved_at = at

    @property
    def is_active(self):
        return self.status == STATUS_ACTIVE

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "timestamp": _ts(self.timestamp),
            "status": self.status,
            "resolved": self.resolved,
            "resolutionType": self.resolution_type,
            "resolvedAt": _ts(self.resolved_at),
            "details": self.details or {},
            "commands": {
                c.command: {
                    "requestedAt": _ts(c.requested_at),
                    "status": c.status,
                }
                for c in self.commands
            },
        }


class AlertCommand(Base):

    __tablename__ = "alert_commands"
    __table_args__ = (
        UniqueConstraint("alert_id", "command", name="uq_alert_command"),
    )

    id = Column(Integer, primary_key=True, index=True)
    alert_id = Column(
        String,
        ForeignKey("security_alerts.id", ondelete="CASCADE"),
        nullable=False,
    )

    command = Column(String, nullable=False)
    requested_at = Column(DateTime, nullable=False)
    status = Column(String, default="pending", nullable=False)

    alert = relationship("SecurityAlert", back_populates="commands")


class OTPChallenge(Base):

    __tablename__ = "otp_challenges"

    # One active challenge per user
    user_id = Column(
        String,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    code = Column(String(6), nullable=False)
    phone_number = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)


class UnlockEvent(Base):

    __tablename__ = "unlock_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        String,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    mode = Column(String, nullable=False)
    success = Column(Boolean, default=True, nullable=False)
    timestamp = Column(DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "mode": self.mode,
            "success": self.success,
            "timestamp": _ts(self.timestamp),
        }


class FailedAttempt(Base):

    __tablename__ = "failed_attempts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        String,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    pin_length = Column(Integer, nullable=False)
    timestamp = Column(DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "pinLength": self.pin_length,
            "timestamp": _ts(self.timestamp),
        }


class ProtectedApp(Base):

    __tablename__ = "protected_apps"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        String,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    package_name = Column(String, nullable=False)
    app_name = Column(String, nullable=False)
    icon = Column(String, nullable=True)
    is_protected = Column(Boolean, default=True, nullable=False)
    added_at = Column(DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "packageName": self.package_name,
            "appName": self.app_name,
            "icon": self.icon,
            "isProtected": self.is_protected,
            "addedAt": _ts(self.added_at),
        }
