"""
Per-user normal / security mode.

Every security-mode trigger (security PIN, motion sensor, GPS speed,
panic button, console) goes through ModeStateMachine.activate, which
writes the alert and the user's mode in one transaction.

Concurrent triggers for the same user are not serialized: each
activate creates its own alert and overwrites the user's mode fields
(last writer wins), and deactivate resolves only the alert it is given.
Other alerts that are still active stay active after the user is back
in normal mode.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from guardiant import audit
from guardiant.clock import utcnow
from guardiant.errors import ServiceError, INVALID_ARGUMENT, NOT_FOUND
from guardiant.models import SecurityAlert, MODE_NORMAL, MODE_SECURITY
from guardiant.security.command_dispatcher import Command


logger = logging.getLogger(__name__)


class AlertType(str, Enum):
    PIN_SECURITY_USED = "pin_security_used"
    ABRUPT_MOVEMENT = "abrupt_movement"
    SUSPICIOUS_SPEED = "suspicious_speed"
    PANIC_BUTTON = "panic_button"


class ResolutionType(str, Enum):
    FALSE_ALARM = "false_alarm"
    UNLOCKED_SUCCESSFULLY = "unlocked_successfully"


NOTIFICATION_TEXT = {
    AlertType.PIN_SECURITY_USED: "Your security PIN was entered on your device.",
    AlertType.ABRUPT_MOVEMENT: "Abrupt movement detected on your device.",
    AlertType.SUSPICIOUS_SPEED: "Your device is moving at a suspicious speed.",
    AlertType.PANIC_BUTTON: "The panic button was pressed.",
}


@dataclass
class Deactivation:
    alert_id: str
    resolution_type: str
    already_resolved: bool = False


class ModeStateMachine:

    def __init__(self, users, alerts, transactions, dispatcher=None, clock=utcnow):
        self.users = users
        self.alerts = alerts
        self.transactions = transactions
        self.dispatcher = dispatcher
        self.clock = clock

    # ---------------- ACTIVATE ----------------

    def activate(self, user_id: str, alert_type, details: dict = None) -> str:

        try:
            alert_type = AlertType(alert_type)
        except ValueError:
            raise ServiceError(INVALID_ARGUMENT, f"Unknown alert type: {alert_type}")

        user = self.users.require(user_id)
        now = self.clock()

        alert = SecurityAlert(
            type=alert_type.value,
            timestamp=now,
            details={**(details or {}), "triggeredBy": alert_type.value},
        )
        alert.mark_active()

        with self.transactions.begin() as tx:
            alert_id = self.alerts.create(user_id, alert, tx=tx)
            tx.stage_update(
                user,
                current_mode=MODE_SECURITY,
                alert_active=True,
                mode_activated_at=now,
            )

        logger.info("Security mode activated for %s by %s", user_id, alert_type.value)
        audit.log_event(user_id, f"ACTIVATE-{alert_type.value}", alert_id)

        self._notify_owner(user_id, alert_type, alert_id)

        return alert_id

    def _notify_owner(self, user_id, alert_type, alert_id):

        if self.dispatcher is None:
            return

        try:
            result = self.dispatcher.send_push_notification(
                user_id,
                "Security mode activated",
                NOTIFICATION_TEXT[alert_type],
                {"alertId": alert_id, "type": alert_type.value},
            )
        except Exception:
            logger.exception("Owner notification for alert %s raised", alert_id)
            return

        if not result.success:
            logger.warning(
                "Owner notification for alert %s not delivered: %s",
                alert_id,
                result.reason,
            )

    # ---------------- DEACTIVATE ----------------

    def deactivate(
        self,
        user_id: str,
        alert_id: str,
        resolution_type=ResolutionType.FALSE_ALARM,
    ) -> Deactivation:

        if not alert_id:
            raise ServiceError(INVALID_ARGUMENT, "alertId is required")

        try:
            resolution_type = ResolutionType(resolution_type)
        except ValueError:
            raise ServiceError(
                INVALID_ARGUMENT,
                f"Unknown resolution type: {resolution_type}",
            )

        user = self.users.require(user_id)
        alert = self.alerts.get(user_id, alert_id)

        if alert is None:
            raise ServiceError(NOT_FOUND, "Alert not found")

        already_resolved = not alert.is_active
        now = self.clock()

        with self.transactions.begin() as tx:
            if not already_resolved:
                alert.resolve(resolution_type.value, now)
                tx.stage(alert)
            tx.stage_update(
                user,
                current_mode=MODE_NORMAL,
                alert_active=False,
                mode_activated_at=None,
            )

        if already_resolved:
            logger.info("Alert %s already resolved, user %s reset only", alert_id, user_id)
            return Deactivation(alert_id, alert.resolution_type, already_resolved=True)

        logger.info(
            "Security mode deactivated for %s (%s)",
            user_id,
            resolution_type.value,
        )
        audit.log_event(user_id, f"DEACTIVATE-{resolution_type.value}", alert_id)

        self._exit_disguise(user_id, alert_id)

        return Deactivation(alert_id, resolution_type.value)

    def _exit_disguise(self, user_id, alert_id):

        if self.dispatcher is None:
            return

        try:
            result = self.dispatcher.send_command(
                user_id,
                Command.DEACTIVATE_SECURITY_MODE,
                {"alertId": alert_id},
            )
        except Exception:
            logger.exception("Exit command for alert %s raised", alert_id)
            return

        if not result.success:
            logger.warning(
                "Exit command for alert %s not delivered: %s",
                alert_id,
                result.reason,
            )
