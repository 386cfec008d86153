import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from guardiant import audit
from guardiant.clock import utcnow, epoch_millis
from guardiant.errors import ServiceError, INVALID_ARGUMENT, NOT_FOUND
from guardiant.push import InvalidTokenError, PushDeliveryError
from guardiant.security.self_healer import self_heal


logger = logging.getLogger(__name__)


class Command(str, Enum):
    LOCK_DEVICE = "lock_device"
    WIPE_DATA = "wipe_data"
    DEACTIVATE_SECURITY_MODE = "deactivate_security_mode"


# Commands that leave a pending entry on their alert before sending
AUDITED_COMMANDS = {Command.LOCK_DEVICE, Command.WIPE_DATA}

WIPE_WARNING = (
    "Wiping erases all data on the device. This action cannot be undone."
)

DEVICE_UNREGISTERED = "device-unregistered"
TOKEN_INVALID = "token-invalid"
DELIVERY_FAILED = "delivery-failed"


@dataclass
class CommandResult:
    success: bool
    message: Optional[str] = None
    reason: Optional[str] = None
    message_id: Optional[str] = None


class CommandDispatcher:
    """
    Sends commands and notifications to the user's registered device.

    Delivery to the push provider is the only guarantee: whether the
    device executed a command is never known here, so audit entries
    stay "pending" (audit of intent, not of effect).
    """

    def __init__(self, users, alerts, gateway, clock=utcnow):
        self.users = users
        self.alerts = alerts
        self.gateway = gateway
        self.clock = clock

    def send_command(self, user_id: str, command, payload: dict = None) -> CommandResult:

        try:
            command = Command(command)
        except ValueError:
            raise ServiceError(INVALID_ARGUMENT, f"Unknown command: {command}")

        payload = dict(payload or {})
        alert_id = payload.get("alertId")

        if command in AUDITED_COMMANDS:
            if not alert_id:
                raise ServiceError(INVALID_ARGUMENT, "alertId is required")
            if self.alerts.get(user_id, alert_id) is None:
                raise ServiceError(NOT_FOUND, "Alert not found")

        if command == Command.WIPE_DATA:
            payload["warning"] = WIPE_WARNING

        token = self.users.push_token(user_id)

        if not token:
            logger.info("No device registered for %s, %s not sent", user_id, command.value)
            return CommandResult(
                False,
                "Device not registered",
                reason=DEVICE_UNREGISTERED,
            )

        now = self.clock()

        if command in AUDITED_COMMANDS:
            # Audit trail must exist before the network call
            self.alerts.record_command(user_id, alert_id, command.value, now)
            audit.log_event(user_id, f"COMMAND-{command.value}", alert_id)

        data = {
            "command": command.value,
            "payload": json.dumps(payload),
            "timestamp": str(epoch_millis(now)),
        }

        result = self._deliver(user_id, token, data)

        if result.success:
            result.message = f"Command {command.value} sent"
            if command == Command.WIPE_DATA:
                result.message = f"{result.message}. {WIPE_WARNING}"

        return result

    def send_push_notification(self, user_id: str, title: str, body: str, data: dict = None) -> CommandResult:
        """Visible notification; always best-effort for the caller."""

        token = self.users.push_token(user_id)

        if not token:
            return CommandResult(
                False,
                "Device not registered",
                reason=DEVICE_UNREGISTERED,
            )

        result = self._deliver(
            user_id,
            token,
            data or {},
            notification={"title": title, "body": body},
        )

        if result.success:
            result.message = "Notification sent"

        return result

    def _deliver(self, user_id, token, data, notification=None):

        try:
            message_id = self.gateway.send(token, data, notification=notification)

        except InvalidTokenError as e:
            logger.warning("Push token of %s rejected by provider: %s", user_id, e)
            self_heal(self.users, user_id, token, e)
            return CommandResult(
                False,
                "Device token is no longer valid",
                reason=TOKEN_INVALID,
            )

        except PushDeliveryError as e:
            logger.error("Push delivery to %s failed: %s", user_id, e)
            return CommandResult(
                False,
                "Push delivery failed",
                reason=DELIVERY_FAILED,
            )

        return CommandResult(True, message_id=message_id)
