import logging

from guardiant.clock import utcnow
from guardiant.config import AUDIT_LOG_FILE


logger = logging.getLogger(__name__)

LOG_FILE = AUDIT_LOG_FILE


def format_entry(user: str, action: str, target: str, at=None) -> str:

    stamp = (at or utcnow()).strftime("%Y-%m-%d %H:%M:%S")

    return f"[{stamp}] | {user} | {action} | {target}\n"


def log_event(user: str, action: str, target: str) -> bool:
    """
    Append one line to the audit trail of remote commands and mode changes.

    The trail is a side channel: a write failure is logged and reported
    through the return value, never raised into the caller's operation.
    """

    entry = format_entry(user, action, target)

    try:
        with open(LOG_FILE, "a") as f:
            f.write(entry)
    except OSError:
        logger.exception("Audit write to %s failed: %s", LOG_FILE, entry.strip())
        return False

    return True
