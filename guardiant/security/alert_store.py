from guardiant.models import (
    SecurityAlert,
    AlertCommand,
    STATUS_ACTIVE,
    STATUS_RESOLVED,
    new_id,
)


class AlertStore:
    """
    Data access for security alerts and their command audit entries.

    Alerts are never deleted here; they leave the database only with
    their owner's account.
    """

    def __init__(self, session):
        self.session = session

    def create(self, user_id: str, alert: SecurityAlert, tx=None) -> str:

        alert.user_id = user_id
        alert.id = alert.id or new_id()

        if tx is not None:
            tx.stage(alert)
        else:
            self.session.add(alert)
            self.session.commit()

        return alert.id

    def get(self, user_id: str, alert_id: str):

        if not alert_id:
            return None

        return (
            self.session.query(SecurityAlert)
            .filter(
                SecurityAlert.id == alert_id,
                SecurityAlert.user_id == user_id,
            )
            .first()
        )

    def list_unresolved(self, user_id: str, limit: int):
        return (
            self.session.query(SecurityAlert)
            .filter(
                SecurityAlert.user_id == user_id,
                SecurityAlert.resolved == False,  # noqa: E712
            )
            .order_by(SecurityAlert.timestamp.desc(), SecurityAlert.id.desc())
            .limit(limit)
            .all()
        )

    def update(self, user_id: str, alert_id: str, patch: dict, tx=None):

        alert = self.get(user_id, alert_id)

        if alert is None:
            return None

        patch = dict(patch)

        # status and resolved move together
        if "status" in patch:
            patch["resolved"] = patch["status"] == STATUS_RESOLVED
        elif "resolved" in patch:
            patch["status"] = STATUS_RESOLVED if patch["resolved"] else STATUS_ACTIVE

        if tx is not None:
            tx.stage_update(alert, **patch)
        else:
            for name, value in patch.items():
                setattr(alert, name, value)
            self.session.commit()

        return alert

    def record_command(self, user_id: str, alert_id: str, command: str, requested_at):
        """Write commands[command] = {requestedAt, status: pending} and commit."""

        alert = self.get(user_id, alert_id)

        if alert is None:
            return None

        entry = (
            self.session.query(AlertCommand)
            .filter(
                AlertCommand.alert_id == alert.id,
                AlertCommand.command == command,
            )
            .first()
        )

        if entry is None:
            entry = AlertCommand(alert_id=alert.id, command=command)
            self.session.add(entry)

        entry.requested_at = requested_at
        entry.status = "pending"

        self.session.commit()

        return entry
