import pytest
from sqlalchemy.exc import SQLAlchemyError

from guardiant import audit
from guardiant.errors import ServiceError
from guardiant.models import SecurityAlert
from guardiant.push import PushDeliveryError
from guardiant.security.alert_store import AlertStore
from guardiant.security.mode_machine import ModeStateMachine, ResolutionType
from guardiant.security.transaction import TransactionManager
from guardiant.security.user_store import UserStore


def test_activate_writes_alert_and_mode(services, db, clock, user):

    alert_id = services.modes.activate(user.id, "panic_button", {"reason": "help"})

    db.refresh(user)
    assert user.current_mode == "security"
    assert user.alert_active is True
    assert user.mode_activated_at == clock.now

    alert = db.get(SecurityAlert, alert_id)
    assert alert.status == "active"
    assert alert.resolved is False
    assert alert.details == {"reason": "help", "triggeredBy": "panic_button"}

    listed = services.accounts.get_security_alerts(user.id)
    assert [a["id"] for a in listed] == [alert_id]
    assert listed[0]["status"] == "active"


def test_activate_notifies_owner(services, push, device_user):

    alert_id = services.modes.activate(device_user.id, "abrupt_movement", {})

    assert len(push.sent) == 1
    message = push.sent[0]
    assert message["notification"]["title"] == "Security mode activated"
    assert message["data"] == {"alertId": alert_id, "type": "abrupt_movement"}


def test_failed_notification_keeps_transition(services, db, push, device_user):

    push.error = PushDeliveryError("provider down")

    alert_id = services.modes.activate(device_user.id, "panic_button", {})

    db.refresh(device_user)
    assert device_user.current_mode == "security"
    assert db.get(SecurityAlert, alert_id).status == "active"


def test_raising_dispatcher_keeps_transition(db, user):

    class ExplodingDispatcher:
        def send_push_notification(self, *args, **kwargs):
            raise RuntimeError("boom")

    modes = ModeStateMachine(
        UserStore(db),
        AlertStore(db),
        TransactionManager(db),
        dispatcher=ExplodingDispatcher(),
    )

    alert_id = modes.activate(user.id, "panic_button", {})

    assert db.get(SecurityAlert, alert_id).status == "active"


def test_activate_is_all_or_nothing(services, db, user, monkeypatch):

    real_commit = db.commit
    calls = []

    def failing_commit():
        if not calls:
            calls.append(1)
            raise SQLAlchemyError("connection lost")
        real_commit()

    monkeypatch.setattr(db, "commit", failing_commit)

    with pytest.raises(SQLAlchemyError):
        services.modes.activate(user.id, "panic_button", {})

    monkeypatch.setattr(db, "commit", real_commit)

    assert db.query(SecurityAlert).count() == 0
    db.refresh(user)
    assert user.current_mode == "normal"
    assert user.alert_active is False


def test_unknown_alert_type(services, user):

    with pytest.raises(ServiceError) as exc:
        services.modes.activate(user.id, "alien_abduction", {})

    assert exc.value.code == "invalid-argument"


def test_activate_unknown_user(services):

    with pytest.raises(ServiceError) as exc:
        services.modes.activate("missing", "panic_button", {})

    assert exc.value.code == "not-found"


def test_deactivate_resolves_alert_and_resets_user(services, db, clock, push, device_user):

    alert_id = services.modes.activate(device_user.id, "pin_security_used", {"pinLength": 4})
    clock.advance(minutes=3)

    result = services.modes.deactivate(device_user.id, alert_id)

    assert result.resolution_type == "false_alarm"
    assert result.already_resolved is False

    alert = db.get(SecurityAlert, alert_id)
    assert alert.status == "resolved"
    assert alert.resolved is True
    assert alert.resolution_type == "false_alarm"
    assert alert.resolved_at == clock.now

    db.refresh(device_user)
    assert device_user.current_mode == "normal"
    assert device_user.alert_active is False
    assert device_user.mode_activated_at is None

    assert push.commands() == ["deactivate_security_mode"]


def test_deactivate_twice_does_not_repeat_resolution(services, db, clock, push, device_user):

    alert_id = services.modes.activate(device_user.id, "panic_button", {})
    services.modes.deactivate(device_user.id, alert_id)
    first_resolved_at = db.get(SecurityAlert, alert_id).resolved_at

    clock.advance(minutes=10)
    result = services.modes.deactivate(
        device_user.id,
        alert_id,
        ResolutionType.UNLOCKED_SUCCESSFULLY,
    )

    assert result.already_resolved is True
    assert result.resolution_type == "false_alarm"

    alert = db.get(SecurityAlert, alert_id)
    assert alert.resolved_at == first_resolved_at
    assert alert.resolution_type == "false_alarm"

    db.refresh(device_user)
    assert device_user.current_mode == "normal"
    assert push.commands() == ["deactivate_security_mode"]


def test_deactivate_on_unlock(services, db, user):

    alert_id = services.modes.activate(user.id, "abrupt_movement", {})

    services.modes.deactivate(user.id, alert_id, ResolutionType.UNLOCKED_SUCCESSFULLY)

    assert db.get(SecurityAlert, alert_id).resolution_type == "unlocked_successfully"


@pytest.mark.parametrize("alert_id,code", [(None, "invalid-argument"), ("", "invalid-argument"), ("nope", "not-found")])
def test_deactivate_bad_alert_id(services, user, alert_id, code):

    with pytest.raises(ServiceError) as exc:
        services.modes.deactivate(user.id, alert_id)

    assert exc.value.code == code


def test_deactivate_someone_elses_alert(services, db, user):

    from guardiant.models import User

    other = User(email="other@example.com", password="x")
    db.add(other)
    db.commit()

    alert_id = services.modes.activate(other.id, "panic_button", {})

    with pytest.raises(ServiceError) as exc:
        services.modes.deactivate(user.id, alert_id)

    assert exc.value.code == "not-found"


def test_racing_triggers_are_last_writer_wins(services, db, clock, user):

    first = services.modes.activate(user.id, "panic_button", {})
    clock.advance(seconds=1)
    second = services.modes.activate(user.id, "abrupt_movement", {})

    db.refresh(user)
    assert user.mode_activated_at == clock.now
    assert len(services.accounts.get_security_alerts(user.id)) == 2

    services.modes.deactivate(user.id, first)

    # Only the named alert is resolved
    db.refresh(user)
    assert user.current_mode == "normal"
    remaining = services.accounts.get_security_alerts(user.id)
    assert [a["id"] for a in remaining] == [second]


def test_broken_audit_file_does_not_block_activate(services, db, push, device_user, tmp_path, monkeypatch):

    # Appending to a directory raises IsADirectoryError
    monkeypatch.setattr(audit, "LOG_FILE", str(tmp_path))

    alert_id = services.modes.activate(device_user.id, "panic_button", {})

    assert db.get(SecurityAlert, alert_id).status == "active"
    assert push.sent[0]["data"]["alertId"] == alert_id


def test_broken_audit_file_does_not_block_deactivate(services, db, push, device_user, tmp_path, monkeypatch):

    alert_id = services.modes.activate(device_user.id, "panic_button", {})
    monkeypatch.setattr(audit, "LOG_FILE", str(tmp_path))

    result = services.modes.deactivate(device_user.id, alert_id)

    assert result.resolution_type == "false_alarm"
    assert push.commands() == ["deactivate_security_mode"]


def test_unknown_resolution_type(services, db, user):

    alert_id = services.modes.activate(user.id, "panic_button", {})

    with pytest.raises(ServiceError) as exc:
        services.modes.deactivate(user.id, alert_id, "gave_up")

    assert exc.value.code == "invalid-argument"
    assert db.get(SecurityAlert, alert_id).status == "active"


def test_simultaneous_alerts_list_in_stable_order(services, user):

    ids = [services.modes.activate(user.id, "abrupt_movement", {}) for _ in range(3)]

    listed = [a["id"] for a in services.accounts.get_security_alerts(user.id)]

    assert listed == sorted(ids, reverse=True)
    assert [a["id"] for a in services.accounts.get_security_alerts(user.id)] == listed
