import pytest

from guardiant.models import SecurityAlert
from guardiant.security.alert_store import AlertStore
from guardiant.security.transaction import TransactionManager


@pytest.fixture
def store(db):
    return AlertStore(db)


@pytest.fixture
def alert_id(store, clock, user):
    alert = SecurityAlert(type="panic_button", timestamp=clock(), details={})
    alert.mark_active()
    return store.create(user.id, alert)


def test_status_patch_moves_resolved(store, db, user, alert_id):

    store.update(user.id, alert_id, {"status": "resolved"})

    db.expire_all()
    alert = db.get(SecurityAlert, alert_id)
    assert alert.status == "resolved"
    assert alert.resolved is True


def test_resolved_patch_moves_status(store, db, user, alert_id):

    store.update(user.id, alert_id, {"status": "resolved"})
    store.update(user.id, alert_id, {"resolved": False})

    db.expire_all()
    alert = db.get(SecurityAlert, alert_id)
    assert alert.status == "active"
    assert alert.resolved is False


@pytest.mark.parametrize(
    "patch,status,resolved",
    [
        ({"status": "resolved"}, "resolved", True),
        ({"resolved": True}, "resolved", True),
        ({"status": "active"}, "active", False),
    ],
)
def test_update_inside_transaction(store, db, user, alert_id, patch, status, resolved):

    with TransactionManager(db).begin() as tx:
        store.update(user.id, alert_id, patch, tx=tx)

    db.expire_all()
    alert = db.get(SecurityAlert, alert_id)
    assert alert.status == status
    assert alert.resolved is resolved


def test_aborted_transaction_leaves_alert_untouched(store, db, user, alert_id):

    with pytest.raises(RuntimeError):
        with TransactionManager(db).begin() as tx:
            store.update(user.id, alert_id, {"status": "resolved"}, tx=tx)
            raise RuntimeError("abort")

    db.expire_all()
    alert = db.get(SecurityAlert, alert_id)
    assert alert.status == "active"
    assert alert.resolved is False


def test_update_of_missing_alert(store, user):

    assert store.update(user.id, "missing", {"status": "resolved"}) is None


def test_unresolved_listing_skips_resolved(store, clock, user, alert_id):

    clock.advance(seconds=1)
    other = SecurityAlert(type="abrupt_movement", timestamp=clock(), details={})
    other.mark_active()
    other_id = store.create(user.id, other)

    store.update(user.id, alert_id, {"resolved": True})

    assert [a.id for a in store.list_unresolved(user.id, 10)] == [other_id]
