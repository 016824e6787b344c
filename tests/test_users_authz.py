# tests/test_users_authz.py
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from vtech_workshop.errors import (
    AuthenticationFailed,
    BackendFailure,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from vtech_workshop.modules.users import Authorizer, LocalIdentityProvider, UserAdmin


class _Clock:
    def __init__(self):
        self.now = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kw):
        self.now += timedelta(**kw)


def _auth_reasons(conn, username):
    rows = conn.execute(
        "SELECT reason FROM auth_logs WHERE username=? ORDER BY log_id", (username,)
    ).fetchall()
    return [r["reason"] for r in rows]


# ---------------------------------------------------------------------------
# Authorizer
# ---------------------------------------------------------------------------

def test_capabilities_by_role(conn, admin_id, staff_id):
    authz = Authorizer(conn)
    assert authz.role_of(admin_id) == "admin"
    assert authz.role_of(staff_id) == "staff"
    assert authz.role_of(None) == "staff"
    assert authz.role_of(99999) == "staff"

    for cap in ("inventory.edit", "inventory.delete", "client.delete", "job.delete",
                "payment.edit", "payment.delete", "user.manage"):
        assert authz.can(admin_id, cap)
        assert not authz.can(staff_id, cap)
    for cap in ("inventory.create", "job.edit", "payment.record", "sale.record"):
        assert authz.can(staff_id, cap)
    assert not authz.can(admin_id, "reactor.meltdown")


def test_role_change_applies_on_next_check(conn, admin_id):
    authz = Authorizer(conn)
    assert authz.require(admin_id, "inventory.delete") == "admin"

    conn.execute("UPDATE users SET role='staff' WHERE user_id=?", (admin_id,))
    conn.commit()
    with pytest.raises(PermissionDenied) as exc:
        authz.require(admin_id, "inventory.delete")
    assert exc.value.capability == "inventory.delete"
    assert exc.value.role == "staff"


def test_inactive_admin_is_treated_as_staff(conn, admin_id):
    conn.execute("UPDATE users SET is_active=0 WHERE user_id=?", (admin_id,))
    conn.commit()
    assert Authorizer(conn).role_of(admin_id) == "staff"


def test_denial_is_audited(conn, staff_id, caplog):
    with caplog.at_level("WARNING", logger="vtech_workshop.audit"):
        with pytest.raises(PermissionDenied):
            Authorizer(conn).require(staff_id, "user.manage")
    assert any(r.name == "vtech_workshop.audit" and "denied" in r.getMessage() for r in caplog.records)


# ---------------------------------------------------------------------------
# Sign-in and sessions
# ---------------------------------------------------------------------------

def test_sign_in_and_out(conn, settings):
    idp = LocalIdentityProvider(conn, settings)
    user = idp.sign_in("ravi", "secret")
    assert (user.username, user.email, user.full_name) == ("ravi", "ravi@example.com", "Ravi Kumar")
    assert idp.get_current_user() == user
    assert idp.refresh_session()

    idp.sign_out()
    assert idp.get_current_user() is None
    assert not idp.refresh_session()
    assert _auth_reasons(conn, "ravi") == ["ok"]


@pytest.mark.parametrize(
    "username,password,code",
    [
        ("", "secret", "empty_fields"),
        ("ravi", "", "empty_fields"),
        ("nobody", "secret", "user_not_found"),
        ("ravi", "wrong", "wrong_password"),
    ],
)
def test_sign_in_failures(conn, settings, username, password, code):
    with pytest.raises(AuthenticationFailed) as exc:
        LocalIdentityProvider(conn, settings).sign_in(username, password)
    assert exc.value.code == code


def test_inactive_account_cannot_sign_in(conn, settings, staff_id):
    conn.execute("UPDATE users SET is_active=0 WHERE user_id=?", (staff_id,))
    conn.commit()
    with pytest.raises(AuthenticationFailed) as exc:
        LocalIdentityProvider(conn, settings).sign_in("ravi", "secret")
    assert exc.value.code == "user_inactive"


def test_lockout_after_repeated_failures(conn, settings):
    clock = _Clock()
    idp = LocalIdentityProvider(conn, settings, clock=clock)
    for _ in range(idp.MAX_FAILED_ATTEMPTS):
        with pytest.raises(AuthenticationFailed):
            idp.sign_in("ravi", "guess")

    with pytest.raises(AuthenticationFailed) as exc:
        idp.sign_in("ravi", "secret")
    assert exc.value.code == "locked_out"

    clock.advance(minutes=idp.LOCKOUT_MINUTES + 1)
    assert idp.sign_in("ravi", "secret").username == "ravi"
    row = conn.execute("SELECT failed_attempts, locked_until FROM users WHERE username='ravi'").fetchone()
    assert row["failed_attempts"] == 0
    assert row["locked_until"] is None
    assert _auth_reasons(conn, "ravi")[-2:] == ["locked_out", "ok"]


def test_session_expires(conn, settings):
    clock = _Clock()
    idp = LocalIdentityProvider(conn, replace(settings, session_minutes=30), clock=clock)
    idp.sign_in("boss", "secret")

    clock.advance(minutes=20)
    assert idp.refresh_session()
    clock.advance(minutes=20)
    assert idp.get_current_user() is not None
    clock.advance(minutes=31)
    assert idp.get_current_user() is None


def test_sign_up_rules(conn, settings):
    idp = LocalIdentityProvider(conn, settings)
    with pytest.raises(ValidationError):
        idp.sign_up("new", "abc", "New Person")
    with pytest.raises(ValidationError):
        idp.sign_up("ravi", "longer", "Another Ravi")
    with pytest.raises(ValidationError):
        idp.sign_up("new", "longer", "New Person", email="ravi@example.com")
    with pytest.raises(ValidationError):
        idp.sign_up("new", "longer", "New Person", role="owner")

    uid = idp.sign_up("new", "longer", "New Person", email="new@example.com")
    assert Authorizer(conn).role_of(uid) == "staff"


def test_open_sign_up_cannot_create_admin(conn, settings, admin_id, staff_id):
    idp = LocalIdentityProvider(conn, settings)
    with pytest.raises(PermissionDenied):
        idp.sign_up("mallory", "longer", "Mallory", role="admin")
    with pytest.raises(PermissionDenied):
        idp.sign_up("mallory", "longer", "Mallory", role="admin", caller_id=staff_id)
    assert conn.execute("SELECT 1 FROM users WHERE username='mallory'").fetchone() is None

    uid = idp.sign_up("partner", "longer", "Shop Partner", role="admin", caller_id=admin_id)
    assert Authorizer(conn).role_of(uid) == "admin"


# ---------------------------------------------------------------------------
# Privileged user management
# ---------------------------------------------------------------------------

def test_update_user_needs_admin_then_service_key(conn, settings, admin_id, staff_id):
    with pytest.raises(PermissionDenied):
        UserAdmin(conn, replace(settings, service_key="k")).update_user(staff_id, admin_id, role="staff")

    with pytest.raises(BackendFailure) as exc:
        UserAdmin(conn, settings).update_user(admin_id, staff_id, role="admin")
    assert str(exc.value) == "Server config error"
    assert Authorizer(conn).role_of(staff_id) == "staff"


def test_update_user_applies_fields(conn, settings, admin_id, staff_id):
    admin = UserAdmin(conn, replace(settings, service_key="service-secret"))
    updated = admin.update_user(
        admin_id, staff_id, email="ravi.k@example.com", full_name="Ravi K", role="admin", password="n3wpass"
    )
    assert updated["email"] == "ravi.k@example.com"
    assert updated["role"] == "admin"
    assert "service-secret" not in repr(updated)
    assert Authorizer(conn).can(staff_id, "user.manage")

    user = LocalIdentityProvider(conn, settings).sign_in("ravi", "n3wpass")
    assert user.full_name == "Ravi K"

    with pytest.raises(ValidationError):
        admin.update_user(admin_id, staff_id, email="boss@example.com")
    with pytest.raises(ValidationError):
        admin.update_user(admin_id, staff_id, role="root")
    with pytest.raises(NotFound):
        admin.update_user(admin_id, 4242, full_name="Ghost")
    assert [u["username"] for u in admin.list_users(admin_id)] == ["boss", "ravi"]
