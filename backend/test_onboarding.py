"""
Onboarding / activation gate.

- pharmacies need status == approved AND is_active
- wholesalers need is_active (status only when WHOLESALER_REQUIRE_APPROVAL)
- superadmin bootstrap credential is honoured only until the row exists
- Google sign-in creates pending pharmacies without a token
"""
import pytest

from pharmabridge.core.config import settings
from pharmabridge.core.exceptions import AuthenticationFailure, Conflict, NotFoundOrUnauthorized, ValidationError
from pharmabridge.core.permissions import Principal, Role
from pharmabridge.core.security import decode_access_token
from pharmabridge.models.account import AccountStatus, Admin, Pharmacy
from pharmabridge.models.notification import Notification
from pharmabridge.services import account_service
from conftest import PASSWORD, StubIdentityVerifier


# ==== REGISTRATION ====

def test_register_pharmacy_starts_pending_and_tells_admins(db, notifier, make_admin):
    admin = make_admin()
    pharmacy = account_service.register_pharmacy(db, "Corner Pharmacy", "1 Main St", "555-0101", "corner", "pa55word", notifier=notifier)

    assert pharmacy.pharmacy_id.startswith("PHA-")
    assert pharmacy.status == AccountStatus.PENDING
    assert pharmacy.is_active is True
    assert pharmacy.hashed_password != "pa55word"

    note = db.query(Notification).filter(Notification.recipient_id == admin.admin_id).one()
    assert note.type == "add_pharmacy"
    assert note.trigger_role == Role.PHARMACY
    assert "Corner Pharmacy" in note.message


def test_duplicate_pharmacy_username_conflicts(db, notifier):
    account_service.register_pharmacy(db, "First", "1 Main St", "555", "same-user", "pa55word", notifier=notifier)
    with pytest.raises(Conflict):
        account_service.register_pharmacy(db, "Second", "2 Main St", "556", "same-user", "pa55word", notifier=notifier)
    assert db.query(Pharmacy).count() == 1


@pytest.mark.parametrize("field", ["name", "address", "phone_no", "username", "password"])
def test_register_pharmacy_requires_every_field(db, notifier, field):
    values = {"name": "Rx", "address": "1 St", "phone_no": "555", "username": "rx", "password": "pa55word"}
    values[field] = ""
    with pytest.raises(ValidationError):
        account_service.register_pharmacy(db, notifier=notifier, **values)
    assert db.query(Pharmacy).count() == 0


def test_short_password_rejected(db, notifier):
    with pytest.raises(ValidationError):
        account_service.register_pharmacy(db, "Rx", "1 St", "555", "rx", "abc", notifier=notifier)


def test_register_wholesaler_by_admin_notifies_that_admin(db, notifier, make_admin):
    admin = make_admin()
    registrar = Principal(Role.ADMIN, admin.admin_id, admin.username)
    wholesaler = account_service.register_wholesaler(
        db, "Bulk Meds", "Depot 4", "bulk", "pa55word", AccountStatus.APPROVED, registered_by=registrar, notifier=notifier,
    )

    assert wholesaler.wholesaler_id.startswith("WHO-")
    note = db.query(Notification).one()
    assert note.recipient_id == admin.admin_id
    assert note.type == "register_wholesaler"


def test_register_wholesaler_rejects_unknown_status(db, notifier):
    with pytest.raises(ValidationError):
        account_service.register_wholesaler(db, "Bulk", "Depot", "bulk", "pa55word", "vip", notifier=notifier)


# ==== PHARMACY LOGIN GATE ====

def test_pharmacy_login_needs_approval(db, make_pharmacy):
    make_pharmacy(username="waiting", status=AccountStatus.PENDING)
    with pytest.raises(AuthenticationFailure) as exc:
        account_service.login_pharmacy(db, "waiting", PASSWORD)
    assert exc.value.blocked is True
    assert "pending approval" in exc.value.message


def test_pharmacy_login_rejected_account(db, make_pharmacy):
    make_pharmacy(username="turned-down", status=AccountStatus.REJECTED)
    with pytest.raises(AuthenticationFailure) as exc:
        account_service.login_pharmacy(db, "turned-down", PASSWORD)
    assert exc.value.blocked is True


def test_pharmacy_login_inactive_even_if_approved(db, make_pharmacy):
    make_pharmacy(username="switched-off", status=AccountStatus.APPROVED, is_active=False)
    with pytest.raises(AuthenticationFailure) as exc:
        account_service.login_pharmacy(db, "switched-off", PASSWORD)
    assert "deactivated" in exc.value.message


def test_wrong_password_does_not_reveal_gate_state(db, make_pharmacy):
    make_pharmacy(username="waiting", status=AccountStatus.PENDING)
    with pytest.raises(AuthenticationFailure) as exc:
        account_service.login_pharmacy(db, "waiting", "not-the-password")
    assert exc.value.blocked is False
    assert exc.value.message == "Invalid credentials"


def test_pharmacy_login_issues_token(db, make_pharmacy):
    pharmacy = make_pharmacy(username="ready")
    result = account_service.login_pharmacy(db, "ready", PASSWORD)

    claims = decode_access_token(result["access_token"])
    assert claims["sub"] == pharmacy.pharmacy_id
    assert claims["role"] == Role.PHARMACY
    assert claims["is_main_admin"] is False


def test_approval_then_deactivation_flow(db, notifier, make_pharmacy, make_admin):
    admin = make_admin()
    actor = Principal(Role.ADMIN, admin.admin_id, admin.username)
    pharmacy = make_pharmacy(username="newcomer", status=AccountStatus.PENDING)

    account_service.set_pharmacy_status(db, pharmacy.pharmacy_id, True, actor, notifier=notifier)
    assert account_service.login_pharmacy(db, "newcomer", PASSWORD)["access_token"]

    types = {(n.recipient_id, n.type) for n in db.query(Notification).all()}
    assert (pharmacy.pharmacy_id, "approve_pharmacy_request") in types
    assert (admin.admin_id, "approve_pharmacy_request") in types

    account_service.set_active(db, Role.PHARMACY, pharmacy.pharmacy_id, False, actor, notifier=notifier)
    with pytest.raises(AuthenticationFailure):
        account_service.login_pharmacy(db, "newcomer", PASSWORD)
    db.refresh(pharmacy)
    # deactivation leaves the approval alone
    assert pharmacy.status == AccountStatus.APPROVED


def test_set_active_requires_boolean_and_known_account(db, notifier, make_admin):
    actor = Principal(Role.ADMIN, make_admin().admin_id, "ops-admin")
    with pytest.raises(ValidationError):
        account_service.set_active(db, Role.PHARMACY, "PHA-2026-000000", None, actor, notifier=notifier)
    with pytest.raises(NotFoundOrUnauthorized):
        account_service.set_active(db, Role.WHOLESALER, "WHO-2026-000000", True, actor, notifier=notifier)


# ==== WHOLESALER LOGIN GATE ====

def test_wholesaler_login_blocked_when_inactive(db, make_wholesaler):
    make_wholesaler(username="paused", is_active=False)
    with pytest.raises(AuthenticationFailure) as exc:
        account_service.login_wholesaler(db, "paused", PASSWORD)
    assert exc.value.blocked is True


def test_wholesaler_status_ignored_unless_required(db, make_wholesaler, monkeypatch):
    make_wholesaler(username="unvetted", status=AccountStatus.PENDING)
    assert account_service.login_wholesaler(db, "unvetted", PASSWORD)["role"] == Role.WHOLESALER

    monkeypatch.setattr(settings, "WHOLESALER_REQUIRE_APPROVAL", True)
    with pytest.raises(AuthenticationFailure):
        account_service.login_wholesaler(db, "unvetted", PASSWORD)


# ==== PASSWORD CHANGE ====

def test_pharmacy_password_change_needs_current_password(db, make_pharmacy):
    pharmacy = make_pharmacy(username="rotating")
    with pytest.raises(AuthenticationFailure) as exc:
        account_service.change_password(db, Role.PHARMACY, pharmacy.pharmacy_id, "not-the-password", "brand-new-pass")
    assert exc.value.message == "Current password is incorrect"
    assert account_service.login_pharmacy(db, "rotating", PASSWORD)["access_token"]

    account_service.change_password(db, Role.PHARMACY, pharmacy.pharmacy_id, PASSWORD, "brand-new-pass")
    with pytest.raises(AuthenticationFailure):
        account_service.login_pharmacy(db, "rotating", PASSWORD)
    assert account_service.login_pharmacy(db, "rotating", "brand-new-pass")["access_token"]


def test_wholesaler_password_change(db, make_wholesaler):
    wholesaler = make_wholesaler(username="bulk-rotating")
    account_service.change_password(db, Role.WHOLESALER, wholesaler.wholesaler_id, PASSWORD, "brand-new-pass")
    assert account_service.login_wholesaler(db, "bulk-rotating", "brand-new-pass")["role"] == Role.WHOLESALER


@pytest.mark.parametrize("current,new", [("", "brand-new-pass"), (PASSWORD, ""), (PASSWORD, "abc")])
def test_password_change_validates_input(db, make_pharmacy, current, new):
    pharmacy = make_pharmacy()
    with pytest.raises(ValidationError):
        account_service.change_password(db, Role.PHARMACY, pharmacy.pharmacy_id, current, new)
    assert account_service.login_pharmacy(db, pharmacy.username, PASSWORD)["access_token"]


def test_password_change_unknown_account(db):
    with pytest.raises(NotFoundOrUnauthorized):
        account_service.change_password(db, Role.WHOLESALER, "WHO-2026-000000", PASSWORD, "brand-new-pass")


# ==== SUPERADMIN BOOTSTRAP ====

def test_superadmin_bootstrap_provisions_once(db, monkeypatch):
    monkeypatch.setattr(settings, "MAIN_ADMIN_PASSWORD", "bootstrap-pass")
    assert account_service.get_superadmin(db) is None

    result = account_service.login_admin(db, settings.MAIN_ADMIN_USERNAME, "bootstrap-pass")
    assert result["is_main_admin"] is True
    row = account_service.get_superadmin(db)
    assert row is not None
    assert row.hashed_password != "bootstrap-pass"

    # the row is now authoritative: rotating the env value does not open a second door
    monkeypatch.setattr(settings, "MAIN_ADMIN_PASSWORD", "some-other-value")
    with pytest.raises(AuthenticationFailure):
        account_service.login_admin(db, settings.MAIN_ADMIN_USERNAME, "some-other-value")
    assert account_service.login_admin(db, settings.MAIN_ADMIN_USERNAME, "bootstrap-pass")["access_token"]
    assert db.query(Admin).count() == 1


def test_superadmin_bootstrap_disabled_without_password(db, monkeypatch):
    monkeypatch.setattr(settings, "MAIN_ADMIN_PASSWORD", "")
    with pytest.raises(AuthenticationFailure):
        account_service.login_admin(db, settings.MAIN_ADMIN_USERNAME, "anything")
    assert db.query(Admin).count() == 0


def test_regular_admin_is_never_main_admin(db, make_admin):
    admin = make_admin(username="helper")
    result = account_service.login_admin(db, "helper", PASSWORD)
    assert result["is_main_admin"] is False
    assert decode_access_token(result["access_token"])["sub"] == admin.admin_id


# ==== GOOGLE SIGN-IN ====

def test_first_google_sign_in_creates_pending_pharmacy(db, notifier, make_admin):
    admin = make_admin()
    verifier = StubIdentityVerifier(email="owner@sunrise.test", name="Sunrise")

    result = account_service.federated_pharmacy_sign_in(db, "id-token", verifier, notifier=notifier)
    assert result["access_token"] is None
    assert result["status"] == AccountStatus.PENDING

    pharmacy = db.query(Pharmacy).filter(Pharmacy.username == "owner@sunrise.test").one()
    assert pharmacy.status == AccountStatus.PENDING
    # no password can reach this account
    with pytest.raises(AuthenticationFailure):
        account_service.login_pharmacy(db, "owner@sunrise.test", "guess")
    assert db.query(Notification).filter(Notification.recipient_id == admin.admin_id).count() == 1

    # second attempt while still pending hits the gate
    with pytest.raises(AuthenticationFailure) as exc:
        account_service.federated_pharmacy_sign_in(db, "id-token", verifier, notifier=notifier)
    assert exc.value.blocked is True


def test_google_sign_in_for_approved_pharmacy_gets_token(db, notifier, make_pharmacy):
    pharmacy = make_pharmacy(username="owner@approved.test")
    verifier = StubIdentityVerifier(email="owner@approved.test")

    result = account_service.federated_pharmacy_sign_in(db, "id-token", verifier, notifier=notifier)
    assert decode_access_token(result["access_token"])["sub"] == pharmacy.pharmacy_id
