"""
Registration, login and the onboarding gate.

Gate rules:
- is_active = False blocks login for every role, whatever the status.
- Pharmacies must also be status = approved.
- Wholesalers are approved by whoever registers them; their status is only
  checked when WHOLESALER_REQUIRE_APPROVAL is on.
- Credentials are checked first, so a wrong password never reveals whether
  the account is pending or deactivated.

Superadmin bootstrap: MAIN_ADMIN_USERNAME / MAIN_ADMIN_PASSWORD are accepted
only while no superadmin row exists. The first successful login writes the
row with a bcrypt hash; from then on only the row is consulted.

Pharmacy sign-ups (password or Google) broadcast an add_pharmacy notice to
every admin. This is the only admin-wide broadcast; every other notice in
this module names its recipients.
"""
import logging
import secrets
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pharmabridge.core.audit import AuditLog
from pharmabridge.core.config import settings
from pharmabridge.core.exceptions import AuthenticationFailure, Conflict, NotFoundOrUnauthorized, ValidationError
from pharmabridge.core.permissions import Principal, Role
from pharmabridge.core.security import (
    create_access_token,
    get_password_hash,
    unusable_password_hash,
    verify_password,
)
from pharmabridge.models.account import AccountStatus, Admin, AdminStatus, Pharmacy, Wholesaler
from pharmabridge.services.identifiers import EntityKind, new_unique_id
from pharmabridge.services.identity_service import GoogleIdentityVerifier
from pharmabridge.services.notification_service import NotificationFanout, NotificationType, fanout

logger = logging.getLogger(__name__)

PENDING_APPROVAL_MESSAGE = (
    "Your request has been sent to the administrator. Please wait for approval before signing in."
)


def _require(message: str, *values) -> None:
    if any(v is None or (isinstance(v, str) and not v.strip()) for v in values):
        raise ValidationError(message)


def _check_password_policy(password: str) -> None:
    if len(password) < settings.MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters")


def _commit_new_account(db: Session, account) -> None:
    """Commit, turning a unique-index race on username into Conflict."""
    db.add(account)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Username already registered")
    db.refresh(account)


def _token_response(principal: Principal, name: Optional[str] = None) -> dict:
    return {
        "access_token": create_access_token(principal.claims()),
        "token_type": "bearer",
        "role": principal.role,
        "account_id": principal.account_id,
        "name": name,
        "is_main_admin": principal.is_main_admin,
    }


# ==============================================================================
# REGISTRATION
# ==============================================================================

def register_pharmacy(
    db: Session,
    name: str,
    address: str,
    phone_no: str,
    username: str,
    password: str,
    notifier: NotificationFanout = fanout,
) -> Pharmacy:
    """New pharmacies start pending and active; admins are told a sign-up is waiting."""
    _require("Name, address, phone_No, username, password are required", name, address, phone_no, username, password)
    _check_password_policy(password)
    if db.query(Pharmacy.pharmacy_id).filter(Pharmacy.username == username).first():
        AuditLog.log_authentication("register", Role.PHARMACY, username, False, reason="duplicate username")
        raise Conflict("Username already registered")

    pharmacy = Pharmacy(
        pharmacy_id=new_unique_id(db, Pharmacy.pharmacy_id, EntityKind.PHARMACY),
        name=name.strip(),
        address=address.strip(),
        phone_no=phone_no.strip(),
        username=username.strip(),
        hashed_password=get_password_hash(password),
        status=AccountStatus.PENDING,
        is_active=True,
    )
    _commit_new_account(db, pharmacy)
    AuditLog.log_authentication("register", Role.PHARMACY, pharmacy.username, True)

    notifier.broadcast(
        db, Role.ADMIN, f'New pharmacy "{pharmacy.name}" registered and is awaiting approval.',
        NotificationType.ADD_PHARMACY, Role.PHARMACY,
    )
    return pharmacy


def register_wholesaler(
    db: Session,
    name: str,
    address: str,
    username: str,
    password: str,
    status: str = AccountStatus.APPROVED,
    registered_by: Optional[Principal] = None,
    notifier: NotificationFanout = fanout,
) -> Wholesaler:
    """Status is operator supplied. When an admin registers the wholesaler, that admin is notified."""
    _require("Name, address, username, password, status are required", name, address, username, password, status)
    if status not in AccountStatus.ALL:
        raise ValidationError(f"Status must be one of: {', '.join(AccountStatus.ALL)}")
    _check_password_policy(password)
    if db.query(Wholesaler.wholesaler_id).filter(Wholesaler.username == username).first():
        AuditLog.log_authentication("register", Role.WHOLESALER, username, False, reason="duplicate username")
        raise Conflict("Username already registered")

    wholesaler = Wholesaler(
        wholesaler_id=new_unique_id(db, Wholesaler.wholesaler_id, EntityKind.WHOLESALER),
        name=name.strip(),
        address=address.strip(),
        username=username.strip(),
        hashed_password=get_password_hash(password),
        status=status,
        is_active=True,
    )
    _commit_new_account(db, wholesaler)
    AuditLog.log_authentication("register", Role.WHOLESALER, wholesaler.username, True)

    if registered_by is not None and registered_by.is_admin:
        notifier.notify(
            db, Role.ADMIN, f'Wholesaler "{wholesaler.name}" has been registered successfully.',
            NotificationType.REGISTER_WHOLESALER, Role.ADMIN, [registered_by.account_id],
        )
    return wholesaler


# ==============================================================================
# LOGIN
# ==============================================================================

def _gate_pharmacy(pharmacy: Pharmacy) -> None:
    if not pharmacy.is_active:
        AuditLog.log_authentication("login", Role.PHARMACY, pharmacy.username, False, reason="inactive")
        raise AuthenticationFailure("Your account has been deactivated. Please contact support.", blocked=True)
    if pharmacy.status == AccountStatus.REJECTED:
        AuditLog.log_authentication("login", Role.PHARMACY, pharmacy.username, False, reason="rejected")
        raise AuthenticationFailure("Your account registration was rejected by the administrator.", blocked=True)
    if pharmacy.status != AccountStatus.APPROVED:
        AuditLog.log_authentication("login", Role.PHARMACY, pharmacy.username, False, reason="pending")
        raise AuthenticationFailure("Account pending approval by admin", blocked=True)


def login_pharmacy(db: Session, username: str, password: str) -> dict:
    _require("Username and password are required", username, password)
    pharmacy = db.query(Pharmacy).filter(Pharmacy.username == username).first()
    if not pharmacy or not verify_password(password, pharmacy.hashed_password):
        AuditLog.log_authentication("login", Role.PHARMACY, username, False, reason="bad credentials")
        raise AuthenticationFailure("Invalid credentials")
    _gate_pharmacy(pharmacy)

    AuditLog.log_authentication("login", Role.PHARMACY, username, True)
    return _token_response(Principal(Role.PHARMACY, pharmacy.pharmacy_id, pharmacy.username), pharmacy.name)


def login_wholesaler(db: Session, username: str, password: str) -> dict:
    _require("username and password are required", username, password)
    wholesaler = db.query(Wholesaler).filter(Wholesaler.username == username).first()
    if not wholesaler or not verify_password(password, wholesaler.hashed_password):
        AuditLog.log_authentication("login", Role.WHOLESALER, username, False, reason="bad credentials")
        raise AuthenticationFailure("Invalid credentials")
    if not wholesaler.is_active:
        AuditLog.log_authentication("login", Role.WHOLESALER, username, False, reason="inactive")
        raise AuthenticationFailure(
            "Your account is currently inactive. Please contact support for assistance.", blocked=True
        )
    if settings.WHOLESALER_REQUIRE_APPROVAL and wholesaler.status != AccountStatus.APPROVED:
        AuditLog.log_authentication("login", Role.WHOLESALER, username, False, reason=wholesaler.status)
        raise AuthenticationFailure("Account pending approval by admin", blocked=True)

    AuditLog.log_authentication("login", Role.WHOLESALER, username, True)
    return _token_response(Principal(Role.WHOLESALER, wholesaler.wholesaler_id, wholesaler.username), wholesaler.name)


def get_superadmin(db: Session) -> Optional[Admin]:
    return (
        db.query(Admin)
        .filter(Admin.username == settings.MAIN_ADMIN_USERNAME, Admin.role == Role.SUPERADMIN)
        .first()
    )


def provision_superadmin(db: Session, password: str) -> Admin:
    admin = Admin(
        admin_id=new_unique_id(db, Admin.admin_id, EntityKind.ADMIN),
        name="Main Administrator",
        username=settings.MAIN_ADMIN_USERNAME,
        hashed_password=get_password_hash(password),
        role=Role.SUPERADMIN,
        status=AdminStatus.ACTIVE,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.warning("Superadmin account provisioned from bootstrap credentials; environment password is now ignored")
    AuditLog.log_action("provision", "admin", admin.admin_id, Role.SUPERADMIN, admin.admin_id)
    return admin


def bootstrap_password_matches(password: str) -> bool:
    bootstrap = settings.MAIN_ADMIN_PASSWORD
    return bool(bootstrap) and secrets.compare_digest(password.encode("utf-8"), bootstrap.encode("utf-8"))


def login_admin(db: Session, username: str, password: str) -> dict:
    _require("Username and password are required", username, password)

    if username == settings.MAIN_ADMIN_USERNAME:
        superadmin = get_superadmin(db)
        if superadmin is not None:
            if not verify_password(password, superadmin.hashed_password):
                AuditLog.log_authentication("login", Role.SUPERADMIN, username, False, reason="bad credentials")
                raise AuthenticationFailure("Invalid superadmin credentials")
        else:
            if not bootstrap_password_matches(password):
                AuditLog.log_authentication("login", Role.SUPERADMIN, username, False, reason="bad bootstrap credentials")
                raise AuthenticationFailure("Invalid superadmin credentials")
            superadmin = provision_superadmin(db, password)

        AuditLog.log_authentication("login", Role.SUPERADMIN, username, True)
        principal = Principal(Role.SUPERADMIN, superadmin.admin_id, superadmin.username, is_main_admin=True)
        return _token_response(principal, superadmin.name)

    admin = (
        db.query(Admin)
        .filter(Admin.username == username, Admin.status == AdminStatus.ACTIVE)
        .first()
    )
    if not admin or not verify_password(password, admin.hashed_password):
        AuditLog.log_authentication("login", Role.ADMIN, username, False, reason="bad credentials or inactive")
        raise AuthenticationFailure("Invalid admin credentials")

    AuditLog.log_authentication("login", Role.ADMIN, username, True)
    # only the bootstrap account is ever main admin
    return _token_response(Principal(Role.ADMIN, admin.admin_id, admin.username, is_main_admin=False), admin.name)


def federated_pharmacy_sign_in(
    db: Session,
    credential: str,
    verifier: GoogleIdentityVerifier,
    notifier: NotificationFanout = fanout,
) -> dict:
    """
    Google sign-in for pharmacies.

    First sign-in creates a pending pharmacy with an unusable password and
    returns a wait-for-approval payload without a token. Later sign-ins go
    through the same gate as password login.
    """
    identity = verifier.verify(credential)
    pharmacy = db.query(Pharmacy).filter(Pharmacy.username == identity.email).first()

    if pharmacy is None:
        pharmacy = Pharmacy(
            pharmacy_id=new_unique_id(db, Pharmacy.pharmacy_id, EntityKind.PHARMACY),
            name=identity.name or "N/A",
            address="N/A",
            phone_no="N/A",
            username=identity.email,
            hashed_password=unusable_password_hash(),
            status=AccountStatus.PENDING,
            is_active=True,
        )
        _commit_new_account(db, pharmacy)
        AuditLog.log_authentication("federated_register", Role.PHARMACY, identity.email, True)
        notifier.broadcast(
            db, Role.ADMIN, f'New pharmacy "{pharmacy.name}" registered and is awaiting approval.',
            NotificationType.ADD_PHARMACY, Role.PHARMACY,
        )
        return {
            "status": AccountStatus.PENDING,
            "message": PENDING_APPROVAL_MESSAGE,
            "pharmacy_id": pharmacy.pharmacy_id,
            "access_token": None,
        }

    _gate_pharmacy(pharmacy)
    AuditLog.log_authentication("federated_login", Role.PHARMACY, identity.email, True)
    response = _token_response(Principal(Role.PHARMACY, pharmacy.pharmacy_id, pharmacy.username), pharmacy.name)
    response.update({"status": pharmacy.status, "message": "Signed in", "pharmacy_id": pharmacy.pharmacy_id})
    return response


# ==============================================================================
# ADMIN-SIDE GATE CONTROLS
# ==============================================================================

def get_pharmacy_profile(db: Session, pharmacy_id: str) -> Pharmacy:
    pharmacy = db.query(Pharmacy).filter(Pharmacy.pharmacy_id == pharmacy_id).first()
    if not pharmacy:
        raise NotFoundOrUnauthorized("Pharmacy not found")
    return pharmacy


def get_wholesaler_profile(db: Session, wholesaler_id: str) -> Wholesaler:
    wholesaler = db.query(Wholesaler).filter(Wholesaler.wholesaler_id == wholesaler_id).first()
    if not wholesaler:
        raise NotFoundOrUnauthorized("Wholesaler not found")
    return wholesaler


def change_password(db: Session, role: str, account_id: str, current_password: str, new_password: str) -> None:
    """Self-service rotation: the current password must match before the new one is hashed."""
    _require("Current password and new password are required", current_password, new_password)
    _check_password_policy(new_password)
    if role == Role.PHARMACY:
        account = get_pharmacy_profile(db, account_id)
    elif role == Role.WHOLESALER:
        account = get_wholesaler_profile(db, account_id)
    elif role in Role.ADMIN_ROLES:
        account = db.query(Admin).filter(Admin.admin_id == account_id).first()
        if not account:
            raise NotFoundOrUnauthorized("Admin not found")
    else:
        raise ValidationError(f"Cannot change passwords for role {role}")

    if not verify_password(current_password, account.hashed_password):
        AuditLog.log_authentication("change_password", role, account.username, False, reason="wrong current password")
        raise AuthenticationFailure("Current password is incorrect")

    account.hashed_password = get_password_hash(new_password)
    db.commit()
    AuditLog.log_action("change_password", role, account_id, role, account_id)
    logger.info(f"Password changed for {role} {account_id}")


def set_pharmacy_status(
    db: Session, pharmacy_id: str, approved: bool, admin: Principal, notifier: NotificationFanout = fanout
) -> Pharmacy:
    """Approve or reject a pharmacy registration. is_active is left alone."""
    pharmacy = get_pharmacy_profile(db, pharmacy_id)
    pharmacy.status = AccountStatus.APPROVED if approved else AccountStatus.REJECTED
    db.commit()
    db.refresh(pharmacy)
    AuditLog.log_action("approve" if approved else "reject", "pharmacy", pharmacy_id, admin.role, admin.account_id)

    if approved:
        type_, account_msg, admin_msg = (
            NotificationType.APPROVE_PHARMACY,
            "Your pharmacy account has been approved.",
            f"Pharmacy with ID {pharmacy_id} has been approved.",
        )
    else:
        type_, account_msg, admin_msg = (
            NotificationType.REJECT_PHARMACY,
            "Your pharmacy account request was rejected.",
            f"Pharmacy with ID {pharmacy_id} has been rejected.",
        )
    notifier.notify(db, Role.PHARMACY, account_msg, type_, Role.ADMIN, [pharmacy_id])
    notifier.notify(db, Role.ADMIN, admin_msg, type_, Role.ADMIN, [admin.account_id])
    return pharmacy


def set_active(
    db: Session, role: str, account_id: str, is_active: bool, admin: Principal, notifier: NotificationFanout = fanout
):
    """Administrative kill switch for a pharmacy or wholesaler. Independent of approval status."""
    if not isinstance(is_active, bool):
        raise ValidationError("is_active (true/false) is required")
    if role == Role.PHARMACY:
        account = get_pharmacy_profile(db, account_id)
        label = "Pharmacy"
    elif role == Role.WHOLESALER:
        account = get_wholesaler_profile(db, account_id)
        label = "Wholesaler"
    else:
        raise ValidationError(f"Cannot toggle accounts of role {role}")

    account.is_active = is_active
    db.commit()
    db.refresh(account)
    verb = "activated" if is_active else "deactivated"
    AuditLog.log_action(verb, role, account_id, admin.role, admin.account_id)

    type_ = f"{'activate' if is_active else 'deactivate'}_{role}"
    notifier.notify(db, role, f"Your account has been {verb}.", type_, Role.ADMIN, [account_id])
    notifier.notify(db, Role.ADMIN, f"{label} with ID {account_id} has been {verb}.", type_, Role.ADMIN, [admin.account_id])
    return account
