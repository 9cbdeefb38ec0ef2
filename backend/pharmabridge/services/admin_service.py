"""Admin management and the admin dashboard. Admin CRUD is main-admin only."""
import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from pharmabridge.core.audit import AuditLog
from pharmabridge.core.config import settings
from pharmabridge.core.exceptions import (
    AuthenticationFailure,
    Conflict,
    NotFoundOrUnauthorized,
    PermissionDenied,
    ValidationError,
)
from pharmabridge.core.permissions import Principal, Role, ensure_main_admin
from pharmabridge.core.security import get_password_hash, verify_password
from pharmabridge.models.account import AccountStatus, Admin, AdminStatus, Pharmacy, Wholesaler
from pharmabridge.services import account_service
from pharmabridge.services.identifiers import EntityKind, new_unique_id

logger = logging.getLogger(__name__)


def create_admin(
    db: Session,
    actor: Principal,
    name: str,
    username: str,
    password: str,
    email: Optional[str] = None,
    role: str = Role.ADMIN,
) -> Admin:
    ensure_main_admin(actor, "Only the main admin can add new admins")
    if not name or not username or not password:
        raise ValidationError("Name, username and password are required")
    if role != Role.ADMIN:
        raise ValidationError("Only regular admins can be created")
    if len(password) < settings.MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters")
    if username == settings.MAIN_ADMIN_USERNAME or db.query(Admin.admin_id).filter(Admin.username == username).first():
        raise Conflict("Username already taken")

    admin = Admin(
        admin_id=new_unique_id(db, Admin.admin_id, EntityKind.ADMIN),
        name=name.strip(),
        username=username.strip(),
        hashed_password=get_password_hash(password),
        email=email,
        role=Role.ADMIN,
        status=AdminStatus.ACTIVE,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    AuditLog.log_action("create", "admin", admin.admin_id, actor.role, actor.account_id)
    return admin


def list_admins(db: Session, actor: Principal) -> List[Admin]:
    ensure_main_admin(actor, "Only the main admin can view all admins")
    return db.query(Admin).order_by(Admin.created_at.desc()).all()


def get_admin(db: Session, actor: Principal, admin_id: str) -> Admin:
    if not actor.is_main_admin and actor.account_id != admin_id:
        raise PermissionDenied("You can only view your own details")
    admin = db.query(Admin).filter(Admin.admin_id == admin_id).first()
    if not admin:
        raise NotFoundOrUnauthorized("Admin not found")
    return admin


def remove_admin(db: Session, actor: Principal, admin_id: str) -> None:
    ensure_main_admin(actor, "Only the main admin can remove admins")
    admin = db.query(Admin).filter(Admin.admin_id == admin_id).first()
    if not admin:
        raise NotFoundOrUnauthorized("Admin not found")
    if admin.role == Role.SUPERADMIN:
        raise ValidationError("The main admin account cannot be removed")
    db.delete(admin)
    db.commit()
    AuditLog.log_action("delete", "admin", admin_id, actor.role, actor.account_id)


def describe_principal(db: Session, actor: Principal) -> dict:
    """Who am I. Main-admin status is re-read from the database, not trusted from the token."""
    admin = db.query(Admin).filter(Admin.admin_id == actor.account_id).first()
    if not admin:
        raise NotFoundOrUnauthorized("Admin not found")
    return {
        "admin_id": admin.admin_id,
        "name": admin.name,
        "username": admin.username,
        "email": admin.email,
        "role": admin.role,
        "is_main_admin": admin.role == Role.SUPERADMIN,
    }


def change_main_admin_password(db: Session, actor: Principal, current_password: str, new_password: str) -> None:
    ensure_main_admin(actor, "Only the main admin can change this password")
    if not current_password or not new_password:
        raise ValidationError("Current and new passwords are required")
    if len(new_password) < settings.MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters")

    superadmin = account_service.get_superadmin(db)
    if superadmin is None:
        # not yet provisioned: the bootstrap password is still the current one
        if not account_service.bootstrap_password_matches(current_password):
            raise AuthenticationFailure("Current password is incorrect")
        account_service.provision_superadmin(db, new_password)
    else:
        if not verify_password(current_password, superadmin.hashed_password):
            raise AuthenticationFailure("Current password is incorrect")
        superadmin.hashed_password = get_password_hash(new_password)
        db.commit()

    AuditLog.log_action("change_password", "admin", actor.account_id, actor.role, actor.account_id)
    logger.info("Main admin password changed")


def change_admin_password(
    db: Session, actor: Principal, admin_id: str, current_password: str, new_password: str
) -> None:
    """Regular admins rotate their own password; the main admin may rotate any admin's."""
    if not actor.is_main_admin and actor.account_id != admin_id:
        raise PermissionDenied("You can only change your own password")
    target = db.query(Admin).filter(Admin.admin_id == admin_id).first()
    if target is None and not (actor.is_main_admin and actor.account_id == admin_id):
        raise NotFoundOrUnauthorized("Admin not found")
    if target is None or target.role == Role.SUPERADMIN:
        change_main_admin_password(db, actor, current_password, new_password)
        return
    account_service.change_password(db, Role.ADMIN, admin_id, current_password, new_password)


# ==============================================================================
# ACCOUNT LISTINGS
# ==============================================================================

def list_pharmacies(db: Session, status: Optional[str] = None) -> List[Pharmacy]:
    q = db.query(Pharmacy)
    if status:
        if status not in AccountStatus.ALL:
            raise ValidationError(f"Status must be one of: {', '.join(AccountStatus.ALL)}")
        q = q.filter(Pharmacy.status == status)
    return q.order_by(Pharmacy.created_at.desc()).all()


def list_wholesalers(db: Session) -> List[Wholesaler]:
    return db.query(Wholesaler).order_by(Wholesaler.created_at.desc()).all()


def pharmacy_details(db: Session, pharmacy_id: str) -> Pharmacy:
    return account_service.get_pharmacy_profile(db, pharmacy_id)


def wholesaler_details(db: Session, wholesaler_id: str) -> Wholesaler:
    return account_service.get_wholesaler_profile(db, wholesaler_id)


# ==============================================================================
# DASHBOARD
# ==============================================================================

def dashboard_stats(db: Session) -> dict:
    pending_pharmacies = db.query(Pharmacy).filter(Pharmacy.status == AccountStatus.PENDING).count()
    pending_wholesalers = db.query(Wholesaler).filter(Wholesaler.status == AccountStatus.PENDING).count()
    return {
        "total_pharmacies": db.query(Pharmacy).count(),
        "total_wholesalers": db.query(Wholesaler).count(),
        "active_pharmacies": db.query(Pharmacy).filter(Pharmacy.is_active.is_(True)).count(),
        "active_wholesalers": db.query(Wholesaler).filter(Wholesaler.is_active.is_(True)).count(),
        "pending_pharmacies": pending_pharmacies,
        "pending_wholesalers": pending_wholesalers,
        "pending_approvals": pending_pharmacies + pending_wholesalers,
    }


def _month_keys(today: date, months: int) -> List[str]:
    year, month = today.year, today.month
    keys = []
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def wholesaler_growth(db: Session, months: int = 12, today: Optional[date] = None) -> List[dict]:
    """Wholesaler sign-ups per month for the trailing window, oldest first, empty months as zero."""
    today = today or date.today()
    keys = _month_keys(today, months)
    counts = dict.fromkeys(keys, 0)
    for (created_at,) in db.query(Wholesaler.created_at).all():
        if created_at is None:
            continue
        key = f"{created_at.year:04d}-{created_at.month:02d}"
        if key in counts:
            counts[key] += 1
    return [{"month": key, "count": counts[key]} for key in keys]
