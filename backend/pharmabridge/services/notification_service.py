"""
Notification fanout shared by every workflow.

Delivery is best-effort: a failed insert is logged and swallowed so it can
never fail the mutation it accompanies. Inserts are sequential and each one
commits on its own; a failure mid-loop leaves earlier recipients notified.

Dedup identity is (recipient_id, message, type, trigger_role). Messages that
interpolate a fresh ID are therefore always new rows.
"""
import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from pharmabridge.core.exceptions import NotFoundOrUnauthorized
from pharmabridge.core.permissions import Role
from pharmabridge.models.account import Admin, AdminStatus, Pharmacy, Wholesaler
from pharmabridge.models.notification import Notification
from pharmabridge.services.identifiers import EntityKind, new_unique_id

logger = logging.getLogger(__name__)


class NotificationType:
    REQUEST = "request"
    REQUEST_APPROVED = "requestApproved"
    REQUEST_REJECTED = "requestRejected"
    PRODUCT = "product"
    ADD_PHARMACY = "add_pharmacy"
    REGISTER_WHOLESALER = "register_wholesaler"
    APPROVE_PHARMACY = "approve_pharmacy_request"
    REJECT_PHARMACY = "disapprove_pharmacy_request"


def _distinct(ids: Iterable[Optional[str]]) -> List[str]:
    seen = []
    for recipient_id in ids:
        if recipient_id and recipient_id not in seen:
            seen.append(recipient_id)
    return seen


class NotificationFanout:
    """Idempotent delivery of one message to a set of recipients."""

    def notify(
        self,
        db: Session,
        recipient_role: str,
        message: str,
        type: str,
        trigger_role: str,
        recipient_ids: Iterable[Optional[str]] = (),
    ) -> int:
        """
        Insert one notification per distinct recipient unless the identical
        tuple already exists. No recipients means no-op.

        Returns:
            number of rows inserted
        """
        recipients = _distinct(recipient_ids)
        if not recipients:
            return 0

        delivered = 0
        try:
            for recipient_id in recipients:
                exists = (
                    db.query(Notification.notification_id)
                    .filter(
                        Notification.recipient_id == recipient_id,
                        Notification.message == message,
                        Notification.type == type,
                        Notification.trigger_role == trigger_role,
                    )
                    .first()
                )
                if exists:
                    logger.debug(f"Duplicate notification for {recipient_role}:{recipient_id} skipped ({type})")
                    continue
                db.add(Notification(
                    notification_id=new_unique_id(db, Notification.notification_id, EntityKind.NOTIFICATION),
                    recipient_id=recipient_id,
                    recipient_role=recipient_role,
                    message=message,
                    type=type,
                    trigger_role=trigger_role,
                ))
                db.commit()
                delivered += 1
        except Exception as e:
            db.rollback()
            logger.error(
                f"Notification delivery failed after {delivered}/{len(recipients)} "
                f"{recipient_role} recipients ({type}): {e}",
                exc_info=True,
            )
        return delivered

    def broadcast(self, db: Session, recipient_role: str, message: str, type: str, trigger_role: str) -> int:
        """Notify every active account of a role. Only used where a flow explicitly asks for it."""
        try:
            recipient_ids = self._active_ids(db, recipient_role)
        except Exception as e:
            logger.error(f"Could not resolve {recipient_role} recipients for broadcast ({type}): {e}", exc_info=True)
            return 0
        return self.notify(db, recipient_role, message, type, trigger_role, recipient_ids)

    @staticmethod
    def _active_ids(db: Session, recipient_role: str) -> List[str]:
        if recipient_role == Role.ADMIN:
            rows = db.query(Admin.admin_id).filter(Admin.status == AdminStatus.ACTIVE).all()
        elif recipient_role == Role.PHARMACY:
            rows = db.query(Pharmacy.pharmacy_id).filter(Pharmacy.is_active.is_(True)).all()
        elif recipient_role == Role.WHOLESALER:
            rows = db.query(Wholesaler.wholesaler_id).filter(Wholesaler.is_active.is_(True)).all()
        else:
            raise ValueError(f"Unknown recipient role: {recipient_role}")
        return [row[0] for row in rows]


class NotificationOutbox:
    """
    Notifications collected during a transition and delivered after commit.

    If the transaction rolls back the outbox is discarded, so a failed
    transition never leaves a notification behind.
    """

    def __init__(self, notifier: NotificationFanout):
        self.notifier = notifier
        self._pending: List[Tuple[str, str, str, str, Tuple[str, ...]]] = []

    def add(self, recipient_role: str, message: str, type: str, trigger_role: str,
            recipient_ids: Iterable[Optional[str]]):
        self._pending.append((recipient_role, message, type, trigger_role, tuple(_distinct(recipient_ids))))

    def discard(self):
        self._pending.clear()

    def flush(self, db: Session) -> int:
        delivered = 0
        pending, self._pending = self._pending, []
        for recipient_role, message, type, trigger_role, recipient_ids in pending:
            delivered += self.notifier.notify(db, recipient_role, message, type, trigger_role, recipient_ids)
        return delivered

    def __len__(self):
        return len(self._pending)


# Shared instance injected into every workflow (see api.deps.get_notifier)
fanout = NotificationFanout()


def list_notifications(db: Session, recipient_role: str, recipient_id: str, unread_only: bool = False) -> List[Notification]:
    q = db.query(Notification).filter(
        Notification.recipient_role == recipient_role,
        Notification.recipient_id == recipient_id,
    )
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc()).all()


def mark_read(db: Session, recipient_role: str, recipient_id: str, notification_id: str) -> Notification:
    notification = (
        db.query(Notification)
        .filter(
            Notification.notification_id == notification_id,
            Notification.recipient_role == recipient_role,
            Notification.recipient_id == recipient_id,
        )
        .first()
    )
    if not notification:
        raise NotFoundOrUnauthorized("Notification not found", reason=f"{notification_id} for {recipient_role}:{recipient_id}")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification
