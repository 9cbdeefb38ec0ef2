"""Human-readable entity IDs: PREFIX-YYYY-XXXXXX (XXXXXX = 6 upper-case hex chars)."""
import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from pharmabridge.core.exceptions import UpstreamFailure


class EntityKind:
    PHARMACY = "PHA"
    WHOLESALER = "WHO"
    ADMIN = "ADM"
    PRODUCT = "PROD"
    REQUEST = "REQ"
    ORDER = "ORD"
    NOTIFICATION = "NTF"


MAX_ATTEMPTS = 8


def generate_id(kind: str, now: Optional[datetime] = None) -> str:
    year = (now or datetime.now(timezone.utc)).year
    return f"{kind}-{year}-{secrets.token_hex(3).upper()}"


def new_unique_id(db: Session, column, kind: str) -> str:
    """
    Generate an ID for `kind` that is not yet present in `column`.

    ~16.7M combinations per prefix and year, so a retry is rare; the loop
    only guards against the occasional collision.
    """
    for _ in range(MAX_ATTEMPTS):
        candidate = generate_id(kind)
        if db.query(column).filter(column == candidate).first() is None:
            return candidate
    raise UpstreamFailure(reason=f"could not allocate a unique {kind} id after {MAX_ATTEMPTS} attempts")
