"""Declarative base shared by every model."""
from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Timezone-aware now. Column defaults use this so ordering keeps sub-second precision."""
    return datetime.now(timezone.utc)
