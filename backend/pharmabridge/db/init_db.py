"""Create all tables. Run on app startup.

No default accounts are seeded here: the superadmin row is provisioned on
the first successful bootstrap login (see services.account_service).
"""
import logging

from pharmabridge.db.base import Base
from pharmabridge.db.session import engine
from pharmabridge import models  # noqa: F401 - register models

logger = logging.getLogger(__name__)


def init_db(bind=None):
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")
