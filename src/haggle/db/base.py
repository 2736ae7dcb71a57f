# haggle/db/base.py

from sqlalchemy import MetaData, Column, DateTime, func
from sqlalchemy.orm import DeclarativeBase
from haggle.utils.datetime_utils import utcnow

# Deterministic constraint names. The migrations and the partial unique
# indexes refer to them, and drop_all relies on them in the test suite.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

class CreatedAtMixin:
    """Naive UTC creation stamp set by the ORM; the server default only covers raw SQL inserts."""
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

class TimestampMixin(CreatedAtMixin):
    updated_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)
