from datetime import datetime, timezone

import sqlalchemy
from sqlalchemy import Column, String
from sqlalchemy.orm import declarative_base
from uuid6 import uuid7

Base = declarative_base()


def new_id() -> str:
    return str(uuid7())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BaseModel(Base):
    __abstract__ = True
    id = Column(String(36), primary_key=True, default=new_id, index=True)
    # Python-side defaults keep the values readable on detached instances
    created_at = Column(
        sqlalchemy.DateTime(timezone=True),
        default=_now,
        server_default=sqlalchemy.func.now(),
        nullable=False,
    )
    updated_at = Column(
        sqlalchemy.DateTime(timezone=True),
        default=_now,
        server_default=sqlalchemy.func.now(),
        onupdate=sqlalchemy.func.now(),
        nullable=False,
    )

# Note: Models import this Base. Import the model modules (sitecraft.features.analysis.models)
# before create_all() or alembic autogenerate so their tables are registered.
