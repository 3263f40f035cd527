"""Declarative base, row identifiers and column types shared by the authz tables."""

from datetime import datetime
from typing import Annotated

import uuid_utils
from sqlalchemy import Boolean, DateTime, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

ROW_ID_LENGTH = 48

RowId = Annotated[str, mapped_column(String(ROW_ID_LENGTH), primary_key=True)]
ActiveFlag = Annotated[bool, mapped_column(Boolean, nullable=False, default=True)]
CreatedAt = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now()),
]
ExpiresAt = Annotated[datetime, mapped_column(DateTime(timezone=True), nullable=False)]
OptionalTimestamp = Annotated[
    datetime | None, mapped_column(DateTime(timezone=True), nullable=True)
]


def new_row_id() -> str:
    """Time-ordered primary key for new rows."""
    return str(uuid_utils.uuid7())


class BaseEntity(DeclarativeBase):
    """Base class for every authz table; constraint names are deterministic."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
