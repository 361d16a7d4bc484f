"""Declarative base shared by all models."""
import uuid
from enum import Enum

from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    """Opaque primary key (uuid4 string)."""
    return str(uuid.uuid4())


def str_enum(enum_cls: type[Enum], name: str) -> SAEnum:
    """Enum column stored as its string value (VARCHAR + CHECK), portable across Postgres and SQLite."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=16,
        values_callable=lambda e: [m.value for m in e],
        validate_strings=True,
    )
