"""
Shared column helpers for the TaxPro models.
"""

from taxpro import db
from datetime import date, datetime
from enum import Enum
from typing import Optional, Type


def enum_check(column: str, enum_cls: Type[Enum], name: str) -> db.CheckConstraint:
    """CHECK constraint restricting `column` to the values of a string enum."""
    values = ', '.join(f"'{member.value}'" for member in enum_cls)
    return db.CheckConstraint(f'{column} IN ({values})', name=name)


def enum_values(enum_cls: Type[Enum]) -> list:
    return [member.value for member in enum_cls]


def iso(value) -> Optional[str]:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def money(value) -> Optional[float]:
    """Numeric columns come back as Decimal; JSON wants floats."""
    return float(value) if value is not None else None


def uuid_str(value) -> Optional[str]:
    return str(value) if value is not None else None
