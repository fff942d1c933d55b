"""Declarative base for all HWnow models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
