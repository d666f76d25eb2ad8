"""Declarative base shared by every engine model."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
