# src/pujo_gallery/db/__init__.py
"""Database configuration and utilities."""

from .session import SessionLocal, create_tables

__all__ = ["create_tables", "SessionLocal"]
