"""
Database package initialization.

The package follows a modular structure:
- base: declarative base and mixins
- connection: async engine, session factory and FastAPI dependency
- models: ORM models for products, orders, order items and device tokens
"""

__all__ = []
