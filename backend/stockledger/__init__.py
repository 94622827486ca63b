# backend/stockledger/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in stockledger/apps/*/models.py.
"""

from .apps.inventory import models as inventory_models  # items + size variants
from .apps.audit import models as audit_models          # transactions + system events

__all__ = [
    "inventory_models",
    "audit_models",
]
