# backend/carehub/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in carehub/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models          # companies / homes / people
from .apps.audit import models as audit_models                # audit trail
from .apps.training import models as training_models          # courses + completion records

__all__ = [
    "accounts_models",
    "audit_models",
    "training_models",
]
