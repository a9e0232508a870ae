"""All LabVault database models.

Import all models here so Alembic and SQLAlchemy can discover them.
"""

from labvault.models.base import Base, BaseModel  # noqa: F401

# Audit
from labvault.models.audit import AuditLog  # noqa: F401

# Storage
from labvault.models.storage import StorageUnit  # noqa: F401

# Samples
from labvault.models.sample import DnaExtract, Sample  # noqa: F401
