"""All enum types for the LabVault data model."""

import enum


# --- Storage Enums ---

class LabelSchema(str, enum.Enum):
    ALPHA_NUMERIC = "alpha-numeric"
    NUMERIC = "numeric"
    CUSTOM = "custom"


class OccupantKind(str, enum.Enum):
    SAMPLE = "sample"
    DNA_EXTRACT = "dna_extract"
    BATCH = "batch"
    UNKNOWN = "unknown"


class ItemKind(str, enum.Enum):
    """Persisted record types that can hold a storage position."""
    SAMPLE = "sample"
    DNA_EXTRACT = "dna_extract"


class ChildPolicy(str, enum.Enum):
    """What happens to child units when their parent is deleted."""
    REJECT = "reject"
    REPARENT = "reparent"
    CASCADE = "cascade"


class DropRejectReason(str, enum.Enum):
    ALREADY_OCCUPIED = "already_occupied"
    DISABLED = "disabled"


class BatchConflictType(str, enum.Enum):
    COMMITTED_OCCUPIED = "committed_occupied"
    DISABLED = "disabled"
    DUPLICATE_IN_BATCH = "duplicate_in_batch"
    OUT_OF_GRID = "out_of_grid"


class BatchRowStatus(str, enum.Enum):
    COMMITTED = "committed"
    FAILED = "failed"


# --- Audit Enums ---

class AuditAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
