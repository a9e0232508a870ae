"""Storage domain errors.

Each is a ValueError carrying its own HTTP status and error code, which
the global error handlers use for the response body.
"""


class StorageError(ValueError):
    status_code = 400
    code = "STORAGE_ERROR"


class InvalidCoordinate(StorageError):
    code = "INVALID_COORDINATE"


class GridNotConfigured(StorageError):
    code = "GRID_NOT_CONFIGURED"


class NoCapacity(StorageError):
    status_code = 409
    code = "NO_CAPACITY"


class SlotAlreadyOccupied(StorageError):
    status_code = 409
    code = "SLOT_ALREADY_OCCUPIED"


class SlotDisabled(StorageError):
    status_code = 409
    code = "SLOT_DISABLED"


class CorruptHierarchy(StorageError):
    status_code = 409
    code = "CORRUPT_HIERARCHY"


class StaleOccupancySnapshot(StorageError):
    status_code = 409
    code = "STALE_OCCUPANCY_SNAPSHOT"
