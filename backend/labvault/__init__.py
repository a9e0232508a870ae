"""LabVault: storage hierarchy and grid-slot occupancy backend."""
