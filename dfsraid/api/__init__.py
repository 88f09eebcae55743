"""HTTP API of the RAID node."""
