"""Configuration for the RAID node."""
