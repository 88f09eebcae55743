"""Reconstruction of corrupted file data from parity."""

from .recovery_engine import RecoveryEngine

__all__ = ['RecoveryEngine']
