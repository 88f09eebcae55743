"""Policy loading, resolution and file eligibility."""

from .policy_engine import PolicyEngine, policy_covers_path
from .policy_loader import PolicyLoader, parse_policies

__all__ = ['PolicyEngine', 'PolicyLoader', 'parse_policies', 'policy_covers_path']
