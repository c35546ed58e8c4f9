"""
Shared utilities for IMAGINATOR.

Common functionality used across contexts:
- Logger setup with provenance
- Job event log (JSON Lines)
- Timestamps
"""

from imaginator.utils.timestamp import now, now_exact

__all__ = ["now", "now_exact"]
