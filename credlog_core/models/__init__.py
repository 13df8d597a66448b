"""
Shared data models module.

Provides the transient models passed between pipeline stages:
- ParsedTriple (one parsed dump line)
- IngestionJob (one queued file)
"""

from credlog_core.models.common import ParsedTriple, IngestionJob

__all__ = ["ParsedTriple", "IngestionJob"]
