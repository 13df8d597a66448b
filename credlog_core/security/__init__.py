"""
Security utilities module.

Provides:
- Path validation (keep manual requests inside the watched directory)
- File type restrictions (suffix-based candidate detection)
"""

from credlog_core.security.validation import validate_path, validate_file_type

__all__ = [
    "validate_path",
    "validate_file_type",
]
