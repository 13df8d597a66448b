"""
Path and file-type checks for candidate dump files.

Candidate files are recognised by suffix only; manual single-file requests
can additionally be confined to the watched directory.
"""

from pathlib import Path
from typing import Iterable


def validate_path(path: Path, workspace: Path) -> bool:
    """
    Validate that a path is within the allowed workspace.

    Args:
        path: Path to validate
        workspace: Allowed workspace directory

    Returns:
        True if path is within workspace, False otherwise

    Example:
        >>> validate_path(Path("/srv/dumps/a.txt"), Path("/srv/dumps"))
        True
        >>> validate_path(Path("/etc/passwd"), Path("/srv/dumps"))
        False
    """
    try:
        return path.resolve().is_relative_to(workspace.resolve())
    except (ValueError, OSError):
        return False


def validate_file_type(filepath: Path, allowed_extensions: Iterable[str]) -> bool:
    """
    Validate that a file has an allowed extension (case-insensitive).

    Example:
        >>> validate_file_type(Path("combo_2024.TXT"), [".txt"])
        True
        >>> validate_file_type(Path("combo_2024.txt.part"), [".txt"])
        False
    """
    return filepath.suffix.lower() in [ext.lower() for ext in allowed_extensions]


__all__ = ["validate_path", "validate_file_type"]
