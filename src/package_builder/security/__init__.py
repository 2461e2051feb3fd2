"""Security module.

- Path validation for LLM-supplied file paths (path_safety)
- Secure file handling with atomic operations (SecureFileHandler)
"""

from package_builder.security.path_safety import (
    PathCheck,
    UnsafePathError,
    check_path_safety,
    validate_path_safety,
)
from package_builder.security.secure_file_handler import SecureFileHandler

__all__ = [
    "PathCheck",
    "SecureFileHandler",
    "UnsafePathError",
    "check_path_safety",
    "validate_path_safety",
]
