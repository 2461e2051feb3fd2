"""Checks run on generated packages before they are committed or published."""

from package_builder.validation.package_checks import (
    ValidationResult,
    check_license_headers,
    validate_package_json,
)
from package_builder.validation.precommit import PreCommitError, classify_precommit_errors
from package_builder.validation.publish_status import (
    validate_dependency_tree_publish_status,
    validate_package_publish_status,
)

__all__ = [
    "PreCommitError",
    "ValidationResult",
    "check_license_headers",
    "classify_precommit_errors",
    "validate_dependency_tree_publish_status",
    "validate_package_json",
    "validate_package_publish_status",
]
