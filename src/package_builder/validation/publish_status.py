"""npm publish-status validation for single packages and dependency trees.

The registry is queried over HTTP (``GET https://registry.npmjs.org/<name>``)
rather than by shelling out to ``npm``. Any non-OK status counts as "not
published".
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import quote

import requests

from package_builder.core.models import PackagePublishStatus
from package_builder.protocol.sanitize import resolve_package_path

logger = logging.getLogger(__name__)

NPM_REGISTRY_URL = "https://registry.npmjs.org"
REGISTRY_TIMEOUT_SECONDS = 30

UPDATE_KEYWORDS: tuple[str, ...] = (
    "update",
    "modify",
    "enhance",
    "upgrade",
    "refactor",
    "improve",
    "fix",
    "patch",
    "version",
)

_VERSION_PART = re.compile(r"\d+")


@dataclass(slots=True)
class DependencyTreeValidation:
    """Publish plan for a set of packages, in the order they were given."""

    all_valid: bool
    to_publish: list[str] = field(default_factory=list)
    to_skip: list[str] = field(default_factory=list)
    needing_bump: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    statuses: list[PackagePublishStatus] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allPackagesValid": self.all_valid,
            "packagesToPublish": self.to_publish,
            "packagesToSkip": self.to_skip,
            "packagesNeedingVersionBump": self.needing_bump,
            "validationErrors": self.errors,
            "packageStatuses": [s.to_dict() for s in self.statuses],
        }


def fetch_registry_metadata(
    package_name: str, session: requests.Session | None = None, version: str | None = None
) -> dict[str, Any] | None:
    """Fetch the registry document for a package, or one version manifest of it.

    Scoped names are escaped as the registry expects (`@scope%2Fname`).

    Returns:
        The parsed document, or None when the registry does not answer 200.

    Raises:
        requests.RequestException: On network failures.
    """
    http = session or requests
    url = f"{NPM_REGISTRY_URL}/{quote(package_name, safe='@')}"
    if version:
        url = f"{url}/{version}"
    response = http.get(url, timeout=REGISTRY_TIMEOUT_SECONDS)
    if response.status_code != 200:
        logger.debug(f"Registry returned {response.status_code} for {package_name}")
        return None
    data = response.json()
    return data if isinstance(data, dict) else None


def check_npm_published(package_name: str, session: requests.Session | None = None) -> str | None:
    """Return the ``latest`` dist-tag of a published package, or None if unpublished."""
    data = fetch_registry_metadata(package_name, session)
    if data is None:
        return None
    latest = (data.get("dist-tags") or {}).get("latest")
    return str(latest) if latest else None


def _version_parts(version: str) -> list[int]:
    parts = []
    for piece in version.split(".")[:3]:
        match = _VERSION_PART.match(piece)
        parts.append(int(match.group()) if match else 0)
    return parts + [0] * (3 - len(parts))


def is_version_greater(version: str, other: str) -> bool:
    """Compare major.minor.patch numerically. Pre-release suffixes are ignored.

    Example:
        >>> is_version_greater("1.10.0", "1.9.3")
        True
        >>> is_version_greater("1.0.0", "1.0.0")
        False
    """
    return _version_parts(version) > _version_parts(other)


def is_update_plan(plan_content: str) -> bool:
    """Return True if a plan describes changes to an existing package.

    A keyword alone is not enough; it must appear as "<keyword> existing" or
    "<keyword> the".
    """
    lowered = plan_content.lower()
    return any(
        f"{keyword} existing" in lowered or f"{keyword} the" in lowered
        for keyword in UPDATE_KEYWORDS
    )


def check_if_upgrade_plan(workspace_root: str | Path, plan_path: str | Path) -> bool:
    """Read a plan file and apply ``is_update_plan``. Unreadable plans are not updates."""
    full_path = Path(workspace_root) / plan_path
    try:
        content = full_path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning(f"Could not read plan {full_path}: {e}")
        return False
    return is_update_plan(content)


def read_local_version(workspace_root: str | Path, package_path: str | Path) -> str:
    """Read ``version`` from the package's package.json.

    Raises:
        OSError: If package.json cannot be read.
        ValueError: If it is not valid JSON or has no version.
    """
    package_json = resolve_package_path(workspace_root, package_path) / "package.json"
    try:
        data = json.loads(package_json.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid package.json at {package_json}: {e}") from e
    version = data.get("version") if isinstance(data, dict) else None
    if not version:
        raise ValueError(f"No version in {package_json}")
    return str(version)


def classify_publish_status(
    package_name: str, local_version: str, npm_version: str | None, is_update: bool
) -> PackagePublishStatus:
    """Decide whether a package should be published given its two versions."""
    needs_publish = False
    needs_version_bump = False

    if npm_version is None:
        needs_publish = True
        reason = "New package - never published to npm"
    elif local_version == npm_version:
        if is_update:
            needs_version_bump = True
            reason = f"Update plan detected but version not bumped (current: {npm_version})"
        else:
            reason = f"Already published at v{npm_version}"
    elif is_version_greater(local_version, npm_version):
        needs_publish = True
        if is_update:
            reason = f"Update with version bump ({npm_version} → {local_version})"
        else:
            reason = (
                f"Version bumped ({npm_version} → {local_version}) without explicit update plan"
            )
    else:
        reason = (
            f"Error: Local version ({local_version}) is less than npm version ({npm_version})"
        )

    return PackagePublishStatus(
        package_name=package_name,
        local_version=local_version,
        npm_version=npm_version,
        is_published=npm_version is not None,
        is_new=npm_version is None,
        is_update=is_update,
        needs_publish=needs_publish,
        needs_version_bump=needs_version_bump,
        reason=reason,
    )


def validate_package_publish_status(
    package_name: str,
    workspace_root: str | Path,
    package_path: str | Path,
    plan_path: str | Path,
    session: requests.Session | None = None,
) -> PackagePublishStatus:
    """Compute the publish status of one package.

    Raises:
        OSError, ValueError: If the local version cannot be read.
        requests.RequestException: If the registry is unreachable.
    """
    logger.info(f"Checking publish status for {package_name}")
    local_version = read_local_version(workspace_root, package_path)
    npm_version = check_npm_published(package_name, session)
    is_update = check_if_upgrade_plan(workspace_root, plan_path)

    status = classify_publish_status(package_name, local_version, npm_version, is_update)
    logger.info(f"{package_name}: {status.reason}")
    return status


def validate_dependency_tree_publish_status(
    packages: list[dict[str, str]],
    workspace_root: str | Path,
    session: requests.Session | None = None,
) -> DependencyTreeValidation:
    """Validate every package of a dependency tree.

    Args:
        packages: Items with ``packageName``, ``packagePath`` and ``planPath``.
        workspace_root: Monorepo root.
        session: Optional shared HTTP session.

    Returns:
        DependencyTreeValidation: ``all_valid`` is False when any package could
        not be validated, went backwards, or needs a version bump.
    """
    logger.info(f"Validating publish status for {len(packages)} packages")
    result = DependencyTreeValidation(all_valid=True)

    for pkg in packages:
        name = pkg["packageName"]
        try:
            status = validate_package_publish_status(
                name, workspace_root, pkg["packagePath"], pkg["planPath"], session
            )
        except (OSError, ValueError, requests.RequestException) as e:
            message = f"Failed to validate {name}: {e}"
            logger.error(message)
            result.errors.append(message)
            continue

        result.statuses.append(status)
        if status.reason.startswith("Error:"):
            result.errors.append(f"{name}: {status.reason}")

    for status in result.statuses:
        if status.needs_version_bump:
            result.needing_bump.append(status.package_name)
        elif status.needs_publish:
            result.to_publish.append(status.package_name)
        else:
            result.to_skip.append(status.package_name)

    result.all_valid = not result.errors and not result.needing_bump
    logger.info(
        f"Publish plan: {len(result.to_publish)} to publish, {len(result.to_skip)} to skip, "
        f"{len(result.needing_bump)} need a version bump, {len(result.errors)} errors"
    )
    return result
