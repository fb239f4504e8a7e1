"""
Input validation functions for provisioning requests.

Provides validation for owners, target names, labels and runner versions.
Target names become directory names, so they are held to a strict pattern.
"""

import re

_OWNER_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")
_TARGET_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,100}$")
_VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")
_LABEL_PATTERN = re.compile(r"^[A-Za-z0-9._:/-]{1,100}$")

RESERVED_NAMES = {".", "..", "_cache"}


def validate_owner(owner: str) -> str:
    """Validate an account or organization name.

    Args:
        owner: The owner to validate

    Returns:
        The validated owner

    Raises:
        ValueError: If the owner is invalid
    """
    if not owner:
        raise ValueError(
            "Owner cannot be empty. "
            "Hint: Pass the user or organization that owns the repositories."
        )

    if not _OWNER_PATTERN.match(owner):
        raise ValueError(
            f"Invalid owner: '{owner}'. "
            "Owners contain only letters, digits and hyphens and cannot start with a hyphen."
        )

    return owner


def validate_target_name(name: str) -> str:
    """Validate a target (repository) name.

    Args:
        name: The target name to validate

    Returns:
        The validated target name

    Raises:
        ValueError: If the name is invalid or would escape the base directory
    """
    if not name:
        raise ValueError(
            "Target name cannot be empty. "
            "Hint: Pass repository names without the owner prefix."
        )

    if name in RESERVED_NAMES:
        raise ValueError(f"Target name '{name}' is reserved")

    if not _TARGET_PATTERN.match(name):
        raise ValueError(
            f"Invalid target name: '{name}'. "
            "Use letters, digits, '.', '_' or '-' only (e.g., 'my-repo'). "
            "Hint: Do not include the owner ('owner/repo')."
        )

    return name


def validate_labels(labels: list[str]) -> list[str]:
    """Validate runner labels and drop duplicates, keeping first occurrence.

    Args:
        labels: Labels to validate

    Returns:
        The de-duplicated labels in their original order

    Raises:
        ValueError: If a label contains unsupported characters
    """
    seen: list[str] = []
    for label in labels:
        label = label.strip()
        if not label:
            continue
        if "," in label or not _LABEL_PATTERN.match(label):
            raise ValueError(
                f"Invalid label: '{label}'. "
                "Hint: Labels cannot contain commas or whitespace."
            )
        if label not in seen:
            seen.append(label)
    return seen


def validate_version(version: str) -> str:
    """Validate a runner package version.

    Args:
        version: Version string such as '2.321.0'

    Returns:
        The version without a leading 'v'

    Raises:
        ValueError: If the version is not in MAJOR.MINOR.PATCH form
    """
    if not version:
        raise ValueError("Runner version cannot be empty.")

    version = version[1:] if version.startswith("v") else version
    if not _VERSION_PATTERN.match(version):
        raise ValueError(
            f"Invalid runner version: '{version}'. "
            "Must be MAJOR.MINOR.PATCH (e.g., '2.321.0')."
        )

    return version
