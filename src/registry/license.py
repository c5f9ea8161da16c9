"""License extraction from npm release metadata."""

from typing import Any, List, Optional

from constants import Constants


def _from_object(data: Any) -> Optional[str]:
    """License name from a string or a ``{"type": ...}`` object."""
    if isinstance(data, str):
        return data.strip() or None
    if isinstance(data, dict):
        value = data.get("type") or data.get("name")
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_license(release: Any) -> str:
    """Discover the license declared by an npm release document.

    Handles ``license: "MIT"``, ``license: {"type": "MIT"}`` and the legacy
    ``licenses: [{"type": "MIT"}, {"type": "Apache-2.0"}]`` (dual licensing,
    joined with ", " without duplicates).

    Returns:
        The license string, or ``Constants.NO_LICENSE``.
    """
    if not isinstance(release, dict):
        return Constants.NO_LICENSE

    licensing = release.get("license") or release.get("licenses")
    if isinstance(licensing, list):
        found: List[str] = []
        for entry in licensing:
            name = _from_object(entry)
            if name and name not in found:
                found.append(name)
        if found:
            return ", ".join(found)
    else:
        name = _from_object(licensing)
        if name:
            return name

    return Constants.NO_LICENSE
