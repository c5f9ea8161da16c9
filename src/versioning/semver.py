"""NPM semantic versioning comparator.

Thin layer over ``semantic_version`` that speaks npm: caret/tilde ranges,
x-ranges, hyphen ranges and ``||`` unions. Functions never raise on bad
input except ``eq``, whose callers need to tell "different" from
"unparseable".
"""

import re
from typing import Dict, Iterable, Optional, Union

import semantic_version

Spec = Union[semantic_version.NpmSpec, semantic_version.SimpleSpec]

_WILDCARDS = ("", "*", "x", "X")
_FULL_VERSION = re.compile(r"^\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$")
_HYPHEN = re.compile(r"^\s*([0-9A-Za-z\.\-\+]+)\s+-\s+([0-9A-Za-z\.\-\+]+)\s*$")


def _normalize_spec(spec_str: str) -> str:
    """Normalize npm range syntax (hyphen, x-ranges) into SimpleSpec-compatible form."""
    s = spec_str.strip()

    # Hyphen ranges: "1.2.3 - 1.4.5" => ">=1.2.3,<=1.4.5"
    m = re.match(r'^\s*([0-9A-Za-z\.\-\+]+)\s*-\s*([0-9A-Za-z\.\-\+]+)\s*$', s)
    if m:
        left, right = m.group(1), m.group(2)
        return f">={left},<={right}"

    # x-ranges: 1.2.x or 1.x or 1.* -> comparator pairs
    s2 = s.replace('*', 'x').lower()
    m = re.match(r'^\s*(\d+)\.(\d+)\.x\s*$', s2)
    if m:
        major, minor = int(m.group(1)), int(m.group(2))
        return f">={major}.{minor}.0,<{major}.{minor + 1}.0"

    m = re.match(r'^\s*(\d+)(?:\.x)?\s*$', s2)
    if m:
        major = int(m.group(1))
        return f">={major}.0.0,<{major + 1}.0.0"

    return spec_str


def _clean(range_: str) -> str:
    expression = range_.strip()
    if expression in _WILDCARDS:
        return "*"
    # Loose leading "=" / "v" on a bare version ("v1.2.3", "=1.2.3")
    if re.match(r"^[=v]+\d", expression):
        expression = expression.lstrip("=v")
    return expression


def parse_range(range_: str) -> Optional[Spec]:
    """Parse an npm range, or return None when it is not a range at all.

    Dist-tags (``latest``, ``next``), git URLs and tarball URLs are not
    ranges and give None.
    """
    if not isinstance(range_, str):
        return None
    expression = _clean(range_)
    try:
        return semantic_version.NpmSpec(expression)
    except ValueError:
        try:
            return semantic_version.SimpleSpec(_normalize_spec(expression))
        except ValueError:
            return None


def parse_version(version: str) -> Optional[semantic_version.Version]:
    """Parse a concrete version, None if it is not strict semver."""
    if not isinstance(version, str):
        return None
    try:
        return semantic_version.Version(version.strip())
    except ValueError:
        return None


def valid(version: str) -> bool:
    """True when ``version`` is a valid concrete semver version."""
    return parse_version(version) is not None


def valid_range(range_: str) -> bool:
    """True when ``range_`` parses as an npm range."""
    return parse_range(range_) is not None


def _parse_all(versions: Iterable[str]) -> Dict[semantic_version.Version, str]:
    parsed: Dict[semantic_version.Version, str] = {}
    for raw in versions:
        ver = parse_version(raw)
        if ver is not None:
            parsed.setdefault(ver, raw)
    return parsed


def max_satisfying(versions: Iterable[str], range_: str) -> Optional[str]:
    """Return the highest version in ``versions`` that satisfies ``range_``.

    Invalid versions are skipped. The returned string is the one found in
    ``versions``, not a re-rendered copy.
    """
    spec = parse_range(range_)
    if spec is None:
        return None
    parsed = _parse_all(versions)
    best = spec.select(parsed.keys())
    if best is None:
        return None
    return parsed[best]


def latest(versions: Iterable[str]) -> str:
    """Highest valid version in ``versions``, or an empty string."""
    parsed = _parse_all(versions)
    if not parsed:
        return ""
    return parsed[max(parsed)]


def eq(left: str, right: str) -> bool:
    """True when two ranges denote the same constraint.

    Raises:
        ValueError: if either side is not a parseable range.
    """
    left_spec, right_spec = parse_range(left), parse_range(right)
    if left_spec is None or right_spec is None:
        raise ValueError(f"Invalid semver range: {left!r} / {right!r}")
    if _clean(left) == _clean(right):
        return True
    return left_spec == right_spec


def is_pinned(range_: str) -> bool:
    """Whether ``range_`` locks a dependency instead of letting it float upward.

    Wildcards and ``latest`` float. So does any range whose first comparator
    set opens with a lower bound: caret, tilde, ``>``/``>=``, hyphen ranges,
    x-ranges and partial versions. Exact versions and ``<``/``<=`` ranges are
    pinned, as is anything that is not a range (git URLs, other tags).
    """
    if not isinstance(range_, str):
        return True
    expression = range_.strip()
    if expression in _WILDCARDS or expression == "latest":
        return False
    if parse_range(expression) is None:
        return True

    first = expression.split("||")[0].strip()
    if not first or first in _WILDCARDS:
        return False
    if _HYPHEN.match(first):
        return False
    token = first.split()[0]
    if token[0] in "^~>":
        return False
    if token[0] == "<":
        return True
    return bool(_FULL_VERSION.match(token.lstrip("=v")))


class Version:
    """A concrete version number that compares against plain strings.

    Comparisons raise ``ValueError`` when either side is not strict semver.
    """

    def __init__(self, number: str):
        self.number = number

    def _compare(self, other: str) -> int:
        left, right = parse_version(self.number), parse_version(str(other))
        if left is None or right is None:
            raise ValueError(f"Invalid semver version: {self.number!r} / {other!r}")
        return (left > right) - (left < right)

    def gt(self, other: str) -> bool:
        """True when this version is greater than ``other``."""
        return self._compare(other) > 0

    def lt(self, other: str) -> bool:
        """True when this version is lower than ``other``."""
        return self._compare(other) < 0

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Version):
            return self.number == other.number
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.number)

    def __str__(self) -> str:
        return self.number

    def __repr__(self) -> str:
        return f"Version({self.number!r})"
