"""
Version tag resolution for fixture corpora.

Each immediate subdirectory of the tests root whose name is a semantic
version holds one recorded generation of fixtures. This module parses those
names, evaluates version constraint expressions against them, and returns the
selected generations in ascending precedence order.

Constraint grammar:
    ">=1.2.0, <2.0.0"       all comparisons in a group must hold
    "1.x || >=3.0.0-rc.1"   any group may hold
    "~1.2.3" "^0.4" "1.2 - 1.4.5" "1.2.*" "*"
"""

import os
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from semver import Version

from backcompat.exceptions import ConfigError, DuplicateVersionError
from backcompat.utils.logger import get_logger

logger = get_logger(__name__)

SemanticVersion = Version

_WILDCARDS = {"x", "X", "*"}
_VERSION_NAME_RE = re.compile(
    r"^v?(?P<core>\d+(?:\.\d+){0,2})(?P<rest>(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)$"
)
_COMPARISON_RE = re.compile(r"^(?P<op>>=|<=|!=|=>|=<|==|=|>|<|~>|~|\^)?\s*(?P<version>\S+)$")
_HYPHEN_RANGE_RE = re.compile(r"^(?P<low>\S+)\s+-\s+(?P<high>\S+)$")


def parse_version(name: str) -> Optional[Version]:
    """
    Parse a directory name as a semantic version.

    Accepts an optional leading "v" and missing minor/patch components
    ("1.2" is 1.2.0), the same leniency fixture directories have always had.

    Args:
        name: Directory name

    Returns:
        Parsed version, or None when the name is not a version
    """
    match = _VERSION_NAME_RE.match(name.strip())
    if not match:
        return None

    components = match.group("core").split(".")
    components += ["0"] * (3 - len(components))
    try:
        return Version.parse(".".join(components) + match.group("rest"))
    except ValueError:
        return None


def _parse_partial(text: str) -> Tuple[List[Optional[int]], str]:
    """Split "1.2.x-rc.1" into ([1, 2, None], "-rc.1"); None marks a wildcard or missing part."""
    text = text.lstrip("vV")
    core, sep, suffix = text.partition("-")
    build_core, build_sep, _ = core.partition("+")
    if build_sep:
        core = build_core
        suffix = ""
    else:
        suffix = f"-{suffix}" if sep else ""

    parts = core.split(".")
    if not parts or len(parts) > 3:
        raise ConfigError(f"invalid version {text!r} in constraint")

    numbers: List[Optional[int]] = []
    for part in parts:
        if part in _WILDCARDS:
            numbers.append(None)
        elif part.isdigit():
            if None in numbers:
                raise ConfigError(f"invalid version {text!r} in constraint")
            numbers.append(int(part))
        else:
            raise ConfigError(f"invalid version {text!r} in constraint")
    numbers += [None] * (3 - len(numbers))
    return numbers, suffix


def _floor(numbers: List[Optional[int]], suffix: str = "") -> Version:
    major, minor, patch = (n or 0 for n in numbers)
    try:
        return Version.parse(f"{major}.{minor}.{patch}{suffix}")
    except ValueError as e:
        raise ConfigError(f"invalid pre-release in constraint: {suffix!r}") from e


def _ceiling(numbers: List[Optional[int]]) -> Optional[Version]:
    """Smallest version above every match of a wildcard version (None when unbounded)."""
    major, minor, patch = numbers
    if major is None:
        return None
    if minor is None:
        return Version(major + 1, 0, 0)
    if patch is None:
        return Version(major, minor + 1, 0)
    return Version(major, minor, patch + 1)


Predicate = Callable[[Version], bool]


def _range(low: Optional[Version], high: Optional[Version]) -> Predicate:
    def check(version: Version) -> bool:
        if low is not None and version < low:
            return False
        if high is not None and version >= high:
            return False
        return True

    return check


def _compile_comparison(text: str) -> Predicate:
    match = _COMPARISON_RE.match(text)
    if not match:
        raise ConfigError(f"invalid comparison {text!r}")
    op = match.group("op") or "="
    op = {"=>": ">=", "=<": "<=", "==": "=", "~>": "~"}.get(op, op)
    numbers, suffix = _parse_partial(match.group("version"))
    has_wildcard = None in numbers
    floor = _floor(numbers, suffix)
    ceiling = _ceiling(numbers)

    if op == "=":
        if numbers[0] is None:
            return lambda version: True
        if has_wildcard:
            return _range(floor, ceiling)
        return lambda version: version.compare(floor) == 0
    if op == "!=":
        if has_wildcard:
            inside = _range(floor, ceiling)
            return lambda version: not inside(version)
        return lambda version: version.compare(floor) != 0
    if op == ">":
        if has_wildcard:
            return _range(ceiling, None) if ceiling is not None else (lambda version: False)
        return lambda version: version > floor
    if op == ">=":
        return lambda version: version >= floor
    if op == "<":
        return lambda version: version < floor
    if op == "<=":
        if has_wildcard:
            return _range(None, ceiling)
        return lambda version: version <= floor
    if op == "~":
        major, minor, _ = numbers
        if major is None:
            return _range(None, None)
        if minor is None:
            return _range(floor, Version(major + 1, 0, 0))
        return _range(floor, Version(major, minor + 1, 0))
    if op == "^":
        major, minor, patch = numbers
        if major is None:
            return _range(None, None)
        if major > 0 or minor is None:
            return _range(floor, Version(major + 1, 0, 0))
        if minor > 0 or patch is None:
            return _range(floor, Version(0, minor + 1, 0))
        return _range(floor, Version(0, 0, patch + 1))
    raise ConfigError(f"unsupported operator {op!r}")


def _split_and_group(group: str) -> List[str]:
    """Split "a, b c" into comparisons, keeping an operator glued to its version."""
    tokens = [token for token in re.split(r"[\s,]+", group.strip()) if token]
    comparisons: List[str] = []
    pending_op = ""
    for token in tokens:
        if re.fullmatch(r"(>=|<=|!=|=>|=<|==|=|>|<|~>|~|\^)", token):
            pending_op = token
            continue
        comparisons.append(pending_op + token)
        pending_op = ""
    if pending_op:
        raise ConfigError(f"dangling operator {pending_op!r} in {group!r}")
    return comparisons


class VersionConstraint:
    """
    Predicate over semantic versions, parsed from a constraint expression.

    The default constraint "*" accepts every version, pre-releases included.
    """

    def __init__(self, expression: str, groups: List[List[Predicate]]):
        self.expression = expression
        self._groups = groups

    @classmethod
    def parse(cls, expression: Optional[str]) -> "VersionConstraint":
        """
        Parse a constraint expression.

        Args:
            expression: Constraint text; None or blank means "*"

        Returns:
            VersionConstraint

        Raises:
            ConfigError: If the expression is not a valid constraint
        """
        text = (expression or "").strip() or "*"
        groups: List[List[Predicate]] = []
        for group in text.split("||"):
            group = group.strip()
            if not group:
                raise ConfigError(f"empty alternative in version constraint {text!r}")

            hyphen = _HYPHEN_RANGE_RE.match(group)
            if hyphen:
                low = _compile_comparison(">=" + hyphen.group("low"))
                high = _compile_comparison("<=" + hyphen.group("high"))
                groups.append([low, high])
                continue

            groups.append([_compile_comparison(part) for part in _split_and_group(group)])
        return cls(text, groups)

    @classmethod
    def any(cls) -> "VersionConstraint":
        return cls.parse("*")

    def allows(self, version: Version) -> bool:
        return any(all(check(version) for check in group) for group in self._groups)

    def __str__(self) -> str:
        return self.expression

    def __repr__(self) -> str:
        return f"VersionConstraint({self.expression!r})"


@dataclass(frozen=True)
class VersionDirectory:
    """A fixture generation on disk."""

    version: Version
    path: str

    @property
    def name(self) -> str:
        return os.path.basename(self.path)


class VersionResolver:
    """
    Discovers version directories under a tests root.
    """

    def __init__(self, tests_root: str):
        self.tests_root = tests_root

    def scan(self) -> List[VersionDirectory]:
        """
        Return every version directory, ascending.

        Raises:
            DuplicateVersionError: If two directories resolve to one version
        """
        if not os.path.isdir(self.tests_root):
            logger.info(
                "Tests root does not exist; no versions to test",
                operation="resolve_versions",
                context={"tests_root": self.tests_root},
            )
            return []

        found: Dict[Version, VersionDirectory] = {}
        for entry in sorted(os.listdir(self.tests_root)):
            path = os.path.join(self.tests_root, entry)
            if not os.path.isdir(path):
                continue
            version = parse_version(entry)
            if version is None:
                logger.debug(
                    "Skipping non-version directory",
                    operation="resolve_versions",
                    context={"directory": entry},
                )
                continue
            existing = found.get(version)
            if existing is not None:
                raise DuplicateVersionError(str(version), [existing.name, entry])
            found[version] = VersionDirectory(version=version, path=path)

        return sorted(found.values(), key=lambda directory: directory.version)

    def resolve(self, constraint: Optional[VersionConstraint] = None) -> List[VersionDirectory]:
        """
        Return the version directories allowed by *constraint*, ascending.

        An empty list is a valid result.
        """
        constraint = constraint or VersionConstraint.any()
        selected = [d for d in self.scan() if constraint.allows(d.version)]
        logger.info(
            f"Selected {len(selected)} version(s)",
            operation="resolve_versions",
            context={
                "constraint": str(constraint),
                "versions": [str(d.version) for d in selected],
            },
        )
        return selected
