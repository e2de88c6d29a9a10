from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union


SEPARATOR = "."


class InvalidDepartmentPath(ValueError):
    pass


@dataclass(frozen=True, order=True)
class DepartmentPath:
    """
    Dot-separated position in the organizational tree, e.g. "Engineering.Backend".

    Paths are case-sensitive and never contain empty segments, so
    "Engineering" is an ancestor of "Engineering.Backend" but not of
    "EngineeringTeam".
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise InvalidDepartmentPath("Department path must be a string")
        if not self.value:
            raise InvalidDepartmentPath("Department path must not be empty")
        if any(not segment for segment in self.value.split(SEPARATOR)):
            raise InvalidDepartmentPath(f"Department path has an empty segment: {self.value!r}")

    @classmethod
    def parse(cls, raw: "PathLike") -> "DepartmentPath":
        if isinstance(raw, DepartmentPath):
            return raw
        return cls(raw)

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(self.value.split(SEPARATOR))

    @property
    def depth(self) -> int:
        return len(self.segments)

    @property
    def parent(self) -> "DepartmentPath | None":
        if self.depth == 1:
            return None
        return DepartmentPath(self.value.rsplit(SEPARATOR, 1)[0])

    def is_ancestor_or_self_of(self, other: "DepartmentPath") -> bool:
        return other.value == self.value or other.value.startswith(self.value + SEPARATOR)

    def __str__(self) -> str:
        return self.value


PathLike = Union[DepartmentPath, str]


def is_descendant_or_self(ancestor: PathLike, candidate: PathLike) -> bool:
    return DepartmentPath.parse(ancestor).is_ancestor_or_self_of(DepartmentPath.parse(candidate))


def filter_to_subtree(root: PathLike, candidates: Iterable[PathLike]) -> list[DepartmentPath]:
    root_path = DepartmentPath.parse(root)
    out: list[DepartmentPath] = []
    for candidate in candidates:
        path = DepartmentPath.parse(candidate)
        if root_path.is_ancestor_or_self_of(path):
            out.append(path)
    return out


def within_any(candidate: PathLike, roots: Iterable[PathLike]) -> bool:
    path = DepartmentPath.parse(candidate)
    return any(DepartmentPath.parse(root).is_ancestor_or_self_of(path) for root in roots)


def parse_optional(raw: str | None) -> DepartmentPath | None:
    """Lenient parse for stored values: blank or malformed paths become None."""
    if raw is None:
        return None
    try:
        return DepartmentPath(raw.strip())
    except InvalidDepartmentPath:
        return None
