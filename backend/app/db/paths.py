"""
Path layout of the resource tree.

    resources/{cours|td}/{year3|year4|year5}/{module}/{key}
    resources/seminar/{key}
    users/{key}
    user_roles/{backing_id}
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from app.core.exceptions import ValidationError


RESOURCES_ROOT = "resources"
USERS_ROOT = "users"
USER_ROLES_ROOT = "user_roles"

KIND_COURS = "cours"
KIND_TD = "td"
KIND_SEMINAR = "seminar"
RESOURCE_KINDS: Tuple[str, ...] = (KIND_COURS, KIND_TD)

YEARS: Tuple[str, ...] = ("year3", "year4", "year5")

# Student year labels as stored on user records
USER_YEARS: Tuple[str, ...] = ("3eme", "4eme", "5eme")
USER_YEAR_TO_PATH = dict(zip(USER_YEARS, YEARS))

PLACEHOLDER_KEY = "_placeholder"

_FORBIDDEN_SEGMENT_CHARS = set(".#$[]/")


def join_path(*segments: str) -> str:
    return "/".join(s.strip("/") for s in segments if s)


def split_path(path: str) -> Tuple[str, ...]:
    return tuple(s for s in path.strip("/").split("/") if s)


def is_valid_segment(value: Optional[str]) -> bool:
    return bool(value) and not _FORBIDDEN_SEGMENT_CHARS.intersection(value)


def _check_segment(value: str, field: str) -> None:
    if not value:
        raise ValidationError(f"{field} is required", field=field)
    if _FORBIDDEN_SEGMENT_CHARS.intersection(value):
        raise ValidationError(f"Invalid characters in {field}: {value!r}", field=field)


@dataclass(frozen=True)
class ResourcePath:
    """
    Typed address inside the resources tree.

    For kind cours/td the path may stop at the kind, year or module
    level; key addresses a single resource. Seminar paths carry no
    year or module.
    """
    kind: str
    year: Optional[str] = None
    module: Optional[str] = None
    key: Optional[str] = None

    def __post_init__(self):
        if self.kind == KIND_SEMINAR:
            if self.year is not None or self.module is not None:
                raise ValidationError("Seminar paths have no year or module", field="kind")
        elif self.kind in RESOURCE_KINDS:
            if self.year is not None and self.year not in YEARS:
                raise ValidationError(f"Unknown year: {self.year!r}", field="year")
            if self.module is not None:
                if self.year is None:
                    raise ValidationError("Module path requires a year", field="year")
                _check_segment(self.module, "module")
            if self.key is not None and self.module is None:
                raise ValidationError("Resource path requires a module", field="module")
        else:
            raise ValidationError(f"Unknown resource kind: {self.kind!r}", field="kind")

        if self.key is not None:
            _check_segment(self.key, "key")

    @classmethod
    def module_path(cls, kind: str, year: str, module: str) -> "ResourcePath":
        return cls(kind, year, module)

    @classmethod
    def seminar(cls, key: Optional[str] = None) -> "ResourcePath":
        return cls(KIND_SEMINAR, key=key)

    @property
    def is_seminar(self) -> bool:
        return self.kind == KIND_SEMINAR

    def segments(self) -> Tuple[str, ...]:
        parts = [RESOURCES_ROOT, self.kind]
        for part in (self.year, self.module, self.key):
            if part is not None:
                parts.append(part)
        return tuple(parts)

    def child(self, key: str) -> "ResourcePath":
        return ResourcePath(self.kind, self.year, self.module, key)

    def parent(self) -> "ResourcePath":
        if self.key is not None:
            return ResourcePath(self.kind, self.year, self.module)
        if self.module is not None:
            return ResourcePath(self.kind, self.year)
        if self.year is not None:
            return ResourcePath(self.kind)
        raise ValueError("Kind-level path has no parent inside the resources tree")

    def with_module(self, module: str) -> "ResourcePath":
        return ResourcePath(self.kind, self.year, module, self.key)

    def __str__(self) -> str:
        return "/".join(self.segments())


PathLike = Union[str, ResourcePath]


def to_path(path: PathLike) -> str:
    """Normalize a ResourcePath or slash-separated string to a tree path"""
    if isinstance(path, ResourcePath):
        return str(path)
    return "/".join(split_path(path))


def user_path(user_id: Optional[str] = None) -> str:
    return join_path(USERS_ROOT, user_id) if user_id else USERS_ROOT


def user_role_path(backing_id: str) -> str:
    return join_path(USER_ROLES_ROOT, backing_id)
