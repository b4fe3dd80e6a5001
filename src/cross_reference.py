"""Lookups that turn an assignment's foreign keys into readable logical names."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Generic, Iterable, Optional, TypeVar, Union

import config
import errors
from entities.aws import Account, Assignment, Group, PermissionSet
from registry import Registry

logger = config.get_logger(service="cross_reference")

T = TypeVar("T")


class _Unresolved:
    """Result of a lookup that missed. Renders as an empty logical id segment."""

    _instance: Optional[_Unresolved] = None

    def __new__(cls) -> _Unresolved:  # noqa: PYI034
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:  # noqa: ANN101
        return False

    def __repr__(self) -> str:  # noqa: ANN101
        return "UNRESOLVED"


UNRESOLVED = _Unresolved()

Lookup = Union[T, _Unresolved]


@dataclass(frozen=True)
class Index(Generic[T]):
    entries: Dict[str, T] = field(default_factory=dict)

    def get(self, key: str) -> Lookup[T]:  # noqa: ANN101
        return self.entries.get(key, UNRESOLVED)

    def __contains__(self, key: object) -> bool:  # noqa: ANN101
        return key in self.entries

    def __len__(self) -> int:  # noqa: ANN101
        return len(self.entries)


def index_by(items: Iterable[T], key: str) -> Index[T]:
    # A later duplicate replaces an earlier one.
    return Index({getattr(item, key): item for item in items})


@dataclass(frozen=True)
class CrossReference:
    groups: Index[Group]
    permission_sets: Index[PermissionSet]
    accounts: Index[Account]

    @staticmethod
    def from_registry(registry: Registry) -> CrossReference:
        return CrossReference.build(registry.groups, registry.permission_sets, registry.accounts)

    @staticmethod
    def build(
        groups: Iterable[Group],
        permission_sets: Iterable[PermissionSet],
        accounts: Iterable[Account],
    ) -> CrossReference:
        return CrossReference(
            groups=index_by(groups, "group_id"),
            permission_sets=index_by(permission_sets, "permission_set_arn"),
            accounts=index_by(accounts, "account_id"),
        )

    def group_of(self, assignment: Assignment) -> Lookup[Group]:  # noqa: ANN101
        return self.groups.get(assignment.principal_id)

    def permission_set_of(self, assignment: Assignment) -> Lookup[PermissionSet]:  # noqa: ANN101
        return self.permission_sets.get(assignment.permission_set_arn)

    def account_of(self, assignment: Assignment) -> Lookup[Account]:  # noqa: ANN101
        return self.accounts.get(assignment.account_id)

    def unresolved_references(self, assignment: Assignment) -> list[str]:  # noqa: ANN101
        missing = []
        if not self.group_of(assignment):
            missing.append(f"group {assignment.principal_id}")
        if not self.permission_set_of(assignment):
            missing.append(f"permission set {assignment.permission_set_arn}")
        if not self.account_of(assignment):
            missing.append(f"account {assignment.account_id}")
        return missing

    def validate(self, assignments: Iterable[Assignment]) -> None:  # noqa: ANN101
        """Raise ResolutionError listing every assignment that points outside the registry."""
        problems = []
        for assignment in assignments:
            if missing := self.unresolved_references(assignment):
                problems.append(
                    f"{assignment.principal_id}/{assignment.permission_set_arn}/{assignment.account_id} "
                    f"references unknown {', '.join(missing)}"
                )
        if problems:
            logger.error("Unresolved assignment references", extra={"problems": problems})
            raise errors.ResolutionError(
                f"{len(problems)} assignment(s) reference resources missing from the registry",
                reason="; ".join(problems),
            )


def group_logical_id(group: Lookup[Group]) -> str:
    return f"{group.display_name if group else ''}Group"


def permission_set_logical_id(permission_set: Lookup[PermissionSet]) -> str:
    return f"{permission_set.name if permission_set else ''}PermissionSet"


def assignment_logical_id(xref: CrossReference, assignment: Assignment) -> str:
    account = xref.account_of(assignment)
    return (
        f"{group_logical_id(xref.group_of(assignment))}To"
        f"{permission_set_logical_id(xref.permission_set_of(assignment))}To"
        f"{account.logical_id if account else ''}"
    )
