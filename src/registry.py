from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Tuple

import config
import errors
import sso
from entities import BaseModel
from entities.aws import Account, Assignment, Group, PermissionSet

if TYPE_CHECKING:
    from mypy_boto3_identitystore import IdentityStoreClient
    from mypy_boto3_sso_admin import SSOAdminClient

logger = config.get_logger(service="registry")


class Registry(BaseModel):
    """Snapshot of everything the import is built from. Fetched once per run."""

    identity_store_id: str
    instance_arn: str
    accounts: Tuple[Account, ...]
    groups: Tuple[Group, ...]
    permission_sets: Tuple[PermissionSet, ...]
    assignments: Tuple[Assignment, ...]
    bootstrap_group: Optional[Group] = None


def split_bootstrap_group(groups: Iterable[Group], temp_group_name: str) -> tuple[Optional[Group], list[Group]]:
    bootstrap_group = None
    real_groups = []
    for group in groups:
        if group.display_name == temp_group_name:
            bootstrap_group = group
        else:
            real_groups.append(group)
    return bootstrap_group, real_groups


def _check_unique(kind: str, keys: Iterable[str]) -> None:
    duplicates = sorted(key for key, count in Counter(keys).items() if count > 1)
    if duplicates:
        raise errors.ConfigurationError(
            f"{kind} must be unique",
            phase=errors.Phase.Discovery,
            reason=f"duplicated: {', '.join(duplicates)}",
        )


def validate(registry: Registry) -> Registry:
    _check_unique("Group display names", (group.display_name for group in registry.groups))
    _check_unique("Permission set names", (ps.name for ps in registry.permission_sets))
    _check_unique("Account logical ids", (account.logical_id for account in registry.accounts))
    return registry


def build(
    identity_store_id: str,
    instance_arn: str,
    accounts: Iterable[Account],
    groups: Iterable[Group],
    permission_sets: Iterable[PermissionSet],
    assignments: Iterable[Assignment],
    temp_group_name: str,
) -> Registry:
    bootstrap_group, real_groups = split_bootstrap_group(groups, temp_group_name)
    if bootstrap_group is None:
        logger.warning("Bootstrap group not found in the identity store", extra={"group_name": temp_group_name})
    return validate(
        Registry(
            identity_store_id=identity_store_id,
            instance_arn=instance_arn,
            accounts=tuple(accounts),
            groups=tuple(real_groups),
            permission_sets=tuple(permission_sets),
            assignments=tuple(assignments),
            bootstrap_group=bootstrap_group,
        )
    )


def discover(
    sso_client: SSOAdminClient,
    identity_store_client: IdentityStoreClient,
    identity_store_id: str,
    instance_arn: str,
    load_accounts: Callable[[], list[Account]],
    temp_group_name: str,
) -> Registry:
    accounts = load_accounts()
    logger.info("Loaded OrgFormation accounts", extra={"count": len(accounts)})

    groups = sso.list_groups(identity_store_client, identity_store_id)
    logger.info("Loaded groups", extra={"count": len(groups)})

    permission_sets = sso.list_permission_sets(sso_client, instance_arn)
    logger.info("Loaded permission sets", extra={"count": len(permission_sets)})

    assignments = sso.list_account_assignments(
        sso_client,
        instance_arn,
        [account.account_id for account in accounts],
        permission_sets,
    )
    logger.info("Loaded assignments", extra={"count": len(assignments)})

    registry = build(identity_store_id, instance_arn, accounts, groups, permission_sets, assignments, temp_group_name)
    logger.debug("Registry", extra={"registry": registry})
    return registry
