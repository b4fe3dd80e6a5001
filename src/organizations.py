from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

import config
import errors
from entities.aws import Account

logger = config.get_logger(service="organizations")

ACCOUNT_TYPES = frozenset({"OC::ORG::Account", "OC::ORG::MasterAccount"})


class OrgFormationLoader(yaml.SafeLoader):
    """SafeLoader that keeps OrgFormation tags (!Ref, !GetAtt, !Include ...) as {"!Tag": value}."""


def _construct_tagged(loader: OrgFormationLoader, tag_suffix: str, node: yaml.Node) -> dict:
    if isinstance(node, yaml.ScalarNode):
        value: Any = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)  # type: ignore # noqa: PGH003
    return {f"!{tag_suffix}": value}


OrgFormationLoader.add_multi_constructor("!", _construct_tagged)


def load_organization(path: str | Path) -> dict:
    path = Path(path)
    if not path.is_file():
        raise errors.NotFound(f"Organization file {path} not found", phase=errors.Phase.Discovery)
    with path.open(encoding="utf-8") as f:
        document = yaml.load(f, Loader=OrgFormationLoader)  # noqa: S506
    if not isinstance(document, dict) or not isinstance(document.get("Organization"), dict):
        raise errors.ConfigurationError(
            f"Organization file {path} has no Organization section",
            phase=errors.Phase.Discovery,
        )
    return document


def _account_id(value: Any) -> Any:
    # Unquoted account ids load as ints and lose their leading zeros.
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value:012d}"
    return value


def parse_account(logical_id: str, resource: dict) -> Account:
    properties = resource.get("Properties") or {}
    try:
        return Account.model_validate(
            {
                "AccountId": _account_id(properties.get("AccountId")),
                "AccountName": properties.get("AccountName"),
                "RootEmail": properties.get("RootEmail"),
                "LogicalId": logical_id,
            }
        )
    except ValidationError as e:
        raise errors.ConfigurationError(
            f"Account {logical_id} in the organization file is incomplete",
            phase=errors.Phase.Discovery,
            reason=str(e),
        ) from e


def list_orgformation_accounts(path: str | Path) -> list[Account]:
    """Accounts declared in an OrgFormation organization file, in document order.

    Organizational units and other organization resources are skipped. The mapping
    key of each account becomes its LogicalId.
    """
    organization = load_organization(path)["Organization"]
    accounts = [
        parse_account(logical_id, resource)
        for logical_id, resource in organization.items()
        if isinstance(resource, dict) and resource.get("Type") in ACCOUNT_TYPES
    ]

    seen: dict[str, str] = {}
    for account in accounts:
        if account.account_id in seen:
            raise errors.ConfigurationError(
                f"Account id {account.account_id} is declared twice",
                phase=errors.Phase.Discovery,
                reason=f"{seen[account.account_id]} and {account.logical_id}",
            )
        seen[account.account_id] = account.logical_id

    logger.info("Loaded accounts from organization file", extra={"path": str(path), "count": len(accounts)})
    logger.debug("Accounts", extra={"accounts": accounts})
    return accounts
