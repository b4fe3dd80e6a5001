import os
from unittest.mock import MagicMock

import boto3
import pytest

from entities.aws import Account, Assignment, Group, PermissionSet
from registry import Registry

from . import strategies


def pytest_sessionstart(session):  # noqa: ANN201, ARG001, ANN001
    mock_env = {
        "LOG_LEVEL": "DEBUG",
        "AWS_DEFAULT_REGION": "us-east-1",
        "SSO_IMPORT_POLL_INTERVAL_SECONDS": "0",
    }
    os.environ |= mock_env

    boto3.setup_default_session(region_name="us-east-1")


@pytest.fixture
def prod_account() -> Account:
    return Account(account_id="111", account_name="Production", root_email="prod@example.com", logical_id="Prod")


@pytest.fixture
def admins_group() -> Group:
    return Group(group_id="g1", display_name="Admins", description="Administrators")


@pytest.fixture
def admin_access() -> PermissionSet:
    return PermissionSet(
        permission_set_arn="ps1",
        name="AdminAccess",
        description="Full access",
        session_duration="PT8H",
        managed_policies=("arn:aws:iam::aws:policy/AdministratorAccess",),
    )


@pytest.fixture
def bootstrap_group() -> Group:
    return Group(group_id="tmp", display_name="OrgFormationSsoImportTemp", description="To be removed")


@pytest.fixture
def scenario_registry(prod_account, admins_group, admin_access, bootstrap_group) -> Registry:
    """1 account, 1 group, 1 permission set, 1 assignment binding them together."""
    return Registry(
        identity_store_id=strategies.IDENTITY_STORE_ID,
        instance_arn=strategies.INSTANCE_ARN,
        accounts=(prod_account,),
        groups=(admins_group,),
        permission_sets=(admin_access,),
        assignments=(Assignment(principal_id="g1", principal_type="GROUP", permission_set_arn="ps1", account_id="111"),),
        bootstrap_group=bootstrap_group,
    )


@pytest.fixture
def mock_cloudformation_client():
    client = MagicMock()
    client.create_change_set.return_value = {"Id": "changeset-id", "StackId": "stack-id"}
    client.execute_change_set.return_value = {}
    client.describe_change_set.return_value = {"Status": "CREATE_COMPLETE"}
    client.describe_stacks.return_value = {"Stacks": [{"StackName": "SsoAssignments", "StackStatus": "IMPORT_COMPLETE"}]}
    return client


@pytest.fixture
def no_sleep():
    return MagicMock()
