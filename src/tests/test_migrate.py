from unittest.mock import MagicMock, patch

import pytest
import yaml
from botocore.exceptions import ClientError

import config
import errors
import migrate
import organizations

from .fakes import stub_paginators

INSTANCE_ARN = "arn:aws:sso:::instance/ssoins-1111111111111111"

ORGANIZATION_YML = """\
Organization:
  Prod:
    Type: OC::ORG::Account
    Properties:
      AccountName: Production
      AccountId: '111111111111'
      RootEmail: prod@example.com
"""


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "organization.yml").write_text(ORGANIZATION_YML)
    return tmp_path


@pytest.fixture
def cfg():
    return config.Config(poll_interval_seconds=0)


@pytest.fixture
def tool():
    tool = MagicMock()
    tool.version.return_value = "1.0.0"
    return tool


@pytest.fixture
def listings():
    """Pages served by the identity store and assignment paginators, tests may replace them."""
    return {
        "list_groups": [
            {
                "Groups": [
                    {"GroupId": "g1", "DisplayName": "Admins"},
                    {"GroupId": "tmp", "DisplayName": "OrgFormationSsoImportTemp", "Description": "To be removed"},
                ]
            }
        ],
        "list_account_assignments": [
            {"AccountAssignments": [{"AccountId": "111111111111", "PermissionSetArn": "ps1", "PrincipalType": "GROUP", "PrincipalId": "g1"}]}
        ],
    }


@pytest.fixture
def clients(mock_cloudformation_client, listings):
    sso_admin = MagicMock()
    stub_paginators(
        sso_admin,
        {
            "list_instances": [{"Instances": [{"InstanceArn": INSTANCE_ARN, "IdentityStoreId": "d-1"}]}],
            "list_permission_sets": [{"PermissionSets": ["ps1"]}],
            "list_managed_policies_in_permission_set": [{"AttachedManagedPolicies": []}],
            "list_account_assignments": lambda **params: listings["list_account_assignments"],
        },
    )
    sso_admin.describe_permission_set.return_value = {"PermissionSet": {"PermissionSetArn": "ps1", "Name": "AdminAccess"}}
    sso_admin.get_inline_policy_for_permission_set.return_value = {"InlinePolicy": ""}

    identity_store = stub_paginators(MagicMock(), {"list_groups": lambda **params: listings["list_groups"]})

    sts = MagicMock()
    sts.get_caller_identity.return_value = {"Account": "000000000001", "UserId": "AIDA", "Arn": "arn:aws:iam::000000000001:user/me"}

    return migrate.AwsClients(
        sts=sts,
        sso_admin=sso_admin,
        identity_store=identity_store,
        cloudformation=mock_cloudformation_client,
        region="us-east-1",
    )


def test_run_migration(workdir, cfg, clients, tool, no_sleep):
    result = migrate.run_migration(cfg, clients, tool, sleep=no_sleep)

    assert result.model.logical_ids == ["AdminsGroup", "AdminAccessPermissionSet", "AdminsGroupToAdminAccessPermissionSetToProd"]
    assert result.registry.bootstrap_group.group_id == "tmp"
    clients.cloudformation.create_change_set.assert_called_once()
    clients.cloudformation.execute_change_set.assert_called_once()

    assert [c.args for c in tool.perform_tasks.call_args_list] == [
        (".orgformation-sso-import/organization-tasks.yml", "organization.yml"),
        ("organization-tasks.yml", "organization.yml"),
    ]
    assert not (workdir / ".orgformation-sso-import").exists()

    final_template = yaml.load((workdir / "templates" / "sso-assignments.yml").read_text(), Loader=organizations.OrgFormationLoader)  # noqa: S506
    assert "OrgFormationSsoImportTempGroup" not in final_template["Resources"]
    assert set(final_template["Resources"]) == set(result.model.logical_ids)

    tasks = yaml.safe_load((workdir / "organization-tasks.yml").read_text())
    assert tasks["SsoAssignments"]["Template"] == "./templates/sso-assignments.yml"
    assert tasks["SsoAssignments"]["DefaultOrganizationBindingRegion"] == "us-east-1"


def test_bootstrap_files_are_deployed_before_discovery(workdir, cfg, clients, tool, no_sleep):
    def check_bootstrap(task_file, organization_file):
        if task_file.startswith(".orgformation-sso-import"):
            bootstrap = yaml.load((workdir / ".orgformation-sso-import" / "sso-assignments.yml").read_text(), Loader=organizations.OrgFormationLoader)  # noqa: S506
            assert list(bootstrap["Resources"]) == ["OrgFormationSsoImportTempGroup"]
            clients.identity_store.get_paginator.assert_not_called()
        return ""

    tool.perform_tasks.side_effect = check_bootstrap
    migrate.run_migration(cfg, clients, tool, sleep=no_sleep)


def test_resolution_error_stops_before_the_change_set(workdir, cfg, clients, listings, tool, no_sleep):
    listings["list_account_assignments"] = [
        {"AccountAssignments": [{"AccountId": "111111111111", "PermissionSetArn": "ps1", "PrincipalType": "GROUP", "PrincipalId": "deleted"}]}
    ]
    with pytest.raises(errors.ResolutionError):
        migrate.run_migration(cfg, clients, tool, sleep=no_sleep)
    clients.cloudformation.create_change_set.assert_not_called()
    assert tool.perform_tasks.call_count == 1


def test_access_denied_during_discovery_names_the_phase(workdir, cfg, clients, tool, no_sleep):
    def denied(**params):
        raise ClientError({"Error": {"Code": "AccessDeniedException", "Message": "denied"}}, "ListGroups")

    clients.identity_store.get_paginator("list_groups").paginate.side_effect = denied
    with pytest.raises(errors.MigrationError) as exc_info:
        migrate.run_migration(cfg, clients, tool, sleep=no_sleep)

    assert exc_info.value.phase is errors.Phase.Discovery
    assert "AccessDeniedException" in exc_info.value.reason
    clients.cloudformation.create_change_set.assert_not_called()


def test_duplicate_group_names_stop_before_the_import_model(workdir, cfg, clients, listings, tool, no_sleep):
    listings["list_groups"] = [
        {"Groups": [{"GroupId": "g1", "DisplayName": "Admins"}], "NextToken": "t"},
        {"Groups": [{"GroupId": "g2", "DisplayName": "Admins"}]},
    ]
    with patch("migrate.import_model.build") as build, pytest.raises(errors.ConfigurationError) as exc_info:
        migrate.run_migration(cfg, clients, tool, sleep=no_sleep)

    assert exc_info.value.phase is errors.Phase.Discovery
    assert exc_info.value.reason == "duplicated: Admins"
    build.assert_not_called()
    clients.cloudformation.create_change_set.assert_not_called()


def test_missing_tool_stops_before_any_change(workdir, cfg, clients, tool, no_sleep):
    tool.version.side_effect = errors.CollaboratorUnavailable("org-formation CLI not found")
    with pytest.raises(errors.CollaboratorUnavailable):
        migrate.run_migration(cfg, clients, tool, sleep=no_sleep)
    tool.perform_tasks.assert_not_called()
    clients.sso_admin.get_paginator.assert_not_called()


def test_import_failure_skips_the_final_deploy(workdir, cfg, clients, tool, no_sleep):
    clients.cloudformation.describe_stacks.return_value = {
        "Stacks": [{"StackStatus": "IMPORT_ROLLBACK_COMPLETE", "StackStatusReason": "boom"}]
    }
    with pytest.raises(errors.ChangeSetFailed):
        migrate.run_migration(cfg, clients, tool, sleep=no_sleep)
    assert tool.perform_tasks.call_count == 1
    assert not (workdir / "organization-tasks.yml").exists()


def test_aws_clients_from_session():
    session = MagicMock()
    session.region_name = "eu-central-1"
    clients = migrate.AwsClients.from_session(session)
    assert [c.args[0] for c in session.client.call_args_list] == ["sts", "sso-admin", "identitystore", "cloudformation"]
    assert clients.region == "eu-central-1"
