import textwrap

import pytest

import errors
import organizations

ORGANIZATION_YML = textwrap.dedent(
    """\
    AWSTemplateFormatVersion: '2010-09-09-OC'
    Organization:
      ManagementAccount:
        Type: OC::ORG::MasterAccount
        Properties:
          AccountName: Management
          AccountId: '000000000001'
          RootEmail: root@example.com
          Alias: !Sub '${AWS::AccountId}-management'
      ProductionOU:
        Type: OC::ORG::OrganizationalUnit
        Properties:
          OrganizationalUnitName: production
          Accounts:
            - !Ref Prod
      Prod:
        Type: OC::ORG::Account
        Properties:
          AccountName: Production
          AccountId: '111111111111'
          RootEmail: prod@example.com
      OrganizationRoot:
        Type: OC::ORG::OrganizationRoot
        Properties:
          ServiceControlPolicies: !GetAtt Policies.Arn
    """
)


@pytest.fixture
def organization_file(tmp_path):
    path = tmp_path / "organization.yml"
    path.write_text(ORGANIZATION_YML)
    return path


def test_lists_accounts_in_document_order(organization_file):
    accounts = organizations.list_orgformation_accounts(organization_file)
    assert [a.logical_id for a in accounts] == ["ManagementAccount", "Prod"]
    assert [a.account_id for a in accounts] == ["000000000001", "111111111111"]
    assert accounts[1].account_name == "Production"
    assert accounts[1].root_email == "prod@example.com"


def test_custom_tags_are_kept_as_mappings(organization_file):
    document = organizations.load_organization(organization_file)
    ou = document["Organization"]["ProductionOU"]
    assert ou["Properties"]["Accounts"] == [{"!Ref": "Prod"}]
    assert document["Organization"]["OrganizationRoot"]["Properties"]["ServiceControlPolicies"] == {"!GetAtt": "Policies.Arn"}


def test_unquoted_account_id_keeps_leading_zeros(tmp_path):
    path = tmp_path / "organization.yml"
    path.write_text(
        "Organization:\n"
        "  Dev:\n"
        "    Type: OC::ORG::Account\n"
        "    Properties:\n"
        "      AccountName: Dev\n"
        "      AccountId: 98765432109\n"
        "      RootEmail: dev@example.com\n"
    )
    assert organizations.list_orgformation_accounts(path)[0].account_id == "098765432109"


def test_missing_file_raises_not_found(tmp_path):
    with pytest.raises(errors.NotFound):
        organizations.list_orgformation_accounts(tmp_path / "missing.yml")


def test_file_without_organization_section(tmp_path):
    path = tmp_path / "organization.yml"
    path.write_text("AWSTemplateFormatVersion: '2010-09-09-OC'\n")
    with pytest.raises(errors.ConfigurationError, match="no Organization section"):
        organizations.list_orgformation_accounts(path)


def test_duplicated_account_id_is_rejected(tmp_path):
    path = tmp_path / "organization.yml"
    path.write_text(
        "Organization:\n"
        "  A:\n"
        "    Type: OC::ORG::Account\n"
        "    Properties: {AccountName: A, AccountId: '111111111111'}\n"
        "  B:\n"
        "    Type: OC::ORG::Account\n"
        "    Properties: {AccountName: B, AccountId: '111111111111'}\n"
    )
    with pytest.raises(errors.ConfigurationError, match="declared twice"):
        organizations.list_orgformation_accounts(path)


def test_incomplete_account_is_rejected(tmp_path):
    path = tmp_path / "organization.yml"
    path.write_text("Organization:\n  A:\n    Type: OC::ORG::Account\n    Properties: {AccountName: A}\n")
    with pytest.raises(errors.ConfigurationError, match="incomplete"):
        organizations.list_orgformation_accounts(path)
