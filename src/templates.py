"""OrgFormation task and template files written around the import.

Scalars are rendered with the tojson filter. JSON strings are valid YAML, so
policy documents and names with special characters survive unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from jinja2 import Environment, StrictUndefined, TemplateError

import config
import errors
from cross_reference import CrossReference, assignment_logical_id, group_logical_id, permission_set_logical_id
from registry import Registry

logger = config.get_logger(service="templates")

BOOTSTRAP_GROUP_DESCRIPTION = "To be removed"

ORGANIZATION_TASKS_TEMPLATE = """\
{% if include_organization_update %}
OrganizationUpdate:
  Type: update-organization
  Template: ./organization.yml

{% endif %}
{{ stack_name }}:
  Type: update-stacks
  Template: {{ sso_template | tojson }}
  StackName: {{ stack_name | tojson }}
{% if region %}
  DefaultOrganizationBindingRegion: {{ region | tojson }}
{% endif %}
  DefaultOrganizationBinding:
    IncludeMasterAccount: true
{% if include_organization_update %}
  DependsOn: OrganizationUpdate
{% endif %}
"""

SSO_ASSIGNMENTS_TEMPLATE = """\
AWSTemplateFormatVersion: '2010-09-09-OC'
Description: Manage SSO Assignments

Parameters:
  IdentityStoreId:
    Type: String
    Default: {{ identity_store_id | tojson }}
  ManagingInstanceArn:
    Type: String
    Default: {{ managing_instance_arn | tojson }}

Resources:
{% for group in groups %}
  {{ group.logical_id }}:
    Type: AWS::IdentityStore::Group
{% if group.retain %}
    DeletionPolicy: Retain
{% endif %}
    Properties:
      DisplayName: {{ group.display_name | tojson }}
{% if group.description %}
      Description: {{ group.description | tojson }}
{% endif %}
      IdentityStoreId: !Ref IdentityStoreId
{% endfor %}
{% for ps in permission_sets %}
  {{ ps.logical_id }}:
    Type: AWS::SSO::PermissionSet
    DeletionPolicy: Retain
    Properties:
      Name: {{ ps.name | tojson }}
{% if ps.description %}
      Description: {{ ps.description | tojson }}
{% endif %}
      InstanceArn: !Ref ManagingInstanceArn
{% if ps.inline_policy %}
      InlinePolicy: {{ ps.inline_policy | tojson }}
{% endif %}
{% if ps.managed_policies %}
      ManagedPolicies: {{ ps.managed_policies | list | tojson }}
{% endif %}
{% if ps.session_duration %}
      SessionDuration: {{ ps.session_duration | tojson }}
{% endif %}
{% if ps.relay_state_type %}
      RelayStateType: {{ ps.relay_state_type | tojson }}
{% endif %}
{% endfor %}
{% for assignment in assignments %}
  {{ assignment.logical_id }}:
    Type: AWS::SSO::Assignment
    DeletionPolicy: Retain
    Properties:
      InstanceArn: !Ref ManagingInstanceArn
      PermissionSetArn: !GetAtt {{ assignment.permission_set_logical_id }}.PermissionSetArn
      PrincipalId: !GetAtt {{ assignment.group_logical_id }}.GroupId
      PrincipalType: {{ assignment.principal_type | tojson }}
      TargetId: !Ref {{ assignment.account_logical_id }}
      TargetType: AWS_ACCOUNT
{% endfor %}
"""

_environment = Environment(
    autoescape=False,  # noqa: S701
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
)


@dataclass(frozen=True)
class GroupContext:
    logical_id: str
    display_name: str
    description: Optional[str] = None
    retain: bool = True


@dataclass(frozen=True)
class PermissionSetContext:
    logical_id: str
    name: str
    description: Optional[str] = None
    inline_policy: Optional[str] = None
    managed_policies: tuple[str, ...] = field(default_factory=tuple)
    session_duration: Optional[str] = None
    relay_state_type: Optional[str] = None


@dataclass(frozen=True)
class AssignmentContext:
    logical_id: str
    group_logical_id: str
    permission_set_logical_id: str
    account_logical_id: str
    principal_type: str


def render(source: str, **context: object) -> str:
    try:
        return _environment.from_string(source).render(**context)
    except TemplateError as e:
        logger.error("Template rendering failed", extra={"error": str(e)})
        raise


def render_organization_tasks(stack_name: str, sso_template: str, include_organization_update: bool, region: Optional[str] = None) -> str:
    return render(
        ORGANIZATION_TASKS_TEMPLATE,
        stack_name=stack_name,
        sso_template=sso_template,
        include_organization_update=include_organization_update,
        region=region,
    )


def render_bootstrap_sso_assignments(identity_store_id: str, managing_instance_arn: str, temp_group_name: str) -> str:
    """Template holding only the temporary group, deployed to make sure the stack exists before the import."""
    bootstrap_group = GroupContext(
        logical_id=f"{temp_group_name}Group",
        display_name=temp_group_name,
        description=BOOTSTRAP_GROUP_DESCRIPTION,
        retain=False,
    )
    return render(
        SSO_ASSIGNMENTS_TEMPLATE,
        identity_store_id=identity_store_id,
        managing_instance_arn=managing_instance_arn,
        groups=[bootstrap_group],
        permission_sets=[],
        assignments=[],
    )


def render_final_sso_assignments(registry: Registry, xref: Optional[CrossReference] = None) -> str:
    """Template for the imported resources. The bootstrap group is left out so the next deploy removes it."""
    xref = xref or CrossReference.from_registry(registry)
    groups = [
        GroupContext(logical_id=group_logical_id(group), display_name=group.display_name, description=group.description)
        for group in registry.groups
    ]
    permission_sets = [
        PermissionSetContext(
            logical_id=permission_set_logical_id(ps),
            name=ps.name,
            description=ps.description,
            inline_policy=ps.inline_policy,
            managed_policies=ps.managed_policies,
            session_duration=ps.session_duration,
            relay_state_type=ps.relay_state_type,
        )
        for ps in registry.permission_sets
    ]
    assignments = []
    for assignment in registry.assignments:
        account = xref.account_of(assignment)
        if not account:
            raise errors.ResolutionError(f"Account {assignment.account_id} is not in the organization file")
        assignments.append(
            AssignmentContext(
                logical_id=assignment_logical_id(xref, assignment),
                group_logical_id=group_logical_id(xref.group_of(assignment)),
                permission_set_logical_id=permission_set_logical_id(xref.permission_set_of(assignment)),
                account_logical_id=account.logical_id,
                principal_type=assignment.principal_type,
            )
        )
    return render(
        SSO_ASSIGNMENTS_TEMPLATE,
        identity_store_id=registry.identity_store_id,
        managing_instance_arn=registry.instance_arn,
        groups=groups,
        permission_sets=permission_sets,
        assignments=assignments,
    )


def write(path: str | Path, content: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    logger.info("Created file", extra={"path": str(path)})
    return path
