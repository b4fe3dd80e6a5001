"""Resources-to-import list and CloudFormation template for the IMPORT changeset.

Both artifacts are derived from the same registry snapshot and describe exactly
the same set of logical ids. The template additionally holds the bootstrap
group, which exists in the stack already and is not imported.
"""

from __future__ import annotations

import json
import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

import config
import errors
from cross_reference import CrossReference, assignment_logical_id, group_logical_id, permission_set_logical_id
from entities.aws import Assignment, Group, PermissionSet
from registry import Registry

logger = config.get_logger(service="import_model")

TEMPLATE_FORMAT_VERSION = "2010-09-09"
TEMPLATE_DESCRIPTION = "Manage SSO Assignments"
IDENTITY_STORE_ID_PARAMETER = "IdentityStoreId"
INSTANCE_ARN_PARAMETER = "ManagingInstanceArn"
RETAIN = "Retain"
TARGET_TYPE = "AWS_ACCOUNT"

LOGICAL_ID_PATTERN = re.compile(r"^[A-Za-z0-9]{1,255}$")


class ResourceType(str, Enum):
    Group = "AWS::IdentityStore::Group"
    PermissionSet = "AWS::SSO::PermissionSet"
    Assignment = "AWS::SSO::Assignment"


@dataclass(frozen=True)
class ImportResource:
    resource_type: ResourceType
    logical_id: str
    identifier: Tuple[Tuple[str, str], ...]

    def to_aws(self) -> dict:  # noqa: ANN101
        return {
            "ResourceType": self.resource_type.value,
            "LogicalResourceId": self.logical_id,
            "ResourceIdentifier": dict(self.identifier),
        }


@dataclass(frozen=True)
class TemplateResource:
    resource_type: ResourceType
    logical_id: str
    properties: Tuple[Tuple[str, Any], ...]
    deletion_policy: Optional[str] = RETAIN

    def to_aws(self) -> dict:  # noqa: ANN101
        resource: dict = {"Type": self.resource_type.value}
        if self.deletion_policy:
            resource["DeletionPolicy"] = self.deletion_policy
        resource["Properties"] = dict(self.properties)
        return resource


def ref(name: str) -> dict:
    return {"Ref": name}


def _present(**properties: Any) -> Tuple[Tuple[str, Any], ...]:
    # None and empty values are left out so the template matches the live resource on the next deploy.
    return tuple((key, value) for key, value in properties.items() if value not in (None, "", (), []))


def group_resource(registry: Registry, group: Group) -> ImportResource:
    return ImportResource(
        ResourceType.Group,
        group_logical_id(group),
        (("GroupId", group.group_id), ("IdentityStoreId", registry.identity_store_id)),
    )


def permission_set_resource(registry: Registry, permission_set: PermissionSet) -> ImportResource:
    return ImportResource(
        ResourceType.PermissionSet,
        permission_set_logical_id(permission_set),
        (("PermissionSetArn", permission_set.permission_set_arn), ("InstanceArn", registry.instance_arn)),
    )


def assignment_resource(registry: Registry, xref: CrossReference, assignment: Assignment) -> ImportResource:
    return ImportResource(
        ResourceType.Assignment,
        assignment_logical_id(xref, assignment),
        (
            ("InstanceArn", registry.instance_arn),
            ("TargetId", assignment.account_id),
            ("TargetType", TARGET_TYPE),
            ("PermissionSetArn", assignment.permission_set_arn),
            ("PrincipalType", assignment.principal_type),
            ("PrincipalId", assignment.principal_id),
        ),
    )


def build_import_resources(registry: Registry, xref: CrossReference) -> list[ImportResource]:
    """Groups first, then permission sets, then assignments. The bootstrap group is never imported."""
    groups = [group_resource(registry, group) for group in registry.groups]
    permission_sets = [permission_set_resource(registry, ps) for ps in registry.permission_sets]
    assignments = [assignment_resource(registry, xref, assignment) for assignment in registry.assignments]
    return groups + permission_sets + assignments


def group_template_resource(group: Group, deletion_policy: Optional[str] = RETAIN) -> TemplateResource:
    return TemplateResource(
        ResourceType.Group,
        group_logical_id(group),
        _present(
            Description=group.description,
            DisplayName=group.display_name,
            IdentityStoreId=ref(IDENTITY_STORE_ID_PARAMETER),
        ),
        deletion_policy,
    )


def permission_set_template_resource(permission_set: PermissionSet) -> TemplateResource:
    return TemplateResource(
        ResourceType.PermissionSet,
        permission_set_logical_id(permission_set),
        _present(
            Name=permission_set.name,
            Description=permission_set.description,
            InstanceArn=ref(INSTANCE_ARN_PARAMETER),
            InlinePolicy=permission_set.inline_policy,
            ManagedPolicies=list(permission_set.managed_policies),
            SessionDuration=permission_set.session_duration,
            RelayStateType=permission_set.relay_state_type,
        ),
    )


def assignment_template_resource(xref: CrossReference, assignment: Assignment) -> TemplateResource:
    return TemplateResource(
        ResourceType.Assignment,
        assignment_logical_id(xref, assignment),
        (
            ("InstanceArn", ref(INSTANCE_ARN_PARAMETER)),
            ("PermissionSetArn", assignment.permission_set_arn),
            ("PrincipalId", assignment.principal_id),
            ("PrincipalType", assignment.principal_type),
            ("TargetId", assignment.account_id),
            ("TargetType", TARGET_TYPE),
        ),
    )


def build_template_resources(registry: Registry, xref: CrossReference) -> list[TemplateResource]:
    bootstrap = [group_template_resource(registry.bootstrap_group, deletion_policy=None)] if registry.bootstrap_group else []
    groups = [group_template_resource(group) for group in registry.groups]
    permission_sets = [permission_set_template_resource(ps) for ps in registry.permission_sets]
    assignments = [assignment_template_resource(xref, assignment) for assignment in registry.assignments]
    return bootstrap + groups + permission_sets + assignments


def build_desired_state_template(registry: Registry, xref: CrossReference) -> dict:
    return {
        "AWSTemplateFormatVersion": TEMPLATE_FORMAT_VERSION,
        "Description": TEMPLATE_DESCRIPTION,
        "Parameters": {
            IDENTITY_STORE_ID_PARAMETER: {"Type": "String", "Default": registry.identity_store_id},
            INSTANCE_ARN_PARAMETER: {"Type": "String", "Default": registry.instance_arn},
        },
        "Resources": {resource.logical_id: resource.to_aws() for resource in build_template_resources(registry, xref)},
    }


@dataclass(frozen=True)
class ImportModel:
    resources_to_import: Tuple[ImportResource, ...]
    template: dict

    @property
    def logical_ids(self) -> list[str]:  # noqa: ANN101
        return [resource.logical_id for resource in self.resources_to_import]

    def resources_to_import_json(self) -> list[dict]:  # noqa: ANN101
        return [resource.to_aws() for resource in self.resources_to_import]

    def template_body(self) -> str:  # noqa: ANN101
        return json.dumps(self.template, indent=2)


def check_logical_ids(resources: list[ImportResource], template: dict) -> None:
    """The import list and the template must name the same resources, with the same types."""
    counts = Counter(resource.logical_id for resource in resources)
    problems = [f"{logical_id} is produced {count} times" for logical_id, count in counts.items() if count > 1]
    problems += [
        f"{resource.logical_id} is not a valid logical id"
        for resource in resources
        if not LOGICAL_ID_PATTERN.match(resource.logical_id)
    ]

    template_resources = template["Resources"]
    for resource in resources:
        declared = template_resources.get(resource.logical_id)
        if declared is None:
            problems.append(f"{resource.logical_id} is missing from the template")
        elif declared["Type"] != resource.resource_type.value:
            problems.append(f"{resource.logical_id} is a {declared['Type']} in the template")
        elif declared.get("DeletionPolicy") != RETAIN:
            problems.append(f"{resource.logical_id} is not retained in the template")
    problems += [
        f"{logical_id} is in the template but not imported"
        for logical_id, declared in template_resources.items()
        if declared.get("DeletionPolicy") == RETAIN and logical_id not in counts
    ]

    if problems:
        raise errors.ResolutionError("Import model is inconsistent", reason="; ".join(problems))


def build(registry: Registry, xref: Optional[CrossReference] = None) -> ImportModel:
    """Validate assignment references, derive both artifacts and check they agree.

    Raises:
        errors.ResolutionError: an assignment cannot be resolved or the logical ids clash.
    """
    xref = xref or CrossReference.from_registry(registry)
    xref.validate(registry.assignments)

    resources = build_import_resources(registry, xref)
    template = build_desired_state_template(registry, xref)
    check_logical_ids(resources, template)

    model = ImportModel(resources_to_import=tuple(resources), template=template)
    logger.info("Built import model", extra={"resources": len(resources)})
    logger.debug("Resources to import", extra={"resources_to_import": model.resources_to_import_json()})
    logger.debug("Template", extra={"template": template})
    return model
