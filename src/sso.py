from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Optional

from botocore.exceptions import BotoCoreError, ClientError

import config
import errors
import pagination
from entities.aws import Assignment, CallerIdentity, Group, IdentityCenterInstance, PermissionSet

if TYPE_CHECKING:
    from mypy_boto3_identitystore import IdentityStoreClient
    from mypy_boto3_sso_admin import SSOAdminClient
    from mypy_boto3_sts import STSClient

# ruff: noqa: PGH003

logger = config.get_logger(service="sso")


def get_caller_identity(client: STSClient) -> CallerIdentity:
    """Fails fast when there are no usable credentials, before anything is deployed."""
    try:
        response = client.get_caller_identity()
    except (ClientError, BotoCoreError) as e:
        raise errors.CollaboratorUnavailable(
            "AWS credentials are missing or invalid, authenticate with the management account",
            phase=errors.Phase.Preflight,
            reason=str(e),
        ) from e
    identity = CallerIdentity.model_validate(response)
    logger.info("Caller identity", extra={"caller_identity": identity})
    return identity


@errors.aws_call(errors.Phase.Preflight, "list IAM Identity Center instances")
def list_sso_instances(client: SSOAdminClient) -> list[IdentityCenterInstance]:
    instances = pagination.collect_boto3(client, "list_instances", "Instances")
    return [IdentityCenterInstance.model_validate(instance) for instance in instances]


def resolve_instance(
    client: SSOAdminClient,
    identity_store_id: Optional[str] = None,
    instance_arn: Optional[str] = None,
) -> IdentityCenterInstance:
    """Use the given identifiers when both are set, otherwise take the first Identity Center instance.

    Raises:
        errors.NotFound: there is no Identity Center instance in the region.
    """
    if identity_store_id and instance_arn:
        return IdentityCenterInstance(identity_store_id=identity_store_id, instance_arn=instance_arn)

    logger.warning("identity-store-id or managing-instance-arn not provided, trying to determine them")
    instances = list_sso_instances(client)
    if not instances:
        raise errors.NotFound(
            "Could not determine identity-store-id and managing-instance-arn",
            phase=errors.Phase.Preflight,
            reason="no IAM Identity Center instance found, is the organization created and is the region correct?",
        )
    instance = instances[0]
    logger.warning(
        "Using IAM Identity Center instance",
        extra={"identity_store_id": instance.identity_store_id, "managing_instance_arn": instance.instance_arn},
    )
    return instance


@errors.aws_call(errors.Phase.Discovery, "list groups")
def list_groups(client: IdentityStoreClient, identity_store_id: str) -> list[Group]:
    groups = pagination.collect_boto3(client, "list_groups", "Groups", IdentityStoreId=identity_store_id)
    return [Group.model_validate(group) for group in groups]


@errors.aws_call(errors.Phase.Discovery, "list permission sets")
def list_permission_set_arns(client: SSOAdminClient, instance_arn: str) -> list[str]:
    return pagination.collect_boto3(client, "list_permission_sets", "PermissionSets", InstanceArn=instance_arn)


@errors.aws_call(errors.Phase.Discovery, "list managed policies")
def list_managed_policy_arns(client: SSOAdminClient, instance_arn: str, permission_set_arn: str) -> list[str]:
    policies = pagination.collect_boto3(
        client,
        "list_managed_policies_in_permission_set",
        "AttachedManagedPolicies",
        InstanceArn=instance_arn,
        PermissionSetArn=permission_set_arn,
    )
    return [policy["Arn"] for policy in policies]


@errors.aws_call(errors.Phase.Discovery, "get inline policy")
def get_inline_policy(client: SSOAdminClient, instance_arn: str, permission_set_arn: str) -> Optional[str]:
    response = client.get_inline_policy_for_permission_set(InstanceArn=instance_arn, PermissionSetArn=permission_set_arn)
    # An empty string means no inline policy is attached.
    return response.get("InlinePolicy") or None


@errors.aws_call(errors.Phase.Discovery, "describe permission set")
def describe_permission_set(client: SSOAdminClient, instance_arn: str, permission_set_arn: str) -> PermissionSet:
    response = client.describe_permission_set(InstanceArn=instance_arn, PermissionSetArn=permission_set_arn)
    return PermissionSet.model_validate(
        dict(response["PermissionSet"])
        | {
            "InlinePolicy": get_inline_policy(client, instance_arn, permission_set_arn),
            "ManagedPolicies": tuple(list_managed_policy_arns(client, instance_arn, permission_set_arn)),
        }
    )


def list_permission_sets(client: SSOAdminClient, instance_arn: str) -> list[PermissionSet]:
    return [
        describe_permission_set(client, instance_arn, permission_set_arn)
        for permission_set_arn in list_permission_set_arns(client, instance_arn)
    ]


@errors.aws_call(errors.Phase.Discovery, "list account assignments")
def list_account_assignments(
    client: SSOAdminClient,
    instance_arn: str,
    account_ids: Iterable[str],
    permission_sets: Iterable[PermissionSet],
) -> list[Assignment]:
    """Group assignments for every account x permission set pair.

    Assignments to individual users cannot be expressed by the import model and are skipped.
    """
    permission_sets = list(permission_sets)
    assignments: list[Assignment] = []
    skipped = 0
    for account_id in account_ids:
        for permission_set in permission_sets:
            for item in pagination.collect_boto3(
                client,
                "list_account_assignments",
                "AccountAssignments",
                InstanceArn=instance_arn,
                AccountId=account_id,
                PermissionSetArn=permission_set.permission_set_arn,
            ):
                assignment = Assignment.model_validate(item)
                if assignment.principal_type != "GROUP":
                    skipped += 1
                    logger.debug("Skipping non group assignment", extra={"assignment": assignment})
                    continue
                assignments.append(assignment)
    if skipped:
        logger.warning("Skipped assignments to users, only group assignments are imported", extra={"skipped": skipped})
    return assignments
