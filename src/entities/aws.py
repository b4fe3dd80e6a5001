from typing import Optional, Tuple

from pydantic import AliasChoices, Field

from .model import BaseModel


class Account(BaseModel):
    """Account declared in the OrgFormation organization file."""

    account_id: str = Field(alias="AccountId")
    account_name: str = Field(alias="AccountName")
    root_email: Optional[str] = Field(default=None, alias="RootEmail")
    logical_id: str = Field(alias="LogicalId")


class Group(BaseModel):
    group_id: str = Field(alias="GroupId")
    display_name: str = Field(alias="DisplayName")
    description: Optional[str] = Field(default=None, alias="Description")


class PermissionSet(BaseModel):
    permission_set_arn: str = Field(alias="PermissionSetArn")
    name: str = Field(alias="Name")
    description: Optional[str] = Field(default=None, alias="Description")
    session_duration: Optional[str] = Field(default=None, alias="SessionDuration")
    # DescribePermissionSet reports it as RelayState, CloudFormation calls it RelayStateType.
    relay_state_type: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("relay_state_type", "RelayStateType", "RelayState"),
        serialization_alias="RelayStateType",
    )
    inline_policy: Optional[str] = Field(default=None, alias="InlinePolicy")
    managed_policies: Tuple[str, ...] = Field(default=(), alias="ManagedPolicies")


class Assignment(BaseModel):
    principal_id: str = Field(alias="PrincipalId")
    principal_type: str = Field(alias="PrincipalType")
    permission_set_arn: str = Field(alias="PermissionSetArn")
    account_id: str = Field(alias="AccountId")


class IdentityCenterInstance(BaseModel):
    instance_arn: str = Field(alias="InstanceArn")
    identity_store_id: str = Field(alias="IdentityStoreId")


class CallerIdentity(BaseModel):
    account: str = Field(alias="Account")
    user_id: str = Field(alias="UserId")
    arn: str = Field(alias="Arn")
