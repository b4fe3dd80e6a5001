from __future__ import annotations

import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional

import boto3

import changeset
import config
import import_model
import organizations
import registry as registry_module
import sso
import templates
from cross_reference import CrossReference
from org_formation import OrgFormation

if TYPE_CHECKING:
    from mypy_boto3_cloudformation import CloudFormationClient
    from mypy_boto3_identitystore import IdentityStoreClient
    from mypy_boto3_sso_admin import SSOAdminClient
    from mypy_boto3_sts import STSClient

logger = config.get_logger(service="migrate")

BOOTSTRAP_TASKS_FILE = "organization-tasks.yml"
BOOTSTRAP_TEMPLATE_FILE = "sso-assignments.yml"


@dataclass
class AwsClients:
    sts: STSClient
    sso_admin: SSOAdminClient
    identity_store: IdentityStoreClient
    cloudformation: CloudFormationClient
    region: Optional[str] = None

    @staticmethod
    def from_session(session: boto3.Session) -> AwsClients:
        return AwsClients(
            sts=session.client("sts"),
            sso_admin=session.client("sso-admin"),
            identity_store=session.client("identitystore"),
            cloudformation=session.client("cloudformation"),
            region=session.region_name,
        )


@dataclass(frozen=True)
class MigrationResult:
    registry: registry_module.Registry
    model: import_model.ImportModel
    tasks_file: Path
    template_file: Path


def deploy_bootstrap_stack(cfg: config.Config, tool: OrgFormation, identity_store_id: str, instance_arn: str, region: Optional[str]) -> None:
    temp_dir = Path(cfg.temp_dir)
    temp_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Created temporary directory", extra={"path": str(temp_dir)})

    tasks_file = templates.write(
        temp_dir / BOOTSTRAP_TASKS_FILE,
        templates.render_organization_tasks(
            stack_name=cfg.stack_name,
            sso_template=f"./{BOOTSTRAP_TEMPLATE_FILE}",
            include_organization_update=False,
            region=region,
        ),
    )
    templates.write(
        temp_dir / BOOTSTRAP_TEMPLATE_FILE,
        templates.render_bootstrap_sso_assignments(identity_store_id, instance_arn, cfg.temp_group_name),
    )
    tool.perform_tasks(str(tasks_file), cfg.organization_file)
    logger.info("Deployed initial OrgFormation stack", extra={"stack_name": cfg.stack_name})


def write_final_files(cfg: config.Config, registry: registry_module.Registry, xref: CrossReference, region: Optional[str]) -> tuple[Path, Path]:
    template_file = templates.write(
        Path(cfg.templates_dir) / BOOTSTRAP_TEMPLATE_FILE,
        templates.render_final_sso_assignments(registry, xref),
    )
    tasks_file = templates.write(
        cfg.tasks_file,
        templates.render_organization_tasks(
            stack_name=cfg.stack_name,
            sso_template=f"./{Path(cfg.templates_dir).as_posix()}/{BOOTSTRAP_TEMPLATE_FILE}",
            include_organization_update=True,
            region=region,
        ),
    )
    return tasks_file, template_file


def run_migration(
    cfg: config.Config,
    clients: AwsClients,
    tool: OrgFormation,
    sleep: Callable[[float], Any] = time.sleep,
) -> MigrationResult:
    """Bootstrap the stack, import every existing Identity Center resource into it and hand it over to OrgFormation.

    Nothing is rolled back on failure. A change set left behind by a failed run has
    to be deleted by hand before the next attempt.
    """
    sso.get_caller_identity(clients.sts)
    tool.version()

    instance = sso.resolve_instance(clients.sso_admin, cfg.identity_store_id, cfg.managing_instance_arn)
    region = cfg.region or clients.region

    deploy_bootstrap_stack(cfg, tool, instance.identity_store_id, instance.instance_arn, region)

    registry = registry_module.discover(
        clients.sso_admin,
        clients.identity_store,
        instance.identity_store_id,
        instance.instance_arn,
        load_accounts=lambda: organizations.list_orgformation_accounts(cfg.organization_file),
        temp_group_name=cfg.temp_group_name,
    )
    xref = CrossReference.from_registry(registry)
    model = import_model.build(registry, xref)

    changeset.ChangeSetController.from_config(clients.cloudformation, cfg, sleep=sleep).run(model)
    logger.info("Imported resources", extra={"stack_name": cfg.stack_name})

    tasks_file, template_file = write_final_files(cfg, registry, xref, region)

    tool.perform_tasks(str(tasks_file), cfg.organization_file)
    logger.info("Deployed newly generated OrgFormation template")

    shutil.rmtree(cfg.temp_dir, ignore_errors=True)
    logger.info("Removed temporary directory", extra={"path": cfg.temp_dir})
    return MigrationResult(registry=registry, model=model, tasks_file=tasks_file, template_file=template_file)
