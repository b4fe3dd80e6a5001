"""orgformation-sso-import - move existing IAM Identity Center resources under OrgFormation management."""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version
from typing import Optional

import boto3
import typer

import config
import errors
import migrate
from org_formation import OrgFormation

PACKAGE_NAME = "orgformation-sso-import"

app = typer.Typer(
    help="Import manually created IAM Identity Center groups, permission sets and assignments into an OrgFormation stack.",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        try:
            typer.echo(f"{PACKAGE_NAME} v{package_version(PACKAGE_NAME)}")
        except PackageNotFoundError:
            typer.echo(f"{PACKAGE_NAME} (not installed)")
        raise typer.Exit()


@app.command()
@errors.handle_errors
def main(
    stack_name: str = typer.Option("SsoAssignments", "--stack-name", "-s", help="Name of the stack to be deployed"),
    identity_store_id: str = typer.Option(
        "", "--identity-store-id", "-i", help="Id of the identity store. Discovered when not provided"
    ),
    managing_instance_arn: str = typer.Option(
        "", "--managing-instance-arn", "-m", help="ARN of the managing instance. Discovered when not provided"
    ),
    region: Optional[str] = typer.Option(None, "--region", "-r", help="AWS region, defaults to the AWS_REGION environment variable"),
    organization_file: str = typer.Option("organization.yml", "--organization-file", help="OrgFormation organization file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enables verbose mode"),
    version: Optional[bool] = typer.Option(  # noqa: ARG001
        None, "--version", callback=_version_callback, is_eager=True, help="Print the version and exit"
    ),
) -> None:
    """Import existing Identity Center resources into the stack, then converge it with org-formation."""
    cfg = config.load_config(
        stack_name=stack_name,
        identity_store_id=identity_store_id,
        managing_instance_arn=managing_instance_arn,
        region=region,
        organization_file=organization_file,
        log_level="DEBUG" if verbose else None,
    )
    config.set_log_level(cfg.log_level)

    session = boto3.Session(region_name=cfg.region) if cfg.region else boto3.Session()
    result = migrate.run_migration(
        cfg,
        migrate.AwsClients.from_session(session),
        OrgFormation(command=cfg.org_formation_command),
    )
    typer.echo(
        f"Imported {len(result.model.resources_to_import)} resources into {cfg.stack_name}, "
        f"see {result.tasks_file} and {result.template_file}"
    )


if __name__ == "__main__":
    app()
