import functools
from enum import Enum
from typing import Optional

import typer
from botocore.exceptions import BotoCoreError, ClientError

import config


class Phase(str, Enum):
    Preflight = "preflight"
    Discovery = "discovery"
    Model = "model"
    ChangeSetCreate = "changeset-create"
    ChangeSetImport = "changeset-import"
    Deploy = "deploy"


class MigrationError(Exception):
    phase: Phase = Phase.Preflight

    def __init__(self, message: str, phase: Optional[Phase] = None, reason: Optional[str] = None) -> None:  # noqa: ANN101
        super().__init__(message)
        if phase is not None:
            self.phase = phase
        self.reason = reason

    def __str__(self) -> str:  # noqa: ANN101
        message = super().__str__()
        if self.reason:
            return f"[{self.phase.value}] {message}: {self.reason}"
        return f"[{self.phase.value}] {message}"


class ConfigurationError(MigrationError):
    ...


class NotFound(ConfigurationError):
    ...


class ResolutionError(ConfigurationError):
    phase = Phase.Model


class CollaboratorUnavailable(MigrationError):
    ...


class AwsApiError(MigrationError):
    """An AWS call outside the changeset lifecycle was rejected (access denied, throttling, ...)."""

    def __init__(self, message: str, phase: Phase, code: Optional[str] = None, reason: Optional[str] = None) -> None:  # noqa: ANN101
        super().__init__(message, phase=phase, reason=reason)
        self.code = code


class DeploymentError(MigrationError):
    phase = Phase.Deploy


class ChangeSetError(MigrationError):
    ...


class ChangeSetFailed(ChangeSetError):
    """The remote side reported a definitive failure. Never retried."""

    def __init__(self, message: str, phase: Phase, status: Optional[str] = None, reason: Optional[str] = None) -> None:  # noqa: ANN101
        super().__init__(message, phase=phase, reason=reason)
        self.status = status


class ChangeSetTimeout(ChangeSetError):
    def __init__(self, message: str, phase: Phase, attempts: int, last_status: Optional[str] = None) -> None:  # noqa: ANN101
        super().__init__(message, phase=phase, reason=f"gave up after {attempts} attempts, last status {last_status}")
        self.attempts = attempts
        self.last_status = last_status


logger = config.get_logger(service="errors")


def aws_call(phase: Phase, action: str):  # noqa: ANN201
    """Turn botocore failures raised by the decorated function into AwsApiError for the given phase."""

    def decorator(fn):  # noqa: ANN001, ANN202
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):  # noqa: ANN002, ANN003, ANN202
            try:
                return fn(*args, **kwargs)
            except (ClientError, BotoCoreError) as e:
                code = e.response.get("Error", {}).get("Code") if isinstance(e, ClientError) else None
                raise AwsApiError(f"Failed to {action}", phase=phase, code=code, reason=str(e)) from e

        return wrapper

    return decorator


def handle_errors(fn):  # noqa: ANN001, ANN201
    # Every fatal error ends the run. The phase and remote reason are logged so the run can be retried by hand.
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):  # noqa: ANN002, ANN003, ANN202
        try:
            return fn(*args, **kwargs)
        except MigrationError as e:
            logger.exception(
                "Migration failed",
                extra={"phase": e.phase.value, "reason": e.reason, "error_type": type(e).__name__},
            )
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e

    return wrapper
