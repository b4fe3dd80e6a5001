from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

import config
import errors
from import_model import ImportModel

if TYPE_CHECKING:
    from mypy_boto3_cloudformation import CloudFormationClient

logger = config.get_logger(service="changeset")

MAX_ATTEMPTS = 30
POLL_INTERVAL_SECONDS = 1.0


class State(str, Enum):
    Creating = "CREATING"
    Ready = "READY"
    Executed = "EXECUTED"
    Importing = "IMPORTING"
    Complete = "COMPLETE"
    Failed = "FAILED"

    @property
    def is_terminal(self) -> bool:  # noqa: ANN101
        return self in (State.Ready, State.Complete, State.Failed)


@dataclass(frozen=True)
class PollResult:
    status: Optional[str]
    reason: Optional[str] = None


def creation_transition(state: State, result: PollResult) -> State:
    if state is not State.Creating:
        raise ValueError(f"Change set creation cannot continue from {state.value}")
    if result.status == "CREATE_COMPLETE":
        return State.Ready
    if result.status == "FAILED":
        return State.Failed
    return State.Creating


def import_transition(state: State, result: PollResult) -> State:
    if state not in (State.Executed, State.Importing):
        raise ValueError(f"Import cannot continue from {state.value}")
    if result.status == "IMPORT_COMPLETE":
        return State.Complete
    # No status yet means the stack has not picked up the execution.
    if result.status is None or result.status == "IMPORT_IN_PROGRESS":
        return State.Importing
    return State.Failed


def poll(
    fn: Callable[[], PollResult],
    transition: Callable[[State, PollResult], State],
    initial: State,
    phase: errors.Phase,
    max_attempts: int = MAX_ATTEMPTS,
    retry_period_seconds: float = POLL_INTERVAL_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> State:
    """Poll fn until the transition reaches a terminal state.

    Polls at most max_attempts times and sleeps only between polls.

    Raises:
        errors.ChangeSetFailed: the transition reached State.Failed.
        errors.ChangeSetTimeout: no terminal state after max_attempts polls.
    """
    state = initial
    result = PollResult(status=None)
    for attempt in range(1, max_attempts + 1):
        result = fn()
        state = transition(state, result)
        logger.debug("Polled", extra={"phase": phase.value, "attempt": attempt, "status": result.status, "state": state.value})
        if state is State.Failed:
            raise errors.ChangeSetFailed(
                f"Remote status {result.status}",
                phase=phase,
                status=result.status,
                reason=result.reason,
            )
        if state.is_terminal:
            return state
        if attempt < max_attempts:
            sleep(retry_period_seconds)
    raise errors.ChangeSetTimeout("Change set has been taking too long", phase=phase, attempts=max_attempts, last_status=result.status)


class ChangeSetController:
    """Create an IMPORT changeset, wait for it, execute it and wait for the stack import."""

    def __init__(  # noqa: ANN101
        self,
        client: CloudFormationClient,
        stack_name: str,
        changeset_name: str,
        max_attempts: int = MAX_ATTEMPTS,
        retry_period_seconds: float = POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.stack_name = stack_name
        self.changeset_name = changeset_name
        self.max_attempts = max_attempts
        self.retry_period_seconds = retry_period_seconds
        self.sleep = sleep

    @staticmethod
    def from_config(client: CloudFormationClient, cfg: config.Config, sleep: Callable[[float], None] = time.sleep) -> ChangeSetController:
        return ChangeSetController(
            client,
            stack_name=cfg.stack_name,
            changeset_name=cfg.changeset_name,
            max_attempts=cfg.poll_max_attempts,
            retry_period_seconds=cfg.poll_interval_seconds,
            sleep=sleep,
        )

    def _poll(self, fn: Callable[[], PollResult], transition: Callable[[State, PollResult], State], initial: State, phase: errors.Phase) -> State:  # noqa: ANN101
        return poll(fn, transition, initial, phase, self.max_attempts, self.retry_period_seconds, self.sleep)

    def _call(self, phase: errors.Phase, action: str, fn: Callable[[], dict]) -> dict:  # noqa: ANN101
        try:
            return fn()
        except (ClientError, BotoCoreError) as e:
            code = e.response.get("Error", {}).get("Code") if isinstance(e, ClientError) else None
            raise errors.ChangeSetFailed(f"Failed to {action}", phase=phase, status=code, reason=str(e)) from e

    def create(self, model: ImportModel) -> dict:  # noqa: ANN101
        logger.info("Creating import change set", extra={"stack_name": self.stack_name, "change_set_name": self.changeset_name})
        return self._call(
            errors.Phase.ChangeSetCreate,
            "create change set",
            lambda: self.client.create_change_set(
                StackName=self.stack_name,
                ChangeSetName=self.changeset_name,
                ChangeSetType="IMPORT",
                ResourcesToImport=model.resources_to_import_json(),  # type: ignore # noqa: PGH003
                TemplateBody=model.template_body(),
            ),
        )

    def describe_change_set(self) -> PollResult:  # noqa: ANN101
        response = self._call(
            errors.Phase.ChangeSetCreate,
            "describe change set",
            lambda: self.client.describe_change_set(StackName=self.stack_name, ChangeSetName=self.changeset_name),
        )
        return PollResult(status=response.get("Status"), reason=response.get("StatusReason"))

    def wait_until_ready(self) -> State:  # noqa: ANN101
        return self._poll(self.describe_change_set, creation_transition, State.Creating, errors.Phase.ChangeSetCreate)

    def execute(self) -> dict:  # noqa: ANN101
        logger.info("Executing import change set", extra={"stack_name": self.stack_name, "change_set_name": self.changeset_name})
        return self._call(
            errors.Phase.ChangeSetImport,
            "execute change set",
            lambda: self.client.execute_change_set(StackName=self.stack_name, ChangeSetName=self.changeset_name),
        )

    def describe_stack(self) -> PollResult:  # noqa: ANN101
        response = self._call(
            errors.Phase.ChangeSetImport,
            "describe stack",
            lambda: self.client.describe_stacks(StackName=self.stack_name),
        )
        stacks = response.get("Stacks") or [{}]
        return PollResult(status=stacks[0].get("StackStatus"), reason=stacks[0].get("StackStatusReason"))

    def wait_for_import(self) -> State:  # noqa: ANN101
        return self._poll(self.describe_stack, import_transition, State.Executed, errors.Phase.ChangeSetImport)

    def run(self, model: ImportModel) -> State:  # noqa: ANN101
        self.create(model)
        self.wait_until_ready()
        logger.info("Change set is ready")
        self.execute()
        state = self.wait_for_import()
        logger.info("Resources imported", extra={"stack_name": self.stack_name, "resources": len(model.resources_to_import)})
        return state
