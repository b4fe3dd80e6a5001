from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Callable, Sequence

import config
import errors

logger = config.get_logger(service="org_formation")

Runner = Callable[..., subprocess.CompletedProcess]


@dataclass
class OrgFormation:
    """Thin wrapper around the org-formation CLI. Output is captured and logged, never streamed."""

    command: str = "org-formation"
    runner: Runner = subprocess.run

    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess:  # noqa: ANN101
        cmd = [self.command, *args]
        logger.debug("Running org-formation", extra={"cmd": cmd})
        result = self.runner(cmd, capture_output=True, text=True, check=False)
        logger.debug("org-formation finished", extra={"returncode": result.returncode, "stdout": result.stdout})
        return result

    def version(self) -> str:  # noqa: ANN101
        try:
            result = self._run(["--version"])
        except (FileNotFoundError, PermissionError) as e:
            raise errors.CollaboratorUnavailable(
                "org-formation CLI not found, install it with `npm i -g aws-organization-formation`",
                phase=errors.Phase.Preflight,
                reason=str(e),
            ) from e
        if result.returncode != 0:
            raise errors.CollaboratorUnavailable(
                "org-formation CLI is not working",
                phase=errors.Phase.Preflight,
                reason=(result.stderr or result.stdout).strip(),
            )
        version = result.stdout.strip()
        logger.info("Found org-formation", extra={"version": version})
        return version

    def perform_tasks(self, task_file: str, organization_file: str) -> str:  # noqa: ANN101
        result = self._run(["perform-tasks", task_file, "--organization-file", organization_file])
        if result.returncode != 0:
            logger.error("org-formation perform-tasks failed", extra={"task_file": task_file, "stderr": result.stderr})
            raise errors.DeploymentError(
                f"Failed to deploy {task_file}",
                reason=(result.stderr or result.stdout).strip(),
            )
        logger.info("Deployed OrgFormation tasks", extra={"task_file": task_file})
        return result.stdout
