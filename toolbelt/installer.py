"""
Command execution for provisioning steps.

Every external collaborator (package managers, git, pip, tar, setup
scripts) is invoked through execute_step. Probes report presence without
raising; run_step raises ExecutionError so that a failed command aborts
the run.
"""

from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass

from .common import vlog
from .environment import EnvironmentContext
from .errors import ExecutionError


@dataclass(frozen=True)
class InstallStep:
    """
    Single command to execute.

    Attributes:
        description: Human-readable description of the step
        command: Command tuple to execute
        requires_sudo: Whether this step needs privilege elevation
    """
    description: str
    command: tuple[str, ...]
    requires_sudo: bool = False


@dataclass(frozen=True)
class StepResult:
    """
    Result of executing a single step.

    Attributes:
        step: The step that was executed
        success: Whether the step succeeded
        stdout: Standard output (empty unless captured)
        stderr: Standard error (empty unless captured)
        exit_code: Process exit code
        duration_seconds: Time taken to execute step
        error_message: Human-readable error message if failed
    """
    step: InstallStep
    success: bool
    stdout: str
    stderr: str
    exit_code: int
    duration_seconds: float
    error_message: str | None = None


def build_command(step: InstallStep, ctx: EnvironmentContext) -> list[str]:
    """Apply privilege elevation to a step's command."""
    if step.requires_sudo:
        return list(ctx.elevate(step.command))
    return list(step.command)


def execute_step(
    step: InstallStep,
    ctx: EnvironmentContext,
    capture: bool = False,
    timeout: float | None = None,
    verbose: bool = False,
) -> StepResult:
    """
    Execute a single step.

    Output streams straight to the terminal unless capture is requested,
    so long-running installers stay visible. No timeout is applied unless
    one is given.

    Args:
        step: Step to execute
        ctx: Environment context (privilege elevation)
        capture: Capture stdout/stderr instead of inheriting them
        timeout: Optional timeout in seconds
        verbose: Enable verbose logging

    Returns:
        StepResult with execution outcome
    """
    start_time = time.time()
    command = build_command(step, ctx)

    vlog(f"Executing: {' '.join(command)}", verbose)

    try:
        result = subprocess.run(
            command,
            capture_output=capture,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return StepResult(
            step=step,
            success=False,
            stdout="",
            stderr="",
            exit_code=-1,
            duration_seconds=time.time() - start_time,
            error_message=f"Command timed out after {timeout}s",
        )
    except FileNotFoundError:
        return StepResult(
            step=step,
            success=False,
            stdout="",
            stderr="",
            exit_code=-1,
            duration_seconds=time.time() - start_time,
            error_message=f"Command not found: {command[0]}",
        )

    success = result.returncode == 0
    stderr = result.stderr or ""
    error_msg = None
    if not success:
        error_msg = f"Command failed with exit code {result.returncode}"
        if stderr:
            error_msg += f": {stderr[:200]}"

    return StepResult(
        step=step,
        success=success,
        stdout=result.stdout or "",
        stderr=stderr,
        exit_code=result.returncode,
        duration_seconds=time.time() - start_time,
        error_message=error_msg,
    )


def run_step(
    step: InstallStep,
    ctx: EnvironmentContext,
    verbose: bool = False,
) -> StepResult:
    """
    Execute a step and raise if it fails.

    Raises:
        ExecutionError: If the command exits non-zero or cannot be started
    """
    result = execute_step(step, ctx, verbose=verbose)
    if not result.success:
        raise ExecutionError(
            f"{step.description} failed: {result.error_message}",
            command=tuple(build_command(step, ctx)),
            exit_code=result.exit_code,
            stderr=result.stderr,
        )
    return result


def probe(command: tuple[str, ...], ctx: EnvironmentContext, timeout: float | None = None) -> bool:
    """
    Run a presence query quietly.

    Args:
        command: Query command (e.g., ("dpkg", "-s", "curl"))
        ctx: Environment context
        timeout: Optional timeout in seconds

    Returns:
        True when the command exits 0
    """
    step = InstallStep(f"Query {' '.join(command)}", command)
    return execute_step(step, ctx, capture=True, timeout=timeout).success


def capture_output(command: tuple[str, ...], ctx: EnvironmentContext, timeout: float | None = None) -> str | None:
    """Run a command and return its stdout, or None if it failed."""
    step = InstallStep(f"Query {' '.join(command)}", command)
    result = execute_step(step, ctx, capture=True, timeout=timeout)
    return result.stdout if result.success else None
