"""
Error taxonomy for provisioning runs.

Every error raised here is fatal: the CLI logs it and exits with status 1.
Re-running the whole install is the only retry mechanism.
"""

from __future__ import annotations


class ProvisionError(Exception):
    """
    Base exception for provisioning errors.

    Attributes:
        message: Human-readable error message
        retryable: Whether re-running the command may succeed
        remediation: Suggested fix for the error
    """
    def __init__(
        self,
        message: str,
        retryable: bool = False,
        remediation: str | None = None,
    ):
        self.message = message
        self.retryable = retryable
        self.remediation = remediation
        super().__init__(message)


class ConfigurationError(ProvisionError):
    """Manifest or configuration file is missing or malformed."""


class UnsupportedEnvironmentError(ProvisionError):
    """Unsupported OS or architecture, or a required host tool is missing."""


class NetworkError(ProvisionError):
    """Release discovery or download failed."""

    def __init__(self, message: str, remediation: str | None = None):
        super().__init__(message, retryable=True, remediation=remediation)


class ExecutionError(ProvisionError):
    """
    An external command failed.

    Attributes:
        command: The command that was executed
        exit_code: Process exit code (-1 when it could not be started)
        stderr: Captured standard error, if any
    """
    def __init__(
        self,
        message: str,
        command: tuple[str, ...] = (),
        exit_code: int = -1,
        stderr: str = "",
        remediation: str | None = None,
    ):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message, retryable=False, remediation=remediation)
