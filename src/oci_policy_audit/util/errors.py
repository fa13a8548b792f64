from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    AUTH_ERROR = 3
    OCI_ERROR = 4
    RUNTIME_ERROR = 5


class AuditError(Exception):
    """Base error for the policy audit pipeline."""


class ConfigError(AuditError):
    """Raised for configuration or argument issues."""


class AuthResolutionError(AuditError):
    """Raised when authentication cannot be resolved."""


class OCIClientError(AuditError):
    """Raised when OCI SDK operations fail in a non-retriable way."""


class ConnectivityError(OCIClientError):
    """Raised when the identity service cannot be reached at all."""


class ReportError(AuditError):
    """Raised when writing report artifacts fails."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, AuthResolutionError):
        return int(ExitCode.AUTH_ERROR)
    if isinstance(exc, OCIClientError):
        return int(ExitCode.OCI_ERROR)
    if isinstance(exc, (ReportError, AuditError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1


def _oci_error_types() -> tuple[type[BaseException], ...]:
    try:
        from oci.exceptions import RequestException, ServiceError  # type: ignore
    except ImportError:
        return ()
    return (ServiceError, RequestException)


def is_oci_error(exc: BaseException) -> bool:
    """
    Return True if the exception looks like an OCI SDK error.
    """
    oci_types = _oci_error_types()
    if oci_types and isinstance(exc, oci_types):
        return True
    return exc.__class__.__module__.startswith("oci.")


def map_oci_error(exc: BaseException, context: str) -> OCIClientError | None:
    """
    Wrap OCI SDK errors with OCIClientError for consistent exit codes.
    """
    if not is_oci_error(exc):
        return None
    return OCIClientError(f"{context}: {exc}")
