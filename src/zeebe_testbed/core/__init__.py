"""Core primitives: error taxonomy, Result envelope, logging and settings.

Architecture::

    errors.py     TestbedError hierarchy (StartError, CommandError, ...)
    result.py     Ok / Err envelope for wait and send outcomes
    logging.py    structlog configuration and get_logger()
    settings.py   TestbedSettings (ZEEBE_TESTBED_* environment)

``settings`` is not imported here; it depends on :mod:`zeebe_testbed.deploy`.
"""

from zeebe_testbed.core.errors import (
    CleanupError,
    CommandError,
    CommandErrorKind,
    CommandStateError,
    ConfigError,
    ConnectError,
    DockerNotFoundError,
    ErrorCategory,
    ErrorContext,
    NotFoundError,
    ResourceReadError,
    StartError,
    StartFailure,
    TestbedError,
    WaitStrategyStateError,
    WaitTimedOut,
)
from zeebe_testbed.core.logging import configure_logging, get_logger
from zeebe_testbed.core.result import Err, Ok, Result

__all__ = [
    "CleanupError",
    "CommandError",
    "CommandErrorKind",
    "CommandStateError",
    "ConfigError",
    "ConnectError",
    "DockerNotFoundError",
    "Err",
    "ErrorCategory",
    "ErrorContext",
    "NotFoundError",
    "Ok",
    "ResourceReadError",
    "Result",
    "StartError",
    "StartFailure",
    "TestbedError",
    "WaitStrategyStateError",
    "WaitTimedOut",
    "configure_logging",
    "get_logger",
]
