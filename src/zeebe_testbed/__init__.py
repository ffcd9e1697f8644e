"""
zeebe-testbed - Ephemeral broker provisioning and gateway commands for tests.

Starts a workflow broker container, gates on its readiness log marker, and
drives the gateway through single-attempt command builders so integration
tests can assert on what the broker persisted to a bind-mounted directory.
"""

__version__ = "0.1.0"

from zeebe_testbed.core.errors import (
    CleanupError,
    CommandError,
    CommandErrorKind,
    CommandStateError,
    ConnectError,
    NotFoundError,
    ResourceReadError,
    StartError,
    StartFailure,
    TestbedError,
)
from zeebe_testbed.core.result import Err, Ok, Result

__all__ = [
    "__version__",
    "CleanupError",
    "CommandError",
    "CommandErrorKind",
    "CommandStateError",
    "ConnectError",
    "Err",
    "NotFoundError",
    "Ok",
    "ResourceReadError",
    "Result",
    "StartError",
    "StartFailure",
    "TestbedError",
]
