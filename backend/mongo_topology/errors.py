"""
Error taxonomy for topology orchestration.

ConfigurationError is raised when a topology is used in a shape it cannot
support, at the point of use rather than while the group is being built.
ProcessError and TransportError carry failures of the collaborators (the
node process manager and the admin connection) up to the fixture unchanged.
"""
from typing import List, Tuple, Any


class TopologyError(Exception):
    """Base class for all topology exceptions."""


class ConfigurationError(TopologyError):
    """Raised when the declared topology is missing a required node or role."""


class ProcessError(TopologyError):
    """Raised when a managed node cannot be started or stopped."""


class TransportError(TopologyError):
    """Raised when an admin connection or command fails at the network layer."""


class StabilityTimeoutError(TopologyError):
    """Raised when a topology does not converge before the polling deadline."""


class TopologyStateError(TopologyError):
    """Raised when a controller is driven out of its lifecycle order."""


class TeardownError(TopologyError):
    """Raised after teardown when one or more nodes failed to stop."""

    def __init__(self, failures: List[Tuple[Any, Exception]]):
        self.failures = failures
        nodes = ", ".join(f"{handle.host}:{handle.port} ({error})" for handle, error in failures)
        super().__init__(f"Failed to stop {len(failures)} node(s): {nodes}")
