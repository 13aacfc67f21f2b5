from abc import ABC, abstractmethod
from typing import List, Optional, Tuple, Union
import logging

from mongo_topology.config import settings
from mongo_topology.errors import TeardownError, TopologyStateError
from mongo_topology.models.topology import ControllerState
from mongo_topology.services.admin_commands import AdminCommandClient, PyMongoAdminClient
from mongo_topology.services.node_handle import NodeHandle
from mongo_topology.services.topology_group import ReplicaSetGroup, ShardedGroup, TopologyGroup

logger = logging.getLogger(__name__)

# Marks a stability timeout left to settings, since None means no deadline
USE_SETTINGS = object()


class TopologyController(ABC):
    """
    Drives one setup/teardown cycle of a topology.

    Subclasses supply the initiation and stability steps; waking nodes,
    single-node start/stop and teardown are shared.

    Args:
        group: Nodes to manage
        admin: Client for administrative commands, pymongo-backed by default
        stability_timeout: Seconds to wait for convergence. Omit it to use
            settings.stability_timeout_seconds; pass None to wait indefinitely.
    """

    def __init__(
        self,
        group: TopologyGroup,
        admin: Optional[AdminCommandClient] = None,
        stability_timeout: Union[float, None, object] = USE_SETTINGS
    ):
        self.group = group
        self.admin = admin or PyMongoAdminClient()
        self.stability_timeout = (
            settings.stability_timeout_seconds
            if stability_timeout is USE_SETTINGS else stability_timeout
        )
        self.state = ControllerState.IDLE

    def __enter__(self):
        self.setup()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.teardown()
        return False

    def _transition(self, state: ControllerState):
        logger.debug(f"{type(self).__name__}: {self.state.value} -> {state.value}")
        self.state = state

    def setup(self):
        if self.state is not ControllerState.IDLE:
            raise TopologyStateError(f"setup() requires an idle controller, state is {self.state.value}")

        self.check_preconditions()

        self._transition(ControllerState.WAKING_NODES)
        self.wake_up_nodes()

        self._transition(ControllerState.INITIATING)
        self.initiate()

        self._transition(ControllerState.AWAITING_STABILITY)
        self.wait_until_stable()

        self._transition(ControllerState.RUNNING)

    def check_preconditions(self):
        """Validate the group before any node is touched"""

    @abstractmethod
    def initiate(self):
        """Send the commands that turn the woken nodes into a topology"""

    @abstractmethod
    def wait_until_stable(self):
        """Block until the topology reports the expected membership"""

    def wake_up_nodes(self):
        logger.info("Starting topology nodes")

        for handle in self.group.nodes():
            if not handle.is_ready():
                handle.start()

        logger.info("Started topology nodes")

    def start_node(self, port: int):
        """Start the stopped node bound to port; unknown or running ports are ignored"""
        handle = self.group.starting_node(port)
        if handle is None:
            logger.debug(f"No stopped node on port {port}, nothing to start")
            return
        handle.start()

    def stop_node(self, port: int):
        """Stop the running node bound to port; unknown or stopped ports are ignored"""
        handle = self.group.stopping_node(port)
        if handle is None:
            logger.debug(f"No running node on port {port}, nothing to stop")
            return
        handle.stop()

    def teardown(self):
        """Stop every ready node, attempting all of them before reporting failures"""
        if self.state is ControllerState.DONE:
            logger.warning(f"{type(self).__name__} already torn down")
            return

        self._transition(ControllerState.SHUTTING_DOWN)
        logger.info("Stopping topology nodes")

        failures: List[Tuple[NodeHandle, Exception]] = []
        for handle in self.group.nodes():
            if not handle.is_ready():
                continue
            try:
                handle.stop()
            except Exception as e:
                logger.error(f"Failed to stop node {handle.address}: {e}")
                failures.append((handle, e))

        self._transition(ControllerState.DONE)

        if failures:
            raise TeardownError(failures)
        logger.info("Stopped topology nodes")


class ReplicaSetController(TopologyController):
    """Brings up a replica set: wake members, replSetInitiate, wait for convergence"""

    group: ReplicaSetGroup

    def check_preconditions(self):
        # both raise ConfigurationError on an empty or unconfigured group
        _ = self.group.default_connection
        self.group.get_configuration()

    def initiate(self):
        self.admin.initiate(
            self.group.default_connection,
            self.group.get_configuration(),
            self.group.credentials
        )

    def wait_until_stable(self):
        """Poll the currently ready members until they have all converged"""
        return self.admin.wait_until_stable(
            self.group.ready_nodes(),
            self.group.number_of_started_nodes(),
            self.group.credentials,
            self.stability_timeout
        )


class ShardedController(TopologyController):
    """Brings up a sharded cluster and registers every shard through the first router"""

    group: ShardedGroup

    def check_preconditions(self):
        self.group.first_router()

    def initiate(self):
        credentials = self.group.credentials

        if self.group.config_configuration is not None:
            self.admin.initiate(
                self.group.first_config(),
                self.group.config_configuration,
                credentials
            )
            ready_configs = [c for c in self.group.configs if c.is_ready()]
            self.admin.wait_until_stable(
                ready_configs,
                len(ready_configs),
                credentials,
                self.stability_timeout
            )

        router = self.group.first_router()
        for shard in self.group.shards:
            self.admin.add_shard(router, shard, credentials)

    def wait_until_stable(self):
        return self.admin.wait_until_shards_registered(
            self.group.first_router(),
            len(self.group.shards),
            self.group.credentials,
            self.stability_timeout
        )
