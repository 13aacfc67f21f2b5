from typing import Any, Dict, List, Optional, Sequence
import logging

from mongo_topology.errors import ConfigurationError
from mongo_topology.models.topology import ConfigurationDocument, Credentials, NodeRole
from mongo_topology.services.node_handle import NodeHandle

logger = logging.getLogger(__name__)


def build_replica_set_configuration(
    replica_set_name: str,
    members: Sequence[NodeHandle],
    **options: Any
) -> ConfigurationDocument:
    """
    Build the replSetInitiate document for a set of member handles

    Args:
        replica_set_name: Name of the replica set (the document's _id)
        members: Member handles, in member _id order
        **options: Extra top-level fields, e.g. configsvr=True

    Returns:
        ConfigurationDocument: Document ready for initiation
    """
    rs_config: Dict[str, Any] = {
        "_id": replica_set_name,
        "members": [
            {"_id": idx, "host": member.address}
            for idx, member in enumerate(members)
        ]
    }
    rs_config.update(options)
    return ConfigurationDocument(configuration=rs_config)


class TopologyGroup:
    """
    Declarative membership of one topology.

    Nodes are registered once and never reordered. Readiness is read from the
    handles on every call, never cached here.
    """

    #: Role partitions, in lookup priority order (most specific first)
    roles: Sequence[NodeRole] = ()

    def __init__(self, username: Optional[str] = None, password: Optional[str] = None):
        self.username = username
        self.password = password
        self._members: Dict[NodeRole, List[NodeHandle]] = {role: [] for role in self.roles}

    def add_member(self, role: NodeRole, handle: NodeHandle):
        """Register a node under a role partition"""
        try:
            role = NodeRole(role)
        except ValueError as e:
            raise ConfigurationError(f"Unknown node role: {role!r}") from e

        if role not in self._members:
            allowed = ", ".join(r.value for r in self.roles)
            raise ConfigurationError(
                f"{type(self).__name__} does not accept '{role.value}' nodes (expected one of: {allowed})"
            )
        self._members[role].append(handle)
        logger.debug(f"Registered {role.value} node {handle.address}")

    def members(self, role: NodeRole) -> List[NodeHandle]:
        return list(self._members.get(NodeRole(role), []))

    def nodes(self) -> List[NodeHandle]:
        """All nodes in the order they are started and stopped"""
        return [handle for role in self.roles for handle in self._members[role]]

    def ready_nodes(self) -> List[NodeHandle]:
        return [handle for handle in self.nodes() if handle.is_ready()]

    def number_of_started_nodes(self) -> int:
        return len(self.ready_nodes())

    def find_by_port_and_state(self, port: int, want_ready: bool) -> Optional[NodeHandle]:
        """First node bound to port whose readiness equals want_ready, scanning roles by priority"""
        for role in self.roles:
            for handle in self._members[role]:
                if handle.port == port and handle.is_ready() == want_ready:
                    return handle
        return None

    def starting_node(self, port: int) -> Optional[NodeHandle]:
        """The stopped node on this port, if any"""
        return self.find_by_port_and_state(port, False)

    def stopping_node(self, port: int) -> Optional[NodeHandle]:
        """The running node on this port, if any"""
        return self.find_by_port_and_state(port, True)

    def is_authentication_set(self) -> bool:
        return bool(self.username) and bool(self.password)

    @property
    def credentials(self) -> Optional[Credentials]:
        if not self.is_authentication_set():
            return None
        return Credentials(username=self.username, password=self.password)


class ReplicaSetGroup(TopologyGroup):
    """Members of one replica set plus the document used to initiate it"""

    roles = (NodeRole.MEMBER,)

    def __init__(
        self,
        configuration: Optional[ConfigurationDocument] = None,
        username: Optional[str] = None,
        password: Optional[str] = None
    ):
        super().__init__(username=username, password=password)
        self.configuration = configuration
        self._default_connection: Optional[NodeHandle] = None

    def add_server(self, handle: NodeHandle):
        self.add_member(NodeRole.MEMBER, handle)

    @property
    def servers(self) -> List[NodeHandle]:
        return self.members(NodeRole.MEMBER)

    def set_default_connection(self, handle: NodeHandle):
        if handle not in self._members[NodeRole.MEMBER]:
            raise ConfigurationError(f"Default connection {handle.address} is not a registered member")
        self._default_connection = handle

    @property
    def default_connection(self) -> NodeHandle:
        """Node addressed for admin commands; the first member unless set explicitly"""
        if self._default_connection is not None:
            return self._default_connection
        servers = self._members[NodeRole.MEMBER]
        if not servers:
            raise ConfigurationError("At least one member is required for a replica set")
        return servers[0]

    def get_configuration(self) -> ConfigurationDocument:
        if self.configuration is None:
            raise ConfigurationError("Replica set has no configuration document")
        return self.configuration


class ShardedGroup(TopologyGroup):
    """Shards, config servers and routers of one sharded cluster"""

    roles = (NodeRole.SHARD, NodeRole.CONFIG, NodeRole.ROUTER)

    def __init__(
        self,
        config_configuration: Optional[ConfigurationDocument] = None,
        username: Optional[str] = None,
        password: Optional[str] = None
    ):
        super().__init__(username=username, password=password)
        self.config_configuration = config_configuration

    def add_shard(self, handle: NodeHandle):
        self.add_member(NodeRole.SHARD, handle)

    def add_config(self, handle: NodeHandle):
        self.add_member(NodeRole.CONFIG, handle)

    def add_router(self, handle: NodeHandle):
        self.add_member(NodeRole.ROUTER, handle)

    @property
    def shards(self) -> List[NodeHandle]:
        return self.members(NodeRole.SHARD)

    @property
    def configs(self) -> List[NodeHandle]:
        return self.members(NodeRole.CONFIG)

    @property
    def routers(self) -> List[NodeHandle]:
        return self.members(NodeRole.ROUTER)

    def nodes(self) -> List[NodeHandle]:
        # routers refuse to launch until the config servers answer
        return self.configs + self.shards + self.routers

    def first_router(self) -> NodeHandle:
        routers = self._members[NodeRole.ROUTER]
        if not routers:
            raise ConfigurationError("At least one router is required for sharding")
        return routers[0]

    def first_config(self) -> NodeHandle:
        configs = self._members[NodeRole.CONFIG]
        if not configs:
            raise ConfigurationError("At least one config server is required for sharding")
        return configs[0]
