from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Sequence
from contextlib import contextmanager
import logging
import time

from pymongo import MongoClient, ReadPreference
from pymongo.errors import ConnectionFailure, OperationFailure

from mongo_topology.config import settings
from mongo_topology.errors import StabilityTimeoutError, TransportError
from mongo_topology.models.topology import (
    ConfigurationDocument,
    Credentials,
    MemberStatus,
    ReplicaSetStatus,
    ShardInfo
)
from mongo_topology.services.node_handle import NodeHandle

logger = logging.getLogger(__name__)

# replSetGetStatus before replSetInitiate has propagated to the member
NOT_YET_INITIALIZED = 94


class AdminCommandClient(ABC):
    """
    Issues admin commands against running nodes.

    Every operation opens its own connection and releases it before
    returning, on success and on failure alike.
    """

    @abstractmethod
    def initiate(
        self,
        target: NodeHandle,
        configuration: ConfigurationDocument,
        credentials: Optional[Credentials] = None
    ) -> Dict[str, Any]: ...

    @abstractmethod
    def add_shard(
        self,
        router: NodeHandle,
        shard: NodeHandle,
        credentials: Optional[Credentials] = None
    ) -> Dict[str, Any]: ...

    @abstractmethod
    def wait_until_stable(
        self,
        targets: Sequence[NodeHandle],
        expected_ready_count: int,
        credentials: Optional[Credentials] = None,
        timeout: Optional[float] = None
    ) -> ReplicaSetStatus: ...

    @abstractmethod
    def wait_until_shards_registered(
        self,
        router: NodeHandle,
        expected_shard_count: int,
        credentials: Optional[Credentials] = None,
        timeout: Optional[float] = None
    ) -> List[ShardInfo]: ...


def parse_replica_set_status(status_data: Dict[str, Any]) -> ReplicaSetStatus:
    """Convert a replSetGetStatus reply into a ReplicaSetStatus"""
    members = []
    primary = None

    for member_data in status_data.get("members", []):
        state_str = member_data.get("stateStr", "UNKNOWN")
        member = MemberStatus(
            name=member_data.get("name", ""),
            state=member_data.get("state", -1),
            state_str=state_str,
            health=int(member_data.get("health", 0)),
            uptime=member_data.get("uptime", 0)
        )
        members.append(member)

        if state_str == "PRIMARY":
            primary = member.name

    healthy_count = sum(1 for m in members if m.health == 1)
    if members and healthy_count == len(members):
        health = "ok"
    elif healthy_count > len(members) // 2:
        health = "degraded"
    else:
        health = "down"

    return ReplicaSetStatus(
        set_name=status_data.get("set", ""),
        primary=primary,
        members=members,
        health=health,
        term=status_data.get("term")
    )


class PyMongoAdminClient(AdminCommandClient):
    """AdminCommandClient backed by short-lived pymongo clients"""

    def __init__(self, poll_interval: Optional[float] = None):
        self.poll_interval = (
            settings.stability_poll_interval_seconds if poll_interval is None else poll_interval
        )

    @contextmanager
    def connect(
        self,
        targets: Sequence[NodeHandle],
        credentials: Optional[Credentials] = None
    ) -> Iterator[MongoClient]:
        """Open a client to the given nodes and close it on the way out"""
        options: Dict[str, Any] = {
            "serverSelectionTimeoutMS": settings.server_selection_timeout_ms,
            "connectTimeoutMS": settings.connect_timeout_ms
        }
        if len(targets) == 1:
            options["directConnection"] = True
        if credentials is not None:
            options["username"] = credentials.username
            options["password"] = credentials.password
            options["authSource"] = credentials.auth_source

        client = MongoClient([t.address for t in targets], **options)
        try:
            yield client
        finally:
            client.close()

    def run_command(
        self,
        target: NodeHandle,
        command: str,
        value: Any = 1,
        credentials: Optional[Credentials] = None
    ) -> Dict[str, Any]:
        """Run a single admin command, raising TransportError on network failure"""
        try:
            with self.connect([target], credentials) as client:
                return client.admin.command(command, value)
        except ConnectionFailure as e:
            logger.error(f"Command {command} against {target.address} failed: {e}")
            raise TransportError(f"Command {command} against {target.address} failed: {e}") from e

    def initiate(self, target, configuration, credentials=None):
        logger.info(f"Initiating replica set through {target.address}")
        result = self.run_command(target, "replSetInitiate", configuration.as_command(), credentials)
        logger.info(f"Command replSetInitiate has returned {result}")
        return result

    def add_shard(self, router, shard, credentials=None):
        logger.info(f"Adding shard {shard.address} through router {router.address}")
        result = self.run_command(router, "addShard", shard.address, credentials)
        logger.info(f"Command addShard has returned {result}")
        return result

    def wait_until_stable(self, targets, expected_ready_count, credentials=None, timeout=None):
        """
        Poll replSetGetStatus until the converged member count matches

        Transport failures and "not yet initialized" replies count as not yet
        stable on every call, authenticated or not. Any other command failure
        is raised.

        Args:
            targets: Seed list of ready nodes
            expected_ready_count: Number of members that must be converged
            credentials: Optional credentials for authenticated clusters
            timeout: Seconds before giving up; None waits indefinitely

        Returns:
            ReplicaSetStatus: The first status that satisfied the predicate
        """
        logger.info(
            f"Waiting for {expected_ready_count} member(s) to converge "
            f"({', '.join(t.address for t in targets)})"
        )

        def probe(client: MongoClient) -> Optional[ReplicaSetStatus]:
            status = parse_replica_set_status(
                client.admin.command(
                    "replSetGetStatus",
                    read_preference=ReadPreference.PRIMARY_PREFERRED
                )
            )
            converged = len(status.converged_members)
            logger.debug(f"Replica set {status.set_name}: {converged}/{expected_ready_count} converged")
            if converged == expected_ready_count:
                return status
            return None

        status = self._poll(targets, probe, credentials, timeout, "replica set to become stable")
        logger.info(f"Replica set {status.set_name} is stable (primary: {status.primary})")
        return status

    def wait_until_shards_registered(self, router, expected_shard_count, credentials=None, timeout=None):
        logger.info(f"Waiting for {expected_shard_count} shard(s) to register with {router.address}")

        def probe(client: MongoClient) -> Optional[List[ShardInfo]]:
            reply = client.admin.command("listShards")
            shards = [
                ShardInfo(shard_id=s["_id"], host=s["host"], state=s.get("state", 1))
                for s in reply.get("shards", [])
            ]
            logger.debug(f"{len(shards)}/{expected_shard_count} shard(s) registered")
            if len(shards) == expected_shard_count:
                return shards
            return None

        return self._poll([router], probe, credentials, timeout, "shards to register")

    def _poll(self, targets, probe, credentials, timeout, description):
        deadline = None if timeout is None else time.monotonic() + timeout

        with self.connect(targets, credentials) as client:
            while True:
                try:
                    result = probe(client)
                    if result is not None:
                        return result
                except ConnectionFailure as e:
                    logger.debug(f"Still waiting for {description}: {e}")
                except OperationFailure as e:
                    if e.code != NOT_YET_INITIALIZED:
                        raise
                    logger.debug(f"Still waiting for {description}: {e}")

                if deadline is not None and time.monotonic() >= deadline:
                    raise StabilityTimeoutError(f"Timeout waiting for {description} after {timeout}s")
                time.sleep(self.poll_interval)
