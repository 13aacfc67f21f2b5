from abc import ABC, abstractmethod
from typing import List, Optional, Sequence
import logging
import time

from pymongo import MongoClient
from pymongo.errors import ConnectionFailure

from mongo_topology.config import settings
from mongo_topology.errors import ProcessError
from mongo_topology.services.docker_manager import DockerManager

logger = logging.getLogger(__name__)


class NodeHandle(ABC):
    """
    One managed MongoDB server process.

    The handle owns its readiness flag. Controllers only read it, and read it
    again before every decision.
    """

    @property
    @abstractmethod
    def host(self) -> str: ...

    @property
    @abstractmethod
    def port(self) -> int: ...

    @abstractmethod
    def start(self) -> None:
        """Launch the process and block until it accepts connections"""

    @abstractmethod
    def stop(self) -> None:
        """Stop the process"""

    @abstractmethod
    def is_ready(self) -> bool: ...

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def __repr__(self) -> str:
        state = "ready" if self.is_ready() else "stopped"
        return f"<{type(self).__name__} {self.address} {state}>"


class DockerNodeHandle(NodeHandle):
    """A mongod or mongos running in its own Docker container"""

    def __init__(
        self,
        node_id: str,
        port: int,
        command: Sequence[str],
        docker_manager: DockerManager,
        host: Optional[str] = None
    ):
        self.node_id = node_id
        self._port = port
        self._host = host or settings.mongodb_default_host
        self.command = list(command)
        self.docker_manager = docker_manager
        self._ready = False

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    def is_ready(self) -> bool:
        return self._ready

    def start(self):
        logger.info(f"Starting node {self.node_id} on port {self.port}")
        self.docker_manager.run_node(self.node_id, self.command)
        self._wait_until_accepting_connections()
        self._ready = True
        logger.info(f"Node {self.node_id} is ready on {self.address}")

    def stop(self):
        logger.info(f"Stopping node {self.node_id} on port {self.port}")
        self.docker_manager.stop_node(self.node_id)
        self._ready = False

    def _wait_until_accepting_connections(self):
        deadline = time.monotonic() + settings.node_start_timeout_seconds

        while True:
            client = MongoClient(
                self.host,
                self.port,
                directConnection=True,
                serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
                connectTimeoutMS=settings.connect_timeout_ms
            )
            try:
                client.admin.command("ping")
                return
            except ConnectionFailure as e:
                logger.debug(f"Node {self.node_id} not answering yet: {e}")
            finally:
                client.close()

            if time.monotonic() >= deadline:
                logs = self.docker_manager.get_container_logs(self.node_id)
                raise ProcessError(
                    f"Node {self.node_id} did not accept connections on {self.address} "
                    f"within {settings.node_start_timeout_seconds}s. Last container output:\n{logs}"
                )
            time.sleep(settings.node_ping_interval_seconds)


def _mongod(port: int, *extra: str) -> List[str]:
    return ["mongod", "--port", str(port), "--bind_ip_all", *extra]


def replica_set_member(
    docker_manager: DockerManager,
    node_id: str,
    port: int,
    replica_set_name: str
) -> DockerNodeHandle:
    """Plain replica set member"""
    return DockerNodeHandle(
        node_id, port, _mongod(port, "--replSet", replica_set_name), docker_manager
    )


def shard_server(
    docker_manager: DockerManager,
    node_id: str,
    port: int,
    replica_set_name: Optional[str] = None
) -> DockerNodeHandle:
    """Shard server, optionally itself a replica set member"""
    extra = ["--shardsvr"]
    if replica_set_name:
        extra += ["--replSet", replica_set_name]
    return DockerNodeHandle(node_id, port, _mongod(port, *extra), docker_manager)


def config_server(
    docker_manager: DockerManager,
    node_id: str,
    port: int,
    replica_set_name: str
) -> DockerNodeHandle:
    """Config server; config servers always run as a replica set"""
    return DockerNodeHandle(
        node_id,
        port,
        _mongod(port, "--configsvr", "--replSet", replica_set_name),
        docker_manager
    )


def router(
    docker_manager: DockerManager,
    node_id: str,
    port: int,
    config_replica_set_name: str,
    config_servers: Sequence[NodeHandle]
) -> DockerNodeHandle:
    """mongos router pointed at the config server replica set"""
    seeds = ",".join(node.address for node in config_servers)
    command = [
        "mongos",
        "--port", str(port),
        "--bind_ip_all",
        "--configdb", f"{config_replica_set_name}/{seeds}"
    ]
    return DockerNodeHandle(node_id, port, command, docker_manager)
