import docker
from docker.models.containers import Container
from typing import Dict, List, Optional
import logging

from mongo_topology.config import settings
from mongo_topology.errors import ProcessError

logger = logging.getLogger(__name__)


class DockerManager:
    """Manages Docker containers that host MongoDB nodes"""

    def __init__(self, client: Optional[docker.DockerClient] = None):
        """Initialize Docker client"""
        try:
            self.client = client or docker.from_env()
            self.client.ping()
            logger.info("Docker client initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Docker client: {e}")
            raise

        self.containers: Dict[str, Container] = {}

    def get_container_name(self, node_id: str) -> str:
        """Generate container name from node ID"""
        return f"{settings.docker_container_prefix}-{node_id}"

    def _lookup(self, node_id: str) -> Optional[Container]:
        """Return the cached container, falling back to Docker itself"""
        if node_id in self.containers:
            return self.containers[node_id]

        try:
            container = self.client.containers.get(self.get_container_name(node_id))
        except docker.errors.NotFound:
            return None

        self.containers[node_id] = container
        return container

    def run_node(self, node_id: str, command: List[str]) -> Container:
        """
        Start the container for a node, creating it on first use

        Containers use host networking so that the addresses written into
        replica set and sharding configuration are the same ones the host
        connects to.

        Args:
            node_id: Unique identifier for the node
            command: Server command line (mongod or mongos)

        Returns:
            Container: The running Docker container
        """
        container_name = self.get_container_name(node_id)

        try:
            container = self._lookup(node_id)
            if container is not None:
                container.reload()
                if container.status != "running":
                    container.start()
                    logger.info(f"Started existing container {container_name}")
                return container

            container = self.client.containers.run(
                image=settings.mongodb_image,
                name=container_name,
                command=command,
                network_mode="host",
                mem_limit=settings.docker_memory_limit,
                detach=True,
                remove=False
            )
            self.containers[node_id] = container
            logger.info(f"Created container {container_name}: {' '.join(command)}")
            return container

        except docker.errors.DockerException as e:
            logger.error(f"Failed to run container {container_name}: {e}")
            raise ProcessError(f"Failed to run container {container_name}: {e}") from e

    def stop_node(self, node_id: str):
        """Stop a node's container, leaving it in place for a later restart"""
        container_name = self.get_container_name(node_id)

        try:
            container = self._lookup(node_id)
            if container is None:
                raise ProcessError(f"Container {container_name} not found")

            container.stop(timeout=settings.node_stop_timeout_seconds)
            logger.info(f"Stopped container {container_name}")

        except docker.errors.DockerException as e:
            logger.error(f"Failed to stop container {container_name}: {e}")
            raise ProcessError(f"Failed to stop container {container_name}: {e}") from e

    def get_container_logs(self, node_id: str, tail: int = 20) -> str:
        """Get the last lines logged by a node's container"""
        container_name = self.get_container_name(node_id)
        try:
            container = self._lookup(node_id)
            if container is None:
                return ""
            # logs returns bytes, decode to string
            return container.logs(tail=tail).decode('utf-8', errors="replace")
        except docker.errors.DockerException as e:
            logger.error(f"Failed to get logs for {container_name}: {e}")
            return f"Error retrieving logs: {e}"

    def cleanup_all(self):
        """Remove every container carrying the configured prefix"""
        logger.info("Cleaning up all mongo-topology containers")

        containers = self.client.containers.list(
            all=True,
            filters={"name": settings.docker_container_prefix}
        )
        for container in containers:
            try:
                container.remove(force=True)
                logger.info(f"Removed container {container.name}")
            except docker.errors.APIError as e:
                logger.error(f"Failed to remove container {container.name}: {e}")

        self.containers.clear()
