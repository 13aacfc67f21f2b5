"""
Pytest configuration for integration tests
"""
import pytest
import docker
import time
import logging

from mongo_topology.config import configure_logging
from mongo_topology.services.docker_manager import DockerManager
from mongo_topology.services.node_handle import replica_set_member
from mongo_topology.services.topology_controller import ReplicaSetController
from mongo_topology.services.topology_group import ReplicaSetGroup, build_replica_set_configuration

configure_logging("INFO")
logger = logging.getLogger(__name__)

TEST_REPLICA_SET = "test-rs"
TEST_PORT_START = 27100
TEST_NODE_COUNT = 3
TEST_STABILITY_TIMEOUT = 120


@pytest.fixture(scope="session")
def docker_client():
    """Get Docker client, skipping the suite when no daemon is reachable."""
    try:
        client = docker.from_env()
        client.ping()
    except docker.errors.DockerException as e:
        pytest.skip(f"Docker is not available: {e}")
    yield client
    client.close()


@pytest.fixture(scope="session")
def docker_manager(docker_client):
    """Docker manager that removes leftover containers before and after the session."""
    manager = DockerManager(client=docker_client)
    manager.cleanup_all()

    yield manager

    logger.info("Test session complete. Cleaning up...")
    manager.cleanup_all()


@pytest.fixture(scope="module")
def replica_set_group(docker_manager):
    """Three-member replica set on consecutive ports."""
    members = [
        replica_set_member(
            docker_manager,
            f"{TEST_REPLICA_SET}-node{i + 1}",
            TEST_PORT_START + i,
            TEST_REPLICA_SET
        )
        for i in range(TEST_NODE_COUNT)
    ]

    group = ReplicaSetGroup(configuration=build_replica_set_configuration(TEST_REPLICA_SET, members))
    for member in members:
        group.add_server(member)
    return group


@pytest.fixture(scope="module")
def controller(replica_set_group):
    """Controller whose topology is torn down when the module finishes."""
    controller = ReplicaSetController(replica_set_group, stability_timeout=TEST_STABILITY_TIMEOUT)
    yield controller
    controller.teardown()


def wait_for_condition(condition_fn, timeout=60, interval=2, description="condition"):
    """Wait for a condition to be true."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            if condition_fn():
                return True
        except Exception as e:
            logger.debug(f"Waiting for {description}: {e}")
        time.sleep(interval)
    raise TimeoutError(f"Timeout waiting for {description} after {timeout}s")
