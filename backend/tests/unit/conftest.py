"""
Shared fakes for unit tests: spy node handles and a recording admin client.
"""
import pytest
from typing import List, Optional

from mongo_topology.errors import ProcessError
from mongo_topology.models.topology import ReplicaSetStatus
from mongo_topology.services.admin_commands import AdminCommandClient
from mongo_topology.services.node_handle import NodeHandle
from mongo_topology.services.topology_group import (
    ReplicaSetGroup,
    build_replica_set_configuration
)


class SpyNodeHandle(NodeHandle):
    """In-memory node that counts start/stop calls"""

    def __init__(self, port: int, ready: bool = False, host: str = "localhost",
                 fail_on_start: bool = False, fail_on_stop: bool = False):
        self._host = host
        self._port = port
        self._ready = ready
        self.fail_on_start = fail_on_start
        self.fail_on_stop = fail_on_stop
        self.start_calls = 0
        self.stop_calls = 0

    @property
    def host(self):
        return self._host

    @property
    def port(self):
        return self._port

    def is_ready(self):
        return self._ready

    def start(self):
        self.start_calls += 1
        if self.fail_on_start:
            raise ProcessError(f"cannot start {self.address}")
        self._ready = True

    def stop(self):
        self.stop_calls += 1
        if self.fail_on_stop:
            raise ProcessError(f"cannot stop {self.address}")
        self._ready = False


class RecordingAdminClient(AdminCommandClient):
    """Admin client that records every call instead of talking to MongoDB"""

    def __init__(self):
        self.calls: List[tuple] = []

    def named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    def initiate(self, target, configuration, credentials=None):
        self.calls.append(("initiate", target, configuration, credentials))
        return {"ok": 1.0}

    def add_shard(self, router, shard, credentials=None):
        self.calls.append(("add_shard", router, shard, credentials))
        return {"ok": 1.0, "shardAdded": f"shard{len(self.named('add_shard'))}"}

    def wait_until_stable(self, targets, expected_ready_count, credentials=None, timeout=None):
        self.calls.append(("wait_until_stable", list(targets), expected_ready_count, credentials))
        return ReplicaSetStatus(set_name="rs0", primary=targets[0].address, members=[], health="ok")

    def wait_until_shards_registered(self, router, expected_shard_count, credentials=None, timeout=None):
        self.calls.append(("wait_until_shards_registered", router, expected_shard_count, credentials))
        return []


def make_replica_set(ports: List[int], ready: Optional[List[bool]] = None, **credentials) -> ReplicaSetGroup:
    ready = ready or [False] * len(ports)
    handles = [SpyNodeHandle(port, ready=r) for port, r in zip(ports, ready)]
    group = ReplicaSetGroup(
        configuration=build_replica_set_configuration("rs0", handles),
        **credentials
    )
    for handle in handles:
        group.add_server(handle)
    return group


@pytest.fixture
def admin():
    return RecordingAdminClient()


@pytest.fixture
def replica_set():
    """Three stopped members on 27017-27019"""
    return make_replica_set([27017, 27018, 27019])
