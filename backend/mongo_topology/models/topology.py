from typing import Any, Dict, List, Literal, Optional
from enum import Enum
import copy

from pydantic import BaseModel, ConfigDict, Field


class NodeRole(str, Enum):
    """Role partition a node is registered under"""
    MEMBER = "member"
    SHARD = "shard"
    CONFIG = "config"
    ROUTER = "router"


class ControllerState(str, Enum):
    """Lifecycle of one setup/teardown cycle"""
    IDLE = "idle"
    WAKING_NODES = "waking_nodes"
    INITIATING = "initiating"
    AWAITING_STABILITY = "awaiting_stability"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    DONE = "done"


class Credentials(BaseModel):
    """Credentials used for authenticated admin commands"""
    model_config = ConfigDict(frozen=True)

    username: str = Field(..., min_length=1, description="Admin user name")
    password: str = Field(..., min_length=1, description="Admin password", repr=False)
    auth_source: str = Field(default="admin", description="Authentication database")


class ConfigurationDocument(BaseModel):
    """Engine-native configuration payload handed to initiation commands"""
    model_config = ConfigDict(frozen=True)

    configuration: Dict[str, Any] = Field(..., description="Opaque command document")

    def as_command(self) -> Dict[str, Any]:
        """Return a copy of the payload that callers are free to mutate"""
        return copy.deepcopy(self.configuration)


class MemberStatus(BaseModel):
    """Status of a single replica set member"""
    name: str = Field(..., description="Member address (host:port)")
    state: int = Field(..., description="Numeric member state")
    state_str: str = Field(..., description="Human-readable state string")
    health: int = Field(..., description="Health status (0=down, 1=up)")
    uptime: int = Field(default=0, description="Uptime in seconds")


class ReplicaSetStatus(BaseModel):
    """Status of a replica set as reported by replSetGetStatus"""
    set_name: str = Field(..., description="Replica set name")
    primary: Optional[str] = Field(None, description="Address of the current primary")
    members: List[MemberStatus] = Field(default_factory=list, description="List of member statuses")
    health: Literal["ok", "degraded", "down"] = Field(
        ...,
        description="Overall health status"
    )
    term: Optional[int] = Field(None, description="Current election term")

    @property
    def converged_members(self) -> List[MemberStatus]:
        """Healthy members that have settled into a data-bearing or arbiter role"""
        return [
            m for m in self.members
            if m.health == 1 and m.state_str in ("PRIMARY", "SECONDARY", "ARBITER")
        ]


class ShardInfo(BaseModel):
    """Information about a shard registered with a router"""
    shard_id: str = Field(..., description="Shard identifier")
    host: str = Field(..., description="Shard host connection string")
    state: int = Field(default=1, description="Shard state (1=active)")
