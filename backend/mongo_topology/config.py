from pydantic_settings import BaseSettings
from typing import Optional
import logging


class Settings(BaseSettings):
    """Library configuration"""

    # MongoDB
    mongodb_version: str = "7.0"
    mongodb_default_host: str = "localhost"

    # Docker
    docker_container_prefix: str = "mongo-topology"
    docker_memory_limit: str = "512m"

    # Node lifecycle
    node_start_timeout_seconds: float = 30.0
    node_stop_timeout_seconds: int = 10
    node_ping_interval_seconds: float = 0.5

    # Admin connections
    server_selection_timeout_ms: int = 5000
    connect_timeout_ms: int = 5000

    # Stability polling (None blocks until the topology converges)
    stability_poll_interval_seconds: float = 1.0
    stability_timeout_seconds: Optional[float] = None

    # Logging
    log_level: str = "INFO"

    @property
    def mongodb_image(self) -> str:
        return f"mongo:{self.mongodb_version}"

    class Config:
        env_file = ".env"
        env_prefix = "MONGO_TOPOLOGY_"
        case_sensitive = False


def configure_logging(level: Optional[str] = None):
    """Apply the configured log level and format to the root logger"""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


# Global settings instance
settings = Settings()
