"""Environment-driven settings shared by the host and node processes."""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from loadtest.state import safe_float, safe_int

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

ROLES = ("host", "node")


@dataclass
class Settings:
    """Runtime configuration, read once at process start."""
    role: str = "node"
    port: int = 8080
    log_level: str = "INFO"
    node_timeout_s: float = 5.0
    fanout_workers: int = 16
    seed_path: str = "seed-nodes.yaml"
    chunk_mb: int = 10
    chunk_interval_s: float = 0.5
    backoff_s: float = 1.0
    cpu_percent_interval_s: float = 0.1

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from ``LOADTEST_*`` environment variables.

        Unparseable numbers fall back to the defaults instead of failing
        start-up; an unknown role falls back to ``node``.
        """
        env = os.environ if env is None else env
        defaults = cls()

        role = env.get("LOADTEST_ROLE", defaults.role).strip().lower()
        if role not in ROLES:
            logging.getLogger(__name__).warning(f"Unknown LOADTEST_ROLE {role!r}, using 'node'")
            role = "node"

        return cls(
            role=role,
            port=safe_int(env.get("LOADTEST_PORT"), defaults.port),
            log_level=env.get("LOADTEST_LOG_LEVEL", defaults.log_level).upper(),
            node_timeout_s=max(0.1, safe_float(env.get("LOADTEST_NODE_TIMEOUT_S"), defaults.node_timeout_s)),
            fanout_workers=max(1, safe_int(env.get("LOADTEST_FANOUT_WORKERS"), defaults.fanout_workers)),
            seed_path=env.get("LOADTEST_SEED_PATH", defaults.seed_path),
            chunk_mb=max(1, safe_int(env.get("LOADTEST_CHUNK_MB"), defaults.chunk_mb)),
            chunk_interval_s=max(0.0, safe_float(env.get("LOADTEST_CHUNK_INTERVAL_S"), defaults.chunk_interval_s)),
            backoff_s=max(0.0, safe_float(env.get("LOADTEST_BACKOFF_S"), defaults.backoff_s)),
            cpu_percent_interval_s=max(
                0.0,
                safe_float(env.get("LOADTEST_CPU_PERCENT_INTERVAL_S"), defaults.cpu_percent_interval_s),
            ),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
