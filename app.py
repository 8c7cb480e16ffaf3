from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import yaml

from loadtest.client import NodeClient
from loadtest.config import Settings, configure_logging
from loadtest.discovery import DiscoveryResolver
from loadtest.engine import StressEngine
from loadtest.fanout import Aggregator, Broadcaster
from loadtest.host_api import create_host_app, register_from_input
from loadtest.node_api import create_node_app
from loadtest.registry import NodeRegistry
from loadtest.reporter import StatusReporter

logger = logging.getLogger(__name__)


def load_seed_nodes(path: Path) -> List[str]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("nodes", [])
    if not isinstance(data, list):
        return []
    return [str(item).strip() for item in data if item and str(item).strip()]


def seed_registry(registry: NodeRegistry, resolver: DiscoveryResolver, path: Path) -> int:
    """Register every node listed in the seed file. Safe to call multiple times."""
    if not path.exists():
        logger.info(f"No seed file at {path}, starting with an empty registry")
        return 0
    try:
        entries = load_seed_nodes(path)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to read seed file {path}: {e}")
        return 0

    added = 0
    for raw in entries:
        summary = register_from_input(registry, resolver, raw)
        added += summary["added_count"]
        logger.info(f"Seed {raw}: {summary['message']}")
    return added


def build_host_app(settings: Settings):
	registry = NodeRegistry()
	resolver = DiscoveryResolver()
	client = NodeClient(timeout_s=settings.node_timeout_s)
	seed_registry(registry, resolver, Path(settings.seed_path))
	return create_host_app(
		registry,
		resolver,
		Broadcaster(registry, client, max_workers=settings.fanout_workers),
		Aggregator(registry, client, max_workers=settings.fanout_workers),
	)


def build_node_app(settings: Settings):
	engine = StressEngine(
		chunk_mb=settings.chunk_mb,
		chunk_interval_s=settings.chunk_interval_s,
		backoff_s=settings.backoff_s,
	)
	reporter = StatusReporter(engine, cpu_percent_interval_s=settings.cpu_percent_interval_s)
	return create_node_app(engine, reporter)


def build_app(settings: Optional[Settings] = None):
	"""Build the Flask app for the role selected by LOADTEST_ROLE."""
	settings = settings or Settings.from_env()
	configure_logging(settings.log_level)
	if settings.role == "host":
		app = build_host_app(settings)
	else:
		app = build_node_app(settings)
	app.config['settings'] = settings
	logger.info(f"Built {settings.role} app")
	return app


# Build app at module level (for gunicorn)
app = build_app()


if __name__ == "__main__":
	app.run(host="0.0.0.0", port=app.config['settings'].port, threaded=True)
