from __future__ import annotations

from typing import Any, Optional

from flask import Flask, Response, jsonify, request

from loadtest.discovery import DiscoveryResolver, normalize_node_url
from loadtest.fanout import Aggregator, Broadcaster, is_empty_sentinel, render_text
from loadtest.registry import AddResult, NodeRegistry
from loadtest.state import Action, LoadSpec


def register_from_input(registry: NodeRegistry, resolver: DiscoveryResolver, raw: str) -> dict:
	"""Resolve ``raw`` and add every candidate; returns a summary for the operator."""
	discovery = resolver.resolve(raw)
	if discovery.fallback:
		url = discovery.candidates[0]
		added = registry.add(url) is AddResult.ADDED
		message = f"Node added (DNS resolution failed): {url}" if added else f"Node already exists: {url}"
		return {
			"found": 0,
			"added_count": int(added),
			"added": [url] if added else [],
			"fallback": True,
			"message": message,
		}

	result = registry.add_discovered(discovery.candidates)
	return {
		"found": len(discovery.addresses),
		"added_count": result.added_count,
		"added": result.added,
		"fallback": False,
		"message": f"Found {len(discovery.addresses)} IPs. Added {result.added_count} new nodes.",
	}


def _text(body: str, status: int = 200) -> Response:
	return Response(body, status=status, mimetype="text/plain")


def _wants_json() -> bool:
	return request.args.get("format", "").lower() == "json"


def _raw_node_input() -> Optional[str]:
	body = request.get_json(silent=True) if request.is_json else None
	if isinstance(body, dict):
		raw = body.get("url")
	elif isinstance(body, str):
		raw = body
	else:
		raw = request.get_data(as_text=True)
	raw = (raw or "").strip()
	return raw or None


def create_host_app(
	registry: NodeRegistry,
	resolver: DiscoveryResolver,
	broadcaster: Broadcaster,
	aggregator: Aggregator,
) -> Flask:
	app = Flask(__name__)
	app.config['node_registry'] = registry

	@app.post("/api/nodes")
	def add_node() -> Any:
		raw = _raw_node_input()
		if raw is None:
			return jsonify({"error": "missing node URL"}), 400
		summary = register_from_input(registry, resolver, raw)
		if _wants_json():
			return jsonify(summary)
		return _text(summary["message"])

	@app.post("/api/nodes/manual")
	def add_node_manual() -> Any:
		raw = _raw_node_input()
		if raw is None:
			return jsonify({"error": "missing node URL"}), 400
		url = normalize_node_url(raw)
		if registry.add(url) is AddResult.ADDED:
			return _text(f"Node added: {url}")
		return _text(f"Node already exists: {url}")

	@app.get("/api/nodes")
	def list_nodes() -> Any:
		return jsonify(registry.list())

	@app.delete("/api/nodes")
	def clear_nodes() -> Any:
		registry.clear()
		return _text("Nodes cleared")

	@app.post("/api/control/<action>")
	def control_load(action: str) -> Any:
		try:
			parsed = Action.parse(action)
			spec = LoadSpec.from_params(request.args) if parsed is Action.START else None
		except ValueError as e:
			return jsonify({"error": str(e)}), 400

		results = broadcaster.broadcast(parsed, spec)
		if _wants_json():
			if is_empty_sentinel(results):
				return jsonify({"results": [], "message": results[0].outcome})
			return jsonify({"results": [r.to_dict() for r in results]})
		return _text(render_text(results))

	@app.get("/api/cluster-stats")
	def cluster_stats() -> Any:
		return jsonify([status.to_dict() for status in aggregator.aggregate_status()])

	@app.get("/healthz")
	def healthz() -> Any:
		return jsonify({"status": "ok", "role": "host", "nodes": len(registry)})

	return app
