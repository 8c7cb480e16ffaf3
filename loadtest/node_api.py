from __future__ import annotations

import os
import time
from typing import Any

from flask import Flask, jsonify, request

from loadtest.engine import StressEngine, burn_once
from loadtest.reporter import StatusReporter, pod_identity
from loadtest.state import LoadSpec, LoadType

DEFAULT_CPU_ITERATIONS = 1_000_000
MEMORY_TOUCH_BYTES = 1024 * 1024


def create_node_app(engine: StressEngine, reporter: StatusReporter) -> Flask:
	app = Flask(__name__)
	app.config['stress_engine'] = engine
	app.config['status_reporter'] = reporter

	@app.get("/api/load/start")
	def start_load() -> Any:
		try:
			spec = LoadSpec.from_params(request.args)
		except ValueError as e:
			return jsonify({"error": str(e)}), 400

		try:
			run = engine.start(spec)
		except (OSError, MemoryError, RuntimeError) as e:
			return jsonify({"error": f"could not start load on {pod_identity()}: {e}"}), 503
		if spec.load_type is LoadType.CPU:
			return (
				f"CPU Stress Scenarios Started on {run.effective_cores} cores "
				f"(Requested: {spec.cores}). Pod: {pod_identity()}"
			)
		return f"Memory Stress Started: Target {spec.memory_mb}MB. Pod: {pod_identity()}"

	@app.get("/api/load/stop")
	def stop_load() -> Any:
		if engine.stop():
			return f"Load Stopped on {pod_identity()}"
		return f"Load was not running on {pod_identity()}"

	@app.get("/api/status")
	def status() -> Any:
		return jsonify(reporter.snapshot().to_dict())

	# Per-request endpoints for HTTP load tools: each call does its work inline.

	@app.get("/api/load")
	def check_load() -> Any:
		return f"Load Test OK: {int(time.time() * 1000)}"

	@app.get("/api/cpu")
	def cpu_task() -> Any:
		raw = request.args.get("iterations", DEFAULT_CPU_ITERATIONS)
		try:
			iterations = int(str(raw).strip())
		except ValueError:
			return jsonify({"error": f"iterations must be an integer, got {raw!r}"}), 400
		if iterations < 0:
			return jsonify({"error": "iterations must not be negative"}), 400
		result = burn_once(iterations)
		return f"CPU Load Task Completed. Iterations: {iterations}, Result: {result}"

	@app.get("/api/memory")
	def memory_task() -> Any:
		data = os.urandom(MEMORY_TOUCH_BYTES)
		return f"Allocated {len(data) // MEMORY_TOUCH_BYTES}MB of data."

	@app.get("/api/stats")
	def stats() -> Any:
		return jsonify(reporter.stats())

	@app.get("/healthz")
	def healthz() -> Any:
		return jsonify({"status": "ok", "role": "node"})

	return app
