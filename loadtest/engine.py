"""Node-local stress engine: CPU burn processes and a memory ramp thread."""

from __future__ import annotations

import math
import threading
import logging
import multiprocessing
from typing import Any, List, Optional

from loadtest.state import LoadSpec, LoadType, clamp
from loadtest.reporter import available_processors

logger = logging.getLogger(__name__)

MB = 1024 * 1024


def effective_cores(requested: int, available: int) -> int:
	"""Clamp a requested core count to ``[1, available]``."""
	return int(clamp(int(requested), 1, int(available)))


def burn_once(iterations: int) -> float:
	"""One batch of trig/sqrt work; the sum is returned so it cannot be skipped."""
	result = 0.0
	for j in range(iterations):
		result += math.tan(math.atan(math.sqrt(j * 1.01)))
	return result


def burn_cpu(stop_event: Any, iterations: int = 1000) -> None:
	"""
	Spin on floating-point work until ``stop_event`` is set.

	Runs in a child process; the event is checked once per batch of
	``iterations`` operations.
	"""
	while not stop_event.is_set():
		burn_once(iterations)


class MemoryRamp(threading.Thread):
	"""
	Grows a list of fixed-size chunks up to a target, holds it, then frees it.

	The ramp waits ``chunk_interval_s`` between chunks. A ``MemoryError``
	makes it back off and retry; after ``max_alloc_failures`` consecutive
	failures it stops growing and holds what it has.
	"""

	def __init__(
		self,
		stop_event: Any,
		target_mb: int,
		chunk_mb: int = 10,
		chunk_interval_s: float = 0.5,
		backoff_s: float = 1.0,
		max_alloc_failures: int = 3,
		hold_poll_s: float = 1.0,
	) -> None:
		super().__init__(name="stress-memory", daemon=True)
		self.stop_event = stop_event
		self.target_bytes = target_mb * MB
		self.chunk_bytes = max(1, chunk_mb) * MB
		self.chunk_interval_s = chunk_interval_s
		self.backoff_s = backoff_s
		self.max_alloc_failures = max_alloc_failures
		self.hold_poll_s = hold_poll_s

		self.capped = False
		self._chunks: List[bytes] = []
		self._allocated = 0

	@property
	def allocated_mb(self) -> float:
		return self._allocated / MB

	def allocate(self, size: int) -> bytes:
		# Filled rather than zeroed so the pages are actually committed.
		return b"\xa5" * size

	def run(self) -> None:
		failures = 0
		logger.info(f"Memory ramp started: target {self.target_bytes // MB}MB")
		while not self.stop_event.is_set() and self._allocated < self.target_bytes:
			size = min(self.chunk_bytes, self.target_bytes - self._allocated)
			try:
				self._chunks.append(self.allocate(size))
			except MemoryError:
				failures += 1
				logger.warning(
					f"Allocation of {size // MB}MB failed at {self.allocated_mb:.0f}MB "
					f"({failures}/{self.max_alloc_failures})"
				)
				if failures >= self.max_alloc_failures:
					self.capped = True
					logger.warning(f"Memory ramp capped at {self.allocated_mb:.0f}MB")
					break
				self.stop_event.wait(self.backoff_s)
				continue
			failures = 0
			self._allocated += size
			self.stop_event.wait(self.chunk_interval_s)

		while not self.stop_event.wait(self.hold_poll_s):
			pass

		self._chunks.clear()
		self._allocated = 0
		logger.info("Memory ramp released")


class StressRun:
	"""One start() worth of workers, all sharing a single stop event."""

	def __init__(self, spec: LoadSpec, stop_event: Any, effective_cores: int = 0) -> None:
		self.spec = spec
		self.stop_event = stop_event
		self.effective_cores = effective_cores
		self.processes: List[multiprocessing.process.BaseProcess] = []
		self.memory: Optional[MemoryRamp] = None

	@property
	def workers(self) -> List[Any]:
		workers: List[Any] = list(self.processes)
		if self.memory is not None:
			workers.append(self.memory)
		return workers

	def signal(self) -> None:
		self.stop_event.set()

	def alive_workers(self) -> List[Any]:
		return [w for w in self.workers if w.is_alive()]

	def join(self, timeout: float) -> bool:
		"""Wait up to ``timeout`` seconds per worker; True if every worker exited."""
		for worker in self.workers:
			worker.join(timeout)
		return not self.alive_workers()


class StressEngine:
	"""
	Owns the Idle / Running(spec) lifecycle of the node's synthetic load.

	Every run gets its own stop event, so workers of a stopped run can
	never observe the flag of a later run. Transitions are serialized by
	an internal lock.
	"""

	def __init__(
		self,
		cpu_count: Optional[int] = None,
		burn_iterations: int = 1000,
		chunk_mb: int = 10,
		chunk_interval_s: float = 0.5,
		backoff_s: float = 1.0,
		max_alloc_failures: int = 3,
		drain_timeout_s: float = 5.0,
		mp_context: Optional[Any] = None,
	) -> None:
		"""
		Initialize the engine.

		Args:
			cpu_count: Processors to clamp against (default: detected)
			burn_iterations: Operations per stop-flag check in CPU workers
			chunk_mb: Memory ramp chunk size
			chunk_interval_s: Pause between memory chunks
			backoff_s: Pause after a failed allocation
			max_alloc_failures: Consecutive failures before the ramp caps out
			drain_timeout_s: How long start() waits for a previous run to exit
			mp_context: multiprocessing context used for CPU workers
		"""
		self.cpu_count = cpu_count
		self.burn_iterations = burn_iterations
		self.chunk_mb = chunk_mb
		self.chunk_interval_s = chunk_interval_s
		self.backoff_s = backoff_s
		self.max_alloc_failures = max_alloc_failures
		self.drain_timeout_s = drain_timeout_s
		self._ctx = mp_context or multiprocessing.get_context()

		self._lock = threading.Lock()
		self._current: Optional[StressRun] = None
		self._retired: List[StressRun] = []

	@property
	def running(self) -> bool:
		run = self._current
		return run is not None and not run.stop_event.is_set()

	@property
	def current(self) -> Optional[StressRun]:
		return self._current

	def available_processors(self) -> int:
		return self.cpu_count if self.cpu_count else available_processors()

	# -------- lifecycle --------

	def start(self, spec: LoadSpec) -> StressRun:
		"""
		Start a run for ``spec``, stopping and draining any current run first.

		Raises:
			OSError, MemoryError, RuntimeError: If a worker could not be spawned; workers
				already started for this run are stopped before re-raising
		"""
		with self._lock:
			if self._current is not None:
				logger.info("Load already running, restarting with new parameters")
				self._stop_locked()
			self._drain_locked()

			run = StressRun(spec, self._ctx.Event())
			try:
				self._spawn_locked(run)
			except (OSError, MemoryError, RuntimeError) as e:
				logger.error(f"Failed to start {spec.load_type.value} stress: {e}")
				run.signal()
				self._retired.append(run)
				self._drain_locked()
				raise
			self._current = run
			return run

	def _spawn_locked(self, run: StressRun) -> None:
		spec = run.spec
		if spec.load_type is LoadType.CPU:
			run.effective_cores = effective_cores(spec.cores, self.available_processors())
			for i in range(run.effective_cores):
				proc = self._ctx.Process(
					target=burn_cpu,
					args=(run.stop_event, self.burn_iterations),
					name=f"stress-cpu-{i}",
					daemon=True,
				)
				proc.start()
				run.processes.append(proc)
			logger.info(f"CPU stress started on {run.effective_cores} cores (requested {spec.cores})")
		else:
			ramp = MemoryRamp(
				run.stop_event,
				spec.memory_mb,
				chunk_mb=self.chunk_mb,
				chunk_interval_s=self.chunk_interval_s,
				backoff_s=self.backoff_s,
				max_alloc_failures=self.max_alloc_failures,
			)
			ramp.start()
			run.memory = ramp
			logger.info(f"Memory stress started: target {spec.memory_mb}MB")

	def stop(self) -> bool:
		"""Signal the current run to stop; returns False if nothing was running."""
		with self._lock:
			return self._stop_locked()

	def shutdown(self) -> None:
		"""Stop and wait for every worker this engine has started."""
		with self._lock:
			self._stop_locked()
			self._drain_locked()

	def _stop_locked(self) -> bool:
		run = self._current
		if run is None:
			return False
		self._current = None
		was_running = not run.stop_event.is_set()
		run.signal()
		self._retired.append(run)
		logger.info("Load stopped")
		return was_running

	def _drain_locked(self) -> None:
		for run in self._retired:
			if run.join(self.drain_timeout_s):
				continue
			for worker in run.alive_workers():
				if isinstance(worker, multiprocessing.process.BaseProcess):
					logger.warning(f"Worker {worker.name} ignored stop signal, terminating")
					worker.terminate()
					worker.join(self.drain_timeout_s)
				else:
					logger.warning(f"Worker {worker.name} still running after {self.drain_timeout_s}s")
		self._retired.clear()
