from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


# ----------------------------- load parameters -----------------------------

class LoadType(str, Enum):
        CPU = "cpu"
        MEMORY = "memory"

        @classmethod
        def parse(cls, value: Any) -> "LoadType":
                name = str(value or "cpu").strip().lower()
                if name == "mem":
                        name = "memory"
                try:
                        return cls(name)
                except ValueError:
                        raise ValueError(f"unknown load type: {value!r}") from None


class Action(str, Enum):
        START = "start"
        STOP = "stop"

        @classmethod
        def parse(cls, value: Any) -> "Action":
                try:
                        return cls(str(value).strip().lower())
                except ValueError:
                        raise ValueError(f"unknown action: {value!r}") from None


@dataclass(frozen=True)
class LoadSpec:
        load_type: LoadType = LoadType.CPU
        cores: int = 1
        memory_mb: int = 1024

        def __post_init__(self) -> None:
                if self.memory_mb < 1:
                        raise ValueError(f"memoryMB must be positive, got {self.memory_mb}")

        @classmethod
        def from_params(cls, params: Mapping[str, Any]) -> "LoadSpec":
                """Build a spec from request parameters (``type``, ``cores``, ``memoryMB``)."""
                memory = params.get("memoryMB", params.get("memory_mb", 1024))
                return cls(
                        load_type=LoadType.parse(params.get("type", "cpu")),
                        cores=_strict_int(params.get("cores", 1), "cores"),
                        memory_mb=_strict_int(memory, "memoryMB"),
                )

        def to_params(self) -> Dict[str, Any]:
                return {"type": self.load_type.value, "cores": self.cores, "memoryMB": self.memory_mb}


# ----------------------------- node status -----------------------------

@dataclass
class StatusSnapshot:
        cpu_usage_percent: float
        used_memory_mb: int
        total_memory_mb: int
        available_processors: int
        pod_name: str
        running: bool

        def to_dict(self) -> Dict[str, Any]:
                return asdict(self)

        @classmethod
        def from_dict(cls, data: Mapping[str, Any]) -> "StatusSnapshot":
                return cls(
                        cpu_usage_percent=safe_float(data.get("cpu_usage_percent")),
                        used_memory_mb=safe_int(data.get("used_memory_mb")),
                        total_memory_mb=safe_int(data.get("total_memory_mb")),
                        available_processors=safe_int(data.get("available_processors")),
                        pod_name=str(data.get("pod_name") or "Unknown"),
                        running=bool(data.get("running", False)),
                )


@dataclass
class NodeOutcome:
        """Result of one control request sent to one node."""
        node: str
        outcome: str
        ok: bool = True

        def to_dict(self) -> Dict[str, Any]:
                return asdict(self)


@dataclass
class NodeStatus:
        """Status of one node as seen by the host; ``snapshot`` is None when unreachable."""
        node: str
        snapshot: Optional[StatusSnapshot] = None
        error: Optional[str] = None

        @property
        def unreachable(self) -> bool:
                return self.snapshot is None

        def to_dict(self) -> Dict[str, Any]:
                if self.snapshot is None:
                        return {
                                "node_url": self.node,
                                "error": "Unreachable",
                                "reason": self.error,
                                "pod_name": "Unknown",
                                "unreachable": True,
                        }
                data = self.snapshot.to_dict()
                data["node_url"] = self.node
                data["unreachable"] = False
                return data


@dataclass
class DiscoveredAdd:
        added_count: int = 0
        added: List[str] = field(default_factory=list)


# ----------------------------- helpers -----------------------------

def safe_float(x: Any, default: float = 0.0) -> float:
    try:
        return float(x)
    except Exception:
        return default


def safe_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return default


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def _strict_int(x: Any, name: str) -> int:
    try:
        return int(str(x).strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {x!r}") from None
