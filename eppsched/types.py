"""Core data types used throughout a scheduling cycle."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol


@dataclass(frozen=True)
class NamespacedName:
    """A namespace and name pair identifying an object."""

    namespace: str = ""
    name: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class BackendPod:
    """Identity and addressing information of a model-server pod."""

    namespaced_name: NamespacedName = field(default_factory=NamespacedName)
    address: str = ""
    labels: dict[str, str] = field(default_factory=dict)

    def clone(self) -> BackendPod:
        return BackendPod(
            namespaced_name=self.namespaced_name,
            address=self.address,
            labels=dict(self.labels or {}),
        )


@dataclass
class MetricsState:
    """Load metrics reported by a model server."""

    waiting_queue_size: int = 0
    kv_cache_usage_percent: float = 0.0
    max_active_models: int = 0
    active_models: dict[str, int] = field(default_factory=dict)
    waiting_models: dict[str, int] = field(default_factory=dict)

    def clone(self) -> MetricsState:
        return MetricsState(
            waiting_queue_size=self.waiting_queue_size,
            kv_cache_usage_percent=self.kv_cache_usage_percent,
            max_active_models=self.max_active_models,
            active_models=dict(self.active_models or {}),
            waiting_models=dict(self.waiting_models or {}),
        )


class Pod(Protocol):
    """A scheduling candidate exposing its backend pod and metrics."""

    @property
    def pod(self) -> BackendPod: ...

    @property
    def metrics(self) -> MetricsState: ...


@dataclass(eq=False)
class PodMetrics:
    """A snapshot of a pod and its metrics; hashed by identity."""

    pod: BackendPod = field(default_factory=BackendPod)
    metrics: MetricsState = field(default_factory=MetricsState)


@dataclass(eq=False)
class ScoredPod:
    """A candidate pod together with its accumulated score."""

    pod_metrics: Any
    score: float = 0.0

    @property
    def pod(self) -> BackendPod:
        return self.pod_metrics.pod

    @property
    def metrics(self) -> MetricsState:
        return self.pod_metrics.metrics


@dataclass
class LLMRequest:
    """The fields parsed out of an inference request that scheduling needs."""

    request_id: str = ""
    target_model: str = ""
    prompt: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return (
            f"RequestID: {self.request_id}, TargetModel: {self.target_model}, "
            f"PromptLength: {len(self.prompt.encode('utf-8'))}, "
            f"Headers: {dict(self.headers or {})}"
        )


@dataclass
class ProfileRunResult:
    """The outcome of running one scheduler profile."""

    target_pod: Any = None


@dataclass
class SchedulingResult:
    """The outcome of a whole scheduling cycle."""

    profile_results: dict[str, ProfileRunResult | None] = field(default_factory=dict)
    primary_profile_name: str = ""


class StateNotFoundError(LookupError):
    """Raised when a cycle-state key is absent."""

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"not found: {self.key!r}"


class StateData(Protocol):
    """Arbitrary plugin data stored in a CycleState."""

    def clone(self) -> StateData: ...


class CycleState:
    """Thread-safe storage plugins share during one scheduling cycle."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._storage: dict[str, StateData] = {}

    def read(self, key: str) -> StateData:
        """Return the data under ``key``; raise StateNotFoundError if absent."""
        with self._lock:
            try:
                return self._storage[key]
            except KeyError:
                raise StateNotFoundError(key) from None

    def write(self, key: str, value: StateData) -> None:
        with self._lock:
            self._storage[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._storage.pop(key, None)

    def clone(self) -> CycleState:
        """Return a copy in which every stored value has been cloned."""
        copy = CycleState()
        with self._lock:
            items = list(self._storage.items())
        copy._storage = {key: value.clone() for key, value in items}
        return copy

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._storage

    def __len__(self) -> int:
        with self._lock:
            return len(self._storage)


def to_scheduler_pod_metrics(pods: Iterable[Any]) -> list[PodMetrics]:
    """Snapshot pods exposing ``pod`` and ``metrics`` into independent PodMetrics."""
    return [PodMetrics(pod=p.pod.clone(), metrics=p.metrics.clone()) for p in pods]