"""Scorers that rate candidate pods by KV-cache usage and waiting-queue length."""

from __future__ import annotations

from typing import Any, Sequence

from eppsched.framework import Scorer
from eppsched.types import CycleState, LLMRequest

DEFAULT_KV_CACHE_SCORER_WEIGHT = 1
KV_CACHE_SCORER_TYPE = "kv-cache"

DEFAULT_QUEUE_SCORER_WEIGHT = 1
QUEUE_SCORER_TYPE = "queue"


class KVCacheScorer(Scorer):
    """Scores pods by free KV cache: ``1 - usage``."""

    plugin_type = KV_CACHE_SCORER_TYPE

    def with_name(self, name: str) -> KVCacheScorer:
        self.name = name
        return self

    def score(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> dict[Any, float]:
        return {pod: 1.0 - pod.metrics.kv_cache_usage_percent for pod in pods}


class QueueScorer(Scorer):
    """Scores pods by waiting queue: the shortest queue gets 1, the longest 0.

    When every pod has the same queue length, all get the neutral score 1.
    """

    plugin_type = QUEUE_SCORER_TYPE

    def with_name(self, name: str) -> QueueScorer:
        self.name = name
        return self

    def score(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> dict[Any, float]:
        if not pods:
            return {}
        sizes = [pod.metrics.waiting_queue_size for pod in pods]
        low, high = min(sizes), max(sizes)
        if high == low:
            return {pod: 1.0 for pod in pods}
        spread = float(high - low)
        return {pod: (high - size) / spread for pod, size in zip(pods, sizes)}


def kv_cache_scorer_factory(name: str, raw_parameters: Any, handle: Any) -> KVCacheScorer:
    """Build a KVCacheScorer named ``name``; parameters are ignored."""
    return KVCacheScorer().with_name(name)


def queue_scorer_factory(name: str, raw_parameters: Any, handle: Any) -> QueueScorer:
    """Build a QueueScorer named ``name``; parameters are ignored."""
    return QueueScorer().with_name(name)