"""Filters that narrow candidate pods by queue length and KV-cache usage."""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Sequence

from eppsched.config import DEFAULT_QUEUEING_THRESHOLD_LORA
from eppsched.framework import Filter
from eppsched.types import CycleState, LLMRequest

LEAST_KV_CACHE_FILTER_TYPE = "least-KV-cache"
LEAST_QUEUE_FILTER_TYPE = "least-queue"
LOW_QUEUE_FILTER_TYPE = "low-queue"

_log = logging.getLogger(__name__)


class DecisionTreeFilter(Filter):
    """Applies ``current``, then chooses the next filter by success or failure.

    On success the filtered pods go to the next filter; on failure (no pods
    left) the original input does. ``next_on_success`` and ``next_on_failure``
    take precedence over ``next_on_success_or_failure`` in their own case.
    """

    def __init__(
        self,
        current: Filter,
        next_on_success: Filter | None = None,
        next_on_failure: Filter | None = None,
        next_on_success_or_failure: Filter | None = None,
    ) -> None:
        self.current = current
        self.next_on_success = next_on_success
        self.next_on_failure = next_on_failure
        self.next_on_success_or_failure = next_on_success_or_failure

    @property
    def plugin_type(self) -> str:  # type: ignore[override]
        return self.current.plugin_type

    @property
    def name(self) -> str:  # type: ignore[override]
        return self.current.name

    def filter(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> list[Any]:
        filtered = list(self.current.filter(cycle_state, request, pods))

        if filtered:
            following = self.next_on_success or self.next_on_success_or_failure
            if following is None:
                return filtered
            _log.debug(
                "Filter succeeded filter=%s next=%s filteredPodCount=%d",
                self.plugin_type,
                following.plugin_type,
                len(filtered),
            )
            return list(following.filter(cycle_state, request, filtered))

        following = self.next_on_failure or self.next_on_success_or_failure
        if following is None:
            return filtered
        _log.debug(
            "Filter failed filter=%s next=%s", self.plugin_type, following.plugin_type
        )
        return list(following.filter(cycle_state, request, pods))


class LeastKVCacheFilter(Filter):
    """Keeps pods whose KV-cache usage lies in the lowest 1/N of the observed range."""

    plugin_type = LEAST_KV_CACHE_FILTER_TYPE

    def with_name(self, name: str) -> LeastKVCacheFilter:
        self.name = name
        return self

    def filter(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> list[Any]:
        if not pods:
            return []
        usages = [pod.metrics.kv_cache_usage_percent for pod in pods]
        low = min(min(usages), math.inf)
        high = max(max(usages), 0.0)
        bound = low + (high - low) / len(pods)
        return [pod for pod, usage in zip(pods, usages) if low <= usage <= bound]


class LeastQueueFilter(Filter):
    """Keeps pods whose waiting queue lies in the lowest 1/N of the observed range."""

    plugin_type = LEAST_QUEUE_FILTER_TYPE

    def with_name(self, name: str) -> LeastQueueFilter:
        self.name = name
        return self

    def filter(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> list[Any]:
        if not pods:
            return []
        sizes = [pod.metrics.waiting_queue_size for pod in pods]
        low = min(sizes)
        high = max(max(sizes), 0)
        spread = high - low
        step = abs(spread) // len(pods) * (1 if spread >= 0 else -1)
        bound = low + step
        return [pod for pod, size in zip(pods, sizes) if low <= size <= bound]


class LowQueueFilter(Filter):
    """Keeps pods whose waiting queue is no longer than a threshold."""

    plugin_type = LOW_QUEUE_FILTER_TYPE

    def __init__(self, threshold: int = DEFAULT_QUEUEING_THRESHOLD_LORA) -> None:
        self.queueing_threshold_lora = threshold

    def with_name(self, name: str) -> LowQueueFilter:
        self.name = name
        return self

    def filter(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> list[Any]:
        return [
            pod
            for pod in pods
            if pod.metrics.waiting_queue_size <= self.queueing_threshold_lora
        ]


def _decode_parameters(raw_parameters: str | bytes | bytearray | None) -> dict[str, Any]:
    if isinstance(raw_parameters, (bytes, bytearray)):
        raw_parameters = bytes(raw_parameters).decode("utf-8")
    parsed = json.loads(raw_parameters or "")
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(
            f"cannot unmarshal {type(parsed).__name__} into filter parameters"
        )
    return parsed


def least_kv_cache_filter_factory(name: str, raw_parameters: Any, handle: Any) -> LeastKVCacheFilter:
    """Build a LeastKVCacheFilter named ``name``; parameters are ignored."""
    return LeastKVCacheFilter().with_name(name)


def least_queue_filter_factory(name: str, raw_parameters: Any, handle: Any) -> LeastQueueFilter:
    """Build a LeastQueueFilter named ``name``; parameters are ignored."""
    return LeastQueueFilter().with_name(name)


def low_queue_filter_factory(
    name: str, raw_parameters: str | bytes | bytearray | None, handle: Any
) -> LowQueueFilter:
    """Build a LowQueueFilter from JSON parameters such as ``{"threshold": 10}``.

    Raises ValueError when the parameters are not valid JSON of the right shape.
    """
    threshold = DEFAULT_QUEUEING_THRESHOLD_LORA
    try:
        parameters = _decode_parameters(raw_parameters)
        value = parameters.get("threshold")
        if value is not None:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"threshold must be an integer, got {value!r}")
            threshold = value
    except ValueError as exc:
        raise ValueError(
            f"failed to parse the parameters of the '{LOW_QUEUE_FILTER_TYPE}' filter - {exc}"
        ) from exc
    return LowQueueFilter(threshold).with_name(name)