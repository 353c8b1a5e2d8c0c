"""Filters that steer requests by LoRA adapter affinity and by proxy subset hints."""

from __future__ import annotations

import json
import random
from collections.abc import Mapping
from typing import Any, Sequence

from eppsched.config import DEFAULT_LORA_AFFINITY_THRESHOLD
from eppsched.framework import Filter
from eppsched.types import CycleState, LLMRequest

LORA_AFFINITY_FILTER_TYPE = "lora-affinity"
SUBSET_FILTER_TYPE = "subset"
SUBSET_FILTER_NAME = "subset-hint"

SUBSET_HINT_KEY = "x-gateway-destination-endpoint-subset"
SUBSET_HINT_NAMESPACE = "envoy.lb.subset_hint"


class LoraAffinityFilter(Filter):
    """Prefers pods that already hold the requested LoRA adapter.

    Pods are split into those with the target model active or waiting, and
    those with spare adapter capacity. When both groups are non-empty the
    affinity group is returned with probability ``threshold``; otherwise
    whichever group has pods is returned.
    """

    plugin_type = LORA_AFFINITY_FILTER_TYPE

    def __init__(
        self,
        threshold: float = DEFAULT_LORA_AFFINITY_THRESHOLD,
        rng: random.Random | None = None,
    ) -> None:
        self.lora_affinity_threshold = threshold
        self._rng = rng or random.Random()

    def with_name(self, name: str) -> LoraAffinityFilter:
        self.name = name
        return self

    def filter(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> list[Any]:
        target = request.target_model
        affinity: list[Any] = []
        available: list[Any] = []
        for pod in pods:
            metrics = pod.metrics
            active = metrics.active_models or {}
            waiting = metrics.waiting_models or {}
            if target in active or target in waiting:
                affinity.append(pod)
            elif len(active) + len(waiting) < metrics.max_active_models:
                available.append(pod)

        if affinity and available:
            if self._rng.random() < self.lora_affinity_threshold:
                return affinity
            return available
        return affinity or available


class SubsetFilter(Filter):
    """Keeps pods whose address appears in the subset hint sent by the proxy."""

    plugin_type = SUBSET_FILTER_TYPE

    def __init__(self) -> None:
        self.name = SUBSET_FILTER_NAME

    def filter(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> list[Any]:
        metadata = request.metadata or {}
        subset_map = metadata.get(SUBSET_HINT_NAMESPACE)
        if not isinstance(subset_map, Mapping):
            return list(pods)
        endpoint_list = subset_map.get(SUBSET_HINT_KEY)
        if not isinstance(endpoint_list, list):
            return list(pods)
        if not endpoint_list:
            return []

        addresses = set()
        for endpoint in endpoint_list:
            if not isinstance(endpoint, str):
                raise TypeError(f"subset endpoint must be a string, got {endpoint!r}")
            # Endpoints are formatted as "<address>:<port>".
            addresses.add(endpoint.split(":")[0])
        return [pod for pod in pods if pod.pod.address in addresses]


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


def lora_affinity_filter_factory(
    name: str, raw_parameters: str | bytes | bytearray | None, handle: Any
) -> LoraAffinityFilter:
    """Build a LoraAffinityFilter from JSON parameters such as ``{"threshold": 0.9}``.

    Raises ValueError when the parameters are not valid JSON of the right shape.
    """
    threshold = DEFAULT_LORA_AFFINITY_THRESHOLD
    try:
        parameters = _decode_parameters(raw_parameters)
        value = parameters.get("threshold")
        if value is not None:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"threshold must be a number, got {value!r}")
            threshold = float(value)
    except ValueError as exc:
        raise ValueError(
            f"failed to parse the parameters of the '{LORA_AFFINITY_FILTER_TYPE}' "
            f"filter - {exc}"
        ) from exc
    return LoraAffinityFilter(threshold).with_name(name)