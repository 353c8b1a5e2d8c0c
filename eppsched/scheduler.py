"""The scheduler: runs scheduler profiles over candidate pods to choose a target."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Sequence

import eppsched.config as scheduling_config
from eppsched.affinity import LoraAffinityFilter, SubsetFilter
from eppsched.errors import SchedulingError
from eppsched.filters import (
    DecisionTreeFilter,
    LeastKVCacheFilter,
    LeastQueueFilter,
    LowQueueFilter,
)
from eppsched.framework import (
    PROCESS_PROFILES_RESULTS_TYPE,
    PROFILE_PICKER_TYPE,
    ProfileHandler,
    SchedulerProfile,
)
from eppsched.pickers import RandomPicker
from eppsched.profile_handler import SingleProfileHandler
from eppsched.types import CycleState, LLMRequest, ProfileRunResult, SchedulingResult

_log = logging.getLogger(__name__)


@dataclass
class SchedulerConfig:
    """A profile handler together with the named profiles it chooses from."""

    profile_handler: ProfileHandler
    profiles: dict[str, SchedulerProfile] = field(default_factory=dict)


class Scheduler:
    """Selects a target pod for a request by running scheduler profiles."""

    def __init__(
        self, profile_handler: ProfileHandler, profiles: dict[str, SchedulerProfile]
    ) -> None:
        self.profile_handler = profile_handler
        self.profiles = profiles

    @classmethod
    def from_config(cls, config: SchedulerConfig) -> Scheduler:
        return cls(config.profile_handler, config.profiles)

    def schedule(
        self, request: LLMRequest, candidate_pods: Sequence[Any]
    ) -> SchedulingResult:
        """Run the profiles the handler picks until it picks none, then combine results.

        Raises RuntimeError when no profile ran at all; errors from the
        profile handler's result processing propagate unchanged.
        """
        started = time.perf_counter()
        try:
            return self._schedule(request, candidate_pods)
        finally:
            _log.debug(
                "Scheduling request=%s took %.6fs", request, time.perf_counter() - started
            )

    def _schedule(
        self, request: LLMRequest, candidate_pods: Sequence[Any]
    ) -> SchedulingResult:
        results: dict[str, ProfileRunResult | None] = {}
        cycle_state = CycleState()
        handler_type = self.profile_handler.plugin_type

        while True:
            before = time.perf_counter()
            picked = self.profile_handler.pick(cycle_state, request, self.profiles, results)
            _log.debug(
                "%s plugin %s took %.6fs",
                PROFILE_PICKER_TYPE,
                handler_type,
                time.perf_counter() - before,
            )
            if not picked:
                break
            for name, profile in picked.items():
                try:
                    results[name] = profile.run(request, cycle_state, candidate_pods)
                except SchedulingError as exc:
                    _log.debug("failed to run scheduler profile profile=%s error=%s", name, exc)
                    results[name] = None

        if not results:
            raise RuntimeError(
                f"failed to run any SchedulingProfile for the request - {request}"
            )

        before = time.perf_counter()
        try:
            return self.profile_handler.process_results(cycle_state, request, results)
        finally:
            _log.debug(
                "%s plugin %s took %.6fs",
                PROCESS_PROFILES_RESULTS_TYPE,
                handler_type,
                time.perf_counter() - before,
            )


def new_scheduler() -> Scheduler:
    """Build a scheduler with the default single profile and low-latency filter tree."""
    conf = scheduling_config.CONF
    lora_affinity = LoraAffinityFilter(conf.lora_affinity_threshold)
    subset = SubsetFilter()
    least_queue = LeastQueueFilter()
    least_kv_cache = LeastKVCacheFilter()

    low_latency = DecisionTreeFilter(
        current=LowQueueFilter(conf.queueing_threshold_lora),
        next_on_success=DecisionTreeFilter(
            current=lora_affinity,
            next_on_success_or_failure=DecisionTreeFilter(
                current=least_queue,
                next_on_success_or_failure=DecisionTreeFilter(current=least_kv_cache),
            ),
        ),
        next_on_failure=DecisionTreeFilter(
            current=least_queue,
            next_on_success_or_failure=DecisionTreeFilter(
                current=lora_affinity,
                next_on_success_or_failure=DecisionTreeFilter(current=least_kv_cache),
            ),
        ),
    )

    default_profile = (
        SchedulerProfile().with_filters(subset, low_latency).with_picker(RandomPicker())
    )
    return Scheduler.from_config(
        SchedulerConfig(SingleProfileHandler(), {"default": default_profile})
    )