"""Plugin interfaces and the scheduler profile that runs them in order."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Sequence

from eppsched.errors import INTERNAL, SchedulingError
from eppsched.types import (
    CycleState,
    LLMRequest,
    ProfileRunResult,
    SchedulingResult,
    ScoredPod,
)

PROFILE_PICKER_TYPE = "ProfilePicker"
FILTER_PLUGIN_TYPE = "Filter"
SCORER_PLUGIN_TYPE = "Scorer"
PICKER_PLUGIN_TYPE = "Picker"
POST_CYCLE_PLUGIN_TYPE = "PostCycle"
PROCESS_PROFILES_RESULTS_TYPE = "ProcessProfilesResults"

_log = logging.getLogger(__name__)


@contextmanager
def _timed(extension_point: str, plugin_type: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        _log.debug(
            "%s plugin %s took %.6fs",
            extension_point,
            plugin_type,
            time.perf_counter() - start,
        )


class Plugin(ABC):
    """Common base of every scheduling plugin: a type and an instance name."""

    plugin_type: str = ""

    @property
    def name(self) -> str:
        return self.__dict__.get("_name", self.plugin_type)

    @name.setter
    def name(self, value: str) -> None:
        self.__dict__["_name"] = value

    def with_name(self, name: str) -> Plugin:
        self.name = name
        return self


class Filter(Plugin):
    """Narrows down the list of candidate pods."""

    @abstractmethod
    def filter(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> list[Any]: ...


class Scorer(Plugin):
    """Scores candidate pods within [0, 1], where 1 is best."""

    @abstractmethod
    def score(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> dict[Any, float]: ...


class Picker(Plugin):
    """Picks the final pod from the scored candidates."""

    @abstractmethod
    def pick(
        self, cycle_state: CycleState, scored_pods: Sequence[ScoredPod]
    ) -> ProfileRunResult: ...


class PostCycle(Plugin):
    """Called after a profile cycle has selected its target pod (deprecated)."""

    @abstractmethod
    def post_cycle(self, cycle_state: CycleState, result: ProfileRunResult) -> None: ...


class ProfileHandler(Plugin):
    """Chooses which profiles to run and combines their results."""

    @abstractmethod
    def pick(
        self,
        cycle_state: CycleState,
        request: LLMRequest,
        profiles: Mapping[str, SchedulerProfile],
        profile_results: Mapping[str, ProfileRunResult | None],
    ) -> dict[str, SchedulerProfile]: ...

    @abstractmethod
    def process_results(
        self,
        cycle_state: CycleState,
        request: LLMRequest,
        profile_results: Mapping[str, ProfileRunResult | None],
    ) -> SchedulingResult: ...


class WeightedScorer(Scorer):
    """A scorer together with the weight its scores are multiplied by."""

    def __init__(self, scorer: Scorer, weight: int) -> None:
        self.scorer = scorer
        self.weight = weight

    @property
    def plugin_type(self) -> str:  # type: ignore[override]
        return self.scorer.plugin_type

    @property
    def name(self) -> str:  # type: ignore[override]
        return self.scorer.name

    def score(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> dict[Any, float]:
        return self.scorer.score(cycle_state, request, pods)


class SchedulerProfile:
    """An ordered set of filters, weighted scorers, a picker and post-cycle plugins."""

    def __init__(self) -> None:
        self.filters: list[Filter] = []
        self.scorers: list[WeightedScorer] = []
        self.picker: Picker | None = None
        self.post_cycle_plugins: list[PostCycle] = []

    def with_filters(self, *args: Filter) -> SchedulerProfile:
        """Replace the filters with the given ones."""
        self.filters = list(args)
        return self

    def with_scorers(self, *args: WeightedScorer) -> SchedulerProfile:
        """Replace the weighted scorers with the given ones."""
        self.scorers = list(args)
        return self

    def with_picker(self, picker: Picker) -> SchedulerProfile:
        """Replace the picker."""
        self.picker = picker
        return self

    def with_post_cycle_plugins(self, *args: PostCycle) -> SchedulerProfile:
        """Replace the post-cycle plugins with the given ones."""
        self.post_cycle_plugins = list(args)
        return self

    def add_plugins(self, *args: Plugin) -> None:
        """Register each plugin at every extension point it implements.

        Scorers must be wrapped in a WeightedScorer; a bare scorer raises
        ValueError, as does a second picker.
        """
        for plugin in args:
            if isinstance(plugin, WeightedScorer):
                self.scorers.append(plugin)
                plugin = plugin.scorer
            elif isinstance(plugin, Scorer):
                raise ValueError(
                    f"failed to register scorer '{plugin.plugin_type}' without a weight. "
                    "follow function documentation to register a scorer"
                )
            if isinstance(plugin, Filter):
                self.filters.append(plugin)
            if isinstance(plugin, Picker):
                if self.picker is not None:
                    raise ValueError(
                        f"failed to set '{plugin.plugin_type}' as picker, already have a "
                        f"registered picker plugin '{self.picker.plugin_type}'"
                    )
                self.picker = plugin
            if isinstance(plugin, PostCycle):
                self.post_cycle_plugins.append(plugin)

    def run(
        self,
        request: LLMRequest,
        cycle_state: CycleState,
        candidate_pods: Sequence[Any],
    ) -> ProfileRunResult:
        """Run filters, scorers, picker and post-cycle plugins, in that order.

        Raises SchedulingError with an internal code when no pod survives filtering.
        """
        pods = self._run_filters(request, cycle_state, candidate_pods)
        if not pods:
            raise SchedulingError(INTERNAL, "no pods available for the given request")
        weighted = self._run_scorers(request, cycle_state, pods)
        result = self._run_picker(cycle_state, weighted)
        self._run_post_cycle(cycle_state, result)
        return result

    def _run_filters(
        self, request: LLMRequest, cycle_state: CycleState, pods: Sequence[Any]
    ) -> list[Any]:
        filtered = list(pods)
        _log.debug("Before running filter plugins pods=%r", filtered)
        for plugin in self.filters:
            with _timed(FILTER_PLUGIN_TYPE, plugin.plugin_type):
                filtered = list(plugin.filter(cycle_state, request, filtered))
            _log.debug("Filter plugin %s result pods=%r", plugin.plugin_type, filtered)
            if not filtered:
                break
        return filtered

    def _run_scorers(
        self, request: LLMRequest, cycle_state: CycleState, pods: Sequence[Any]
    ) -> dict[Any, float]:
        weighted: dict[Any, float] = {pod: 0.0 for pod in pods}
        for scorer in self.scorers:
            with _timed(SCORER_PLUGIN_TYPE, scorer.plugin_type):
                scores = scorer.score(cycle_state, request, pods)
            for pod, value in scores.items():
                weighted[pod] = weighted.get(pod, 0.0) + value * float(scorer.weight)
        return weighted

    def _run_picker(
        self, cycle_state: CycleState, weighted: Mapping[Any, float]
    ) -> ProfileRunResult:
        if self.picker is None:
            raise SchedulingError(INTERNAL, "no picker configured for the profile")
        scored = [ScoredPod(pod_metrics=pod, score=value) for pod, value in weighted.items()]
        _log.debug("Before running picker plugin pods weighted score=%r", dict(weighted))
        with _timed(PICKER_PLUGIN_TYPE, self.picker.plugin_type):
            result = self.picker.pick(cycle_state, scored)
        _log.debug("After running picker plugin result=%r", result)
        return result

    def _run_post_cycle(self, cycle_state: CycleState, result: ProfileRunResult) -> None:
        for plugin in self.post_cycle_plugins:
            with _timed(POST_CYCLE_PLUGIN_TYPE, plugin.plugin_type):
                plugin.post_cycle(cycle_state, result)