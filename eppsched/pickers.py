"""Pickers that choose the final pod from scored candidates."""

from __future__ import annotations

import logging
import random
from typing import Any, Sequence

from eppsched.framework import Picker
from eppsched.types import CycleState, ProfileRunResult, ScoredPod

RANDOM_PICKER_TYPE = "random"
MAX_SCORE_PICKER_TYPE = "max-score"

_log = logging.getLogger(__name__)


class RandomPicker(Picker):
    """Picks a uniformly random pod from the candidates."""

    plugin_type = RANDOM_PICKER_TYPE

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def with_name(self, name: str) -> RandomPicker:
        self.name = name
        return self

    def pick(
        self, cycle_state: CycleState, scored_pods: Sequence[ScoredPod]
    ) -> ProfileRunResult:
        """Return a random candidate; raise ValueError when there are none."""
        if not scored_pods:
            raise ValueError("cannot pick a pod from an empty candidate list")
        _log.debug(
            "Selecting a random pod from %d candidates: %r", len(scored_pods), scored_pods
        )
        return ProfileRunResult(target_pod=self._rng.choice(list(scored_pods)))


class MaxScorePicker(Picker):
    """Picks the pod with the highest score, breaking ties at random."""

    plugin_type = MAX_SCORE_PICKER_TYPE

    def __init__(self, rng: random.Random | None = None) -> None:
        self.random = RandomPicker(rng)

    def with_name(self, name: str) -> MaxScorePicker:
        self.name = name
        return self

    def pick(
        self, cycle_state: CycleState, scored_pods: Sequence[ScoredPod]
    ) -> ProfileRunResult:
        """Return a highest-scoring candidate; raise ValueError when there are none."""
        if not scored_pods:
            raise ValueError("cannot pick a pod from an empty candidate list")
        _log.debug(
            "Selecting a pod with the max score from %d candidates: %r",
            len(scored_pods),
            scored_pods,
        )
        # Scores are never below 0, so -1 guarantees at least one winner.
        max_score = -1.0
        highest: list[ScoredPod] = []
        for pod in scored_pods:
            if pod.score > max_score:
                max_score = pod.score
                highest = [pod]
            elif pod.score == max_score:
                highest.append(pod)

        if len(highest) > 1:
            return self.random.pick(cycle_state, highest)
        return ProfileRunResult(target_pod=highest[0])


def random_picker_factory(name: str, raw_parameters: Any, handle: Any) -> RandomPicker:
    """Build a RandomPicker named ``name``; parameters are ignored."""
    return RandomPicker().with_name(name)


def max_score_picker_factory(name: str, raw_parameters: Any, handle: Any) -> MaxScorePicker:
    """Build a MaxScorePicker named ``name``; parameters are ignored."""
    return MaxScorePicker().with_name(name)