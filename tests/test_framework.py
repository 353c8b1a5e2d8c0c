import pytest

from eppsched.errors import INTERNAL, SchedulingError
from eppsched.framework import (
    Filter,
    Picker,
    PostCycle,
    SchedulerProfile,
    Scorer,
    WeightedScorer,
)
from eppsched.types import (
    BackendPod,
    CycleState,
    LLMRequest,
    MetricsState,
    NamespacedName,
    PodMetrics,
    ProfileRunResult,
    to_scheduler_pod_metrics,
)


class _TestPlugin(Filter, Scorer, Picker, PostCycle):
    def __init__(self, type_res, score_res=0.0, filter_res=(), pick_res=None):
        self.plugin_type = type_res
        self.score_res = score_res
        self.filter_res = list(filter_res)
        self.pick_res = pick_res
        self.filter_call_count = 0
        self.score_call_count = 0
        self.num_of_scored_pods = 0
        self.post_schedule_call_count = 0
        self.pick_call_count = 0
        self.num_of_picker_candidates = 0
        self.winner_pod_score = 0.0

    def filter(self, cycle_state, request, pods):
        self.filter_call_count += 1
        return [
            pod for pod in pods for name in self.filter_res
            if str(pod.pod.namespaced_name) == str(name)
        ]

    def score(self, cycle_state, request, pods):
        self.score_call_count += 1
        scores = {pod: self.score_res for pod in pods}
        self.num_of_scored_pods = len(scores)
        return scores

    def pick(self, cycle_state, scored_pods):
        self.pick_call_count += 1
        self.num_of_picker_candidates = len(scored_pods)
        winner = None
        for scored in scored_pods:
            if str(scored.pod.namespaced_name) == str(self.pick_res):
                winner = scored.pod_metrics
                self.winner_pod_score = scored.score
        return ProfileRunResult(target_pod=winner)

    def post_cycle(self, cycle_state, result):
        self.post_schedule_call_count += 1


class _OnlyScorer(Scorer):
    plugin_type = "only-scorer"

    def score(self, cycle_state, request, pods):
        return {pod: 1.0 for pod in pods}


class _OnlyFilter(Filter):
    plugin_type = "only-filter"

    def __init__(self):
        self.calls = 0

    def filter(self, cycle_state, request, pods):
        self.calls += 1
        return []


def _names(*names):
    return [NamespacedName(name=n) for n in names]


def _input_pods():
    return to_scheduler_pod_metrics(
        PodMetrics(pod=BackendPod(namespaced_name=NamespacedName(name=n)))
        for n in ("pod1", "pod2", "pod3")
    )


def _plugins():
    tp1 = _TestPlugin("test1", 0.3, _names("pod1", "pod2", "pod3"))
    tp2 = _TestPlugin("test2", 0.8, _names("pod1", "pod2"))
    filter_all = _TestPlugin("filter all", filter_res=[])
    picker = _TestPlugin("picker", pick_res=NamespacedName(name="pod1"))
    return tp1, tp2, filter_all, picker


@pytest.mark.parametrize(
    "weights, target_score",
    [((1, 1), 1.1), ((60, 40), 50.0)],
    ids=["same weights", "different weights"],
)
def test_schedule_plugins_success(weights, target_score):
    tp1, tp2, _, picker = _plugins()
    profile = (
        SchedulerProfile()
        .with_filters(tp1, tp2)
        .with_scorers(WeightedScorer(tp1, weights[0]), WeightedScorer(tp2, weights[1]))
        .with_picker(picker)
        .with_post_cycle_plugins(tp1, tp2)
    )
    request = LLMRequest(target_model="test-model", request_id="req-1")
    got = profile.run(request, CycleState(), _input_pods())

    assert got.target_pod.pod == BackendPod(
        namespaced_name=NamespacedName(name="pod1"), labels={}
    )
    assert got.target_pod.metrics == MetricsState()
    for plugin in profile.filters:
        assert plugin.filter_call_count == 1
    for weighted in profile.scorers:
        assert weighted.scorer.score_call_count == 1
        assert weighted.scorer.num_of_scored_pods == 2
    assert picker.num_of_picker_candidates == 2
    assert picker.pick_call_count == 1
    assert picker.winner_pod_score == pytest.approx(target_score)
    for plugin in profile.post_cycle_plugins:
        assert plugin.post_schedule_call_count == 1


def test_schedule_plugins_filter_all():
    tp1, tp2, filter_all, picker = _plugins()
    profile = (
        SchedulerProfile()
        .with_filters(tp1, filter_all)
        .with_scorers(WeightedScorer(tp1, 1), WeightedScorer(tp2, 1))
        .with_picker(picker)
        .with_post_cycle_plugins(tp1, tp2)
    )
    with pytest.raises(SchedulingError) as info:
        profile.run(LLMRequest(target_model="test-model"), CycleState(), _input_pods())
    assert info.value.code == INTERNAL
    assert picker.pick_call_count == 0
    assert tp1.score_call_count == 0


def test_filters_stop_after_empty_result():
    empty = _OnlyFilter()
    after = _OnlyFilter()
    profile = SchedulerProfile().with_filters(empty, after)
    with pytest.raises(SchedulingError):
        profile.run(LLMRequest(), CycleState(), _input_pods())
    assert empty.calls == 1
    assert after.calls == 0


def test_with_filters_replaces_existing():
    first, second = _OnlyFilter(), _OnlyFilter()
    profile = SchedulerProfile().with_filters(first).with_filters(second)
    assert profile.filters == [second]


def test_weighted_scorer_delegates():
    inner = _OnlyScorer()
    weighted = WeightedScorer(inner, 3)
    pods = _input_pods()
    assert weighted.weight == 3
    assert weighted.plugin_type == "only-scorer"
    assert weighted.score(CycleState(), LLMRequest(), pods) == {pod: 1.0 for pod in pods}


def test_add_plugins_registers_all_interfaces():
    plugin = _TestPlugin("multi", pick_res=NamespacedName(name="pod1"))
    weighted = WeightedScorer(plugin, 2)
    profile = SchedulerProfile()
    profile.add_plugins(weighted)
    assert profile.scorers == [weighted]
    assert profile.filters == [plugin]
    assert profile.picker is plugin
    assert profile.post_cycle_plugins == [plugin]


def test_add_plugins_rejects_unweighted_scorer():
    profile = SchedulerProfile()
    with pytest.raises(ValueError, match="without a weight"):
        profile.add_plugins(_OnlyScorer())
    assert profile.scorers == []


def test_with_name_sets_name_of_registered_plugin():
    plugin = _OnlyFilter()
    profile = SchedulerProfile()
    profile.add_plugins(plugin.with_name("custom"))
    assert profile.filters == [plugin]
    assert profile.filters[0].name == "custom"