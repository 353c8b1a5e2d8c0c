# eppsched

`eppsched` is a library that picks a backend pod for each request sent to a pool of
LLM model servers. Its decisions are based on per-pod metrics such as waiting queue
size, KV-cache usage and active LoRA adapters. It can also keep an approximate index
of the prompt prefixes that each server is likely to hold in cache.

It has no dependencies outside the standard library.

## Installation

```
pip install eppsched
```

To run the test suite, install the `test` extra and run pytest:

```
pip install "eppsched[test]"
pytest
```

## Concepts

- **Pods**: `eppsched.types.PodMetrics` pairs a `BackendPod` with a `MetricsState`.
  A `BackendPod` holds a `NamespacedName`, an address and labels. A `MetricsState`
  holds the queue size, the KV-cache usage, the adapter limit and the active and
  waiting models. `to_scheduler_pod_metrics` takes independent snapshots of any
  objects that expose `pod` and `metrics`.
- **Requests**: `eppsched.types.LLMRequest` carries the request id, the target model,
  the prompt, the headers and the proxy filter metadata.
- **Cycle state**: `eppsched.types.CycleState` is a thread-safe store that plugins use
  to pass data to each other during one scheduling cycle. `read` raises
  `StateNotFoundError` for a missing key.
- **Profiles**: `eppsched.framework.SchedulerProfile` runs its plugins in a fixed order:
  filters, then weighted scorers, then one picker, then post-cycle plugins. The plugin
  base classes `Filter`, `Scorer`, `Picker`, `PostCycle` and `ProfileHandler` are in the
  same module.
- **Profile handler**: decides which profiles run and which result is primary.
  `eppsched.profile_handler.SingleProfileHandler` works with exactly one profile.

## Plugins

| Kind    | Module               | Classes |
|---------|----------------------|---------|
| Filter  | `eppsched.filters`   | `DecisionTreeFilter`, `LeastQueueFilter`, `LeastKVCacheFilter`, `LowQueueFilter` |
| Filter  | `eppsched.affinity`  | `LoraAffinityFilter`, `SubsetFilter` |
| Scorer  | `eppsched.scorers`   | `KVCacheScorer`, `QueueScorer` |
| Scorer  | `eppsched.prefix`    | `PrefixCachePlugin`, which is also a post-cycle plugin |
| Picker  | `eppsched.pickers`   | `RandomPicker`, `MaxScorePicker` |

A scorer must be wrapped in `eppsched.framework.WeightedScorer` before it is added to
a profile. `SchedulerProfile.add_plugins` raises `ValueError` for a bare scorer or for
a second picker.

Each plugin module also has factory functions, such as `low_queue_filter_factory` or
`prefix_cache_plugin_factory`. They take a name, JSON parameters and a handle, which
is ignored. They raise `ValueError` when the parameters are not valid JSON of the
right shape.

## Default scheduler

```python
from eppsched.scheduler import new_scheduler
from eppsched.types import LLMRequest

scheduler = new_scheduler()
result = scheduler.schedule(LLMRequest(target_model="my-model"), pods)
target = result.profile_results[result.primary_profile_name].target_pod
```

The default scheduler builds one profile named `"default"`. That profile first applies
the subset-hint filter. It then runs a low-latency decision tree over queue length,
LoRA affinity and KV cache. Finally it picks at random among the pods that remain.

The thresholds come from `eppsched.config.CONF`. It is filled by
`eppsched.config.load_config` when the module is first imported, from these
environment variables:

- `KV_CACHE_THRESHOLD`
- `QUEUE_THRESHOLD_CRITICAL`
- `QUEUING_THRESHOLD_LORA`
- `LORA_AFFINITY_THRESHOLD`

A value that is unset or cannot be parsed falls back to its default.

## Custom profiles

```python
from eppsched.framework import SchedulerProfile, WeightedScorer
from eppsched.pickers import MaxScorePicker
from eppsched.prefix import PrefixCachePlugin, PrefixConfig
from eppsched.profile_handler import SingleProfileHandler
from eppsched.scheduler import Scheduler, SchedulerConfig
from eppsched.scorers import QueueScorer

profile = SchedulerProfile()
profile.add_plugins(
    WeightedScorer(PrefixCachePlugin(PrefixConfig()), 2),
    WeightedScorer(QueueScorer(), 1),
    MaxScorePicker(),
)
scheduler = Scheduler.from_config(
    SchedulerConfig(SingleProfileHandler(), {"prefix": profile})
)
```

`PrefixCachePlugin` hashes the prompt into chained XXH64 block hashes. The first hash
is of the model name; `eppsched.prefix.hash_prompt` does this step. The plugin scores
each pod by the fraction of those blocks it is likely to cache, and after each cycle
it records the chosen pod in a per-server LRU `Indexer`. The hash function itself is
available as `eppsched.xxhash64.xxh64`.

## Utilities

- `eppsched.request`: `extract_prompt_from_request_body` reads a completions or
  chat-completions body. `construct_chat_message` renders one chat message.
  `extract_header_value` looks up a header without regard to case.
  `extract_metadata_values` turns filter metadata into plain dicts and lists.
- `eppsched.env`: `get_env_int`, `get_env_float`, `get_env_bool`, `get_env_string` and
  `get_env_duration` read typed environment variables with a default.
  `parse_duration` parses durations such as `"1h30m"` into a `timedelta`.

## Errors

- `SchedulerProfile.run` raises `eppsched.errors.SchedulingError` with code
  `"Internal"` when no pod survives filtering.
- `extract_prompt_from_request_body` raises `SchedulingError` with code
  `"BadRequest"`.
- `canonical_code` returns the code of a `SchedulingError`, and `"Unknown"` for
  any other exception.
- `Scheduler.schedule` catches a failed profile run and records it as a `None`
  result. `SingleProfileHandler.process_results` then raises `RuntimeError` for that
  profile, and `ValueError` when there is not exactly one result.

## What this package does not do

This is a scheduling library only. It does not serve requests over the network. It
does not watch a cluster for pods or models, and it does not scrape metrics from
model servers. It does not export metrics. The caller supplies the candidate pods and
their metrics, and acts on the pod that is chosen.