"""Prefix-cache aware scoring: route requests to servers that likely cache their prompt prefix."""

from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from typing import Any, Sequence

from eppsched.framework import PostCycle, Scorer
from eppsched.types import (
    CycleState,
    LLMRequest,
    NamespacedName,
    ProfileRunResult,
)
from eppsched.xxhash64 import xxh64

DEFAULT_SCORER_WEIGHT = 1
# vLLM's default token block size is 16 and a token is about 4 characters.
DEFAULT_HASH_BLOCK_SIZE = 64
DEFAULT_MAX_PREFIX_BLOCKS = 256
DEFAULT_LRU_CAPACITY_PER_SERVER = 31250

PREFIX_CACHE_PLUGIN_TYPE = "prefix-cache"

_log = logging.getLogger(__name__)


@dataclass
class PrefixConfig:
    """Tuning parameters of the prefix-cache plugin."""

    hash_block_size: int = DEFAULT_HASH_BLOCK_SIZE
    max_prefix_blocks_to_match: int = DEFAULT_MAX_PREFIX_BLOCKS
    lru_capacity_per_server: int = DEFAULT_LRU_CAPACITY_PER_SERVER


class Indexer:
    """Per-server LRU caches of block hashes, with a reverse hash-to-servers index."""

    def __init__(self, max_lru_size: int) -> None:
        self.max_lru_size = max_lru_size
        self._lock = threading.Lock()
        self._hash_to_pods: dict[int, set[NamespacedName]] = {}
        self._pod_to_lru: dict[NamespacedName, OrderedDict[int, None]] = {}

    def add(self, hashes: Sequence[int], server: NamespacedName) -> None:
        """Record that ``server`` caches ``hashes``, evicting its least recent entries."""
        with self._lock:
            lru = self._pod_to_lru.setdefault(server, OrderedDict())
            for block_hash in hashes:
                if block_hash in lru:
                    lru.move_to_end(block_hash)
                    continue
                lru[block_hash] = None
                if len(lru) > self.max_lru_size:
                    evicted, _ = lru.popitem(last=False)
                    self._forget(evicted, server)
            for block_hash in hashes:
                self._hash_to_pods.setdefault(block_hash, set()).add(server)

    def _forget(self, block_hash: int, server: NamespacedName) -> None:
        servers = self._hash_to_pods.get(block_hash)
        if servers is None:
            return
        servers.discard(server)
        if not servers:
            del self._hash_to_pods[block_hash]

    def get(self, block_hash: int) -> frozenset[NamespacedName]:
        """Return the servers that may have ``block_hash`` cached."""
        with self._lock:
            return frozenset(self._hash_to_pods.get(block_hash, ()))

    def lru_size(self, server: NamespacedName) -> int:
        """Return the number of entries cached for ``server``."""
        with self._lock:
            lru = self._pod_to_lru.get(server)
            return len(lru) if lru is not None else 0

    def _log_state(self) -> None:
        with self._lock:
            sizes = {pod: len(lru) for pod, lru in self._pod_to_lru.items()}
        total = sum(sizes.values())
        largest = max(sizes, key=sizes.__getitem__, default=NamespacedName())
        _log.debug(
            "Prefix cache state total entries=%d pods=%d avg entries per pod=%.2f "
            "pod with max cache=%s max pod size=%d capacity per pod=%d",
            total,
            len(sizes),
            total / len(sizes) if sizes else 0.0,
            largest,
            sizes.get(largest, 0),
            self.max_lru_size,
        )


@dataclass
class PrefixState:
    """Per-cycle plugin state: the prompt's block hashes and each server's match length."""

    prefix_hashes: list[int] = field(default_factory=list)
    prefix_cache_servers: dict[NamespacedName, int] = field(default_factory=dict)

    def clone(self) -> PrefixState:
        return PrefixState(
            prefix_hashes=list(self.prefix_hashes),
            prefix_cache_servers=dict(self.prefix_cache_servers),
        )


def _server_of(pod: Any) -> NamespacedName:
    return pod.pod.namespaced_name


class PrefixCachePlugin(Scorer, PostCycle):
    """Scores pods by the fraction of the prompt's prefix blocks they likely cache."""

    plugin_type = PREFIX_CACHE_PLUGIN_TYPE

    def __init__(self, config: PrefixConfig | None = None) -> None:
        self.config = config or PrefixConfig()
        capacity = self.config.lru_capacity_per_server
        if capacity <= 0:
            capacity = DEFAULT_LRU_CAPACITY_PER_SERVER
            _log.info(
                "LRUCapacityPerServer is not positive, using default value defaultCapacity=%d",
                DEFAULT_LRU_CAPACITY_PER_SERVER,
            )
        self.indexer = Indexer(capacity)

    def with_name(self, name: str) -> PrefixCachePlugin:
        self.name = name
        return self

    def score(
        self, cycle_state: CycleState, request: LLMRequest, pods: Sequence[Any]
    ) -> dict[Any, float]:
        hashes = hash_prompt(
            request, self.config.hash_block_size, self.config.max_prefix_blocks_to_match
        )
        state = PrefixState(
            prefix_hashes=hashes,
            prefix_cache_servers=self._match_longest_prefix(hashes),
        )
        cycle_state.write(self.plugin_type, state)
        _log.debug(
            "cached servers: %r hashes=%r", state.prefix_cache_servers, state.prefix_hashes
        )

        total = len(hashes)
        if total == 0:
            return {pod: 0.0 for pod in pods}
        return {
            pod: state.prefix_cache_servers.get(_server_of(pod), 0) / total for pod in pods
        }

    def post_cycle(self, cycle_state: CycleState, result: ProfileRunResult) -> None:
        """Record the chosen server as caching the request's prefix blocks."""
        server = _server_of(result.target_pod)
        try:
            state = self.prefix_state(cycle_state)
        except (LookupError, TypeError) as exc:
            _log.error("failed to read prefix plugin cycle state: %s", exc)
            return

        self.indexer.add(state.prefix_hashes, server)

        block = self.config.hash_block_size
        match_len = state.prefix_cache_servers.get(server, 0)
        _log.debug(
            "Prefix cache match matched=%d total=%d",
            match_len * block,
            len(state.prefix_hashes) * block,
        )

    def _match_longest_prefix(self, hashes: Sequence[int]) -> dict[NamespacedName, int]:
        matches: defaultdict[NamespacedName, int] = defaultdict(int)
        for position, block_hash in enumerate(hashes):
            servers = self.indexer.get(block_hash)
            if not servers:
                break
            _log.debug(
                "Found cached servers %r total blocks=%d longest prefix=%d",
                servers,
                len(hashes),
                position,
            )
            for server in servers:
                matches[server] += 1
        return dict(matches)

    def prefix_state(self, cycle_state: CycleState) -> PrefixState:
        """Return this plugin's state from ``cycle_state``.

        Raises StateNotFoundError when absent and TypeError when of another type.
        """
        state = cycle_state.read(self.plugin_type)
        if not isinstance(state, PrefixState):
            raise TypeError(f"invalid Prefix state, got type {type(state).__name__}")
        return state


def hash_prompt(
    request: LLMRequest, cache_block_size: int, max_prefix_blocks: int
) -> list[int]:
    """Hash the prompt into chained block hashes, led by the hash of the model name.

    Prompts shorter than one block give an empty list; a trailing partial
    block is ignored, and input beyond ``max_prefix_blocks`` blocks is cut off.
    """
    if cache_block_size <= 0:
        raise ValueError(f"cache block size must be positive, got {cache_block_size}")
    prompt = request.prompt.encode("utf-8")
    if len(prompt) < cache_block_size:
        _log.debug(
            "Request body too small for prefix cache size=%d block size=%d",
            len(prompt),
            cache_block_size,
        )
        return []
    limit = cache_block_size * max_prefix_blocks
    if len(prompt) > limit:
        _log.debug("Truncating input size=%d max prefix blocks=%d", len(prompt), max_prefix_blocks)
        prompt = prompt[:limit]

    hashes = [xxh64(request.target_model.encode("utf-8"))]
    for start in range(0, len(prompt) - cache_block_size + 1, cache_block_size):
        block = prompt[start : start + cache_block_size]
        hashes.append(xxh64(block + hashes[-1].to_bytes(8, "little")))
    return hashes


_PARAMETER_FIELDS = {
    "hashBlockSize": "hash_block_size",
    "maxPrefixBlocksToMatch": "max_prefix_blocks_to_match",
    "lruCapacityPerServer": "lru_capacity_per_server",
}


def prefix_cache_plugin_factory(
    name: str, raw_parameters: str | bytes | bytearray | None, handle: Any
) -> PrefixCachePlugin:
    """Build a PrefixCachePlugin from JSON parameters.

    Raises ValueError when the parameters are not valid JSON of the right shape.
    """
    config = PrefixConfig()
    try:
        if isinstance(raw_parameters, (bytes, bytearray)):
            raw_parameters = bytes(raw_parameters).decode("utf-8")
        parsed = json.loads(raw_parameters or "")
        if parsed is not None:
            if not isinstance(parsed, dict):
                raise ValueError(
                    f"cannot unmarshal {type(parsed).__name__} into plugin parameters"
                )
            for key, attr in _PARAMETER_FIELDS.items():
                value = parsed.get(key)
                if value is None:
                    continue
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ValueError(f"{key} must be an integer, got {value!r}")
                setattr(config, attr, value)
    except ValueError as exc:
        raise ValueError(
            f"failed to parse the parameters of the {PREFIX_CACHE_PLUGIN_TYPE} plugin. "
            f"Error: {exc}"
        ) from exc
    return PrefixCachePlugin(config).with_name(name)