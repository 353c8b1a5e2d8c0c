"""Scheduler thresholds, loaded from the environment with built-in defaults."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from eppsched.env import get_env_float, get_env_int

DEFAULT_KV_CACHE_THRESHOLD = 0.8
DEFAULT_QUEUE_THRESHOLD_CRITICAL = 5
DEFAULT_QUEUEING_THRESHOLD_LORA = 128
DEFAULT_LORA_AFFINITY_THRESHOLD = 0.999

_log = logging.getLogger("scheduling-config")


@dataclass
class Config:
    """Threshold values that steer the default scheduling filters."""

    kv_cache_threshold: float = DEFAULT_KV_CACHE_THRESHOLD
    queue_threshold_critical: int = DEFAULT_QUEUE_THRESHOLD_CRITICAL
    queueing_threshold_lora: int = DEFAULT_QUEUEING_THRESHOLD_LORA
    lora_affinity_threshold: float = DEFAULT_LORA_AFFINITY_THRESHOLD


def load_config() -> Config:
    """Build a Config from environment variables, using defaults where unset or invalid."""
    config = Config(
        kv_cache_threshold=get_env_float(
            "KV_CACHE_THRESHOLD", DEFAULT_KV_CACHE_THRESHOLD, _log
        ),
        queue_threshold_critical=get_env_int(
            "QUEUE_THRESHOLD_CRITICAL", DEFAULT_QUEUE_THRESHOLD_CRITICAL, _log
        ),
        queueing_threshold_lora=get_env_int(
            "QUEUING_THRESHOLD_LORA", DEFAULT_QUEUEING_THRESHOLD_LORA, _log
        ),
        lora_affinity_threshold=get_env_float(
            "LORA_AFFINITY_THRESHOLD", DEFAULT_LORA_AFFINITY_THRESHOLD, _log
        ),
    )
    _log.info("Scheduler configuration loaded config=%r", config)
    return config


CONF = load_config()