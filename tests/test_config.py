from eppsched import config as cfg
from eppsched.config import Config, load_config

_VARS = (
    "KV_CACHE_THRESHOLD",
    "QUEUE_THRESHOLD_CRITICAL",
    "QUEUING_THRESHOLD_LORA",
    "LORA_AFFINITY_THRESHOLD",
)


def _clear(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_documented_lora_defaults(monkeypatch):
    _clear(monkeypatch)
    loaded = load_config()
    assert loaded.queueing_threshold_lora == 128
    assert loaded.lora_affinity_threshold == 0.999


def test_load_config_uses_defaults_when_unset(monkeypatch):
    _clear(monkeypatch)
    loaded = load_config()
    assert loaded == Config()
    assert loaded.queueing_threshold_lora == cfg.DEFAULT_QUEUEING_THRESHOLD_LORA
    assert loaded.kv_cache_threshold == cfg.DEFAULT_KV_CACHE_THRESHOLD
    assert loaded.queue_threshold_critical == cfg.DEFAULT_QUEUE_THRESHOLD_CRITICAL
    assert loaded.lora_affinity_threshold == cfg.DEFAULT_LORA_AFFINITY_THRESHOLD


def test_load_config_reads_environment(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("KV_CACHE_THRESHOLD", "0.5")
    monkeypatch.setenv("QUEUE_THRESHOLD_CRITICAL", "7")
    monkeypatch.setenv("QUEUING_THRESHOLD_LORA", "64")
    monkeypatch.setenv("LORA_AFFINITY_THRESHOLD", "0.75")
    loaded = load_config()
    assert loaded == Config(
        kv_cache_threshold=0.5,
        queue_threshold_critical=7,
        queueing_threshold_lora=64,
        lora_affinity_threshold=0.75,
    )


def test_load_config_invalid_values_fall_back(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("QUEUING_THRESHOLD_LORA", "many")
    monkeypatch.setenv("LORA_AFFINITY_THRESHOLD", "high")
    loaded = load_config()
    assert loaded.queueing_threshold_lora == cfg.DEFAULT_QUEUEING_THRESHOLD_LORA
    assert loaded.lora_affinity_threshold == cfg.DEFAULT_LORA_AFFINITY_THRESHOLD


def test_module_conf_matches_fresh_load():
    assert cfg.CONF == load_config()