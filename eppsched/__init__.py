"""Metric-aware request scheduling for pools of LLM model servers: filters, scorers, pickers, profiles and prefix-cache aware routing."""

__version__ = "0.1.0"