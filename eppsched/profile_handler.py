"""A profile handler for configurations with exactly one scheduler profile."""

from __future__ import annotations

from typing import Any, Mapping

from eppsched.framework import ProfileHandler, SchedulerProfile
from eppsched.types import (
    CycleState,
    LLMRequest,
    ProfileRunResult,
    SchedulingResult,
)

SINGLE_PROFILE_HANDLER_TYPE = "single-profile"


class SingleProfileHandler(ProfileHandler):
    """Runs every profile once; the single profile is always the primary one."""

    plugin_type = SINGLE_PROFILE_HANDLER_TYPE

    def with_name(self, name: str) -> SingleProfileHandler:
        self.name = name
        return self

    def pick(
        self,
        cycle_state: CycleState,
        request: LLMRequest,
        profiles: Mapping[str, SchedulerProfile],
        profile_results: Mapping[str, ProfileRunResult | None],
    ) -> dict[str, SchedulerProfile]:
        """Return all profiles, or none once each of them has already run."""
        if len(profiles) == len(profile_results):
            return {}
        return dict(profiles)

    def process_results(
        self,
        cycle_state: CycleState,
        request: LLMRequest,
        profile_results: Mapping[str, ProfileRunResult | None],
    ) -> SchedulingResult:
        """Wrap the single profile's result.

        Raises ValueError when there is not exactly one result, and
        RuntimeError when that profile failed to run.
        """
        if len(profile_results) != 1:
            raise ValueError(
                "single profile handler is intended to be used with a single profile, "
                "failed to process multiple profiles"
            )
        (profile_name,) = profile_results
        if profile_results[profile_name] is None:
            raise RuntimeError(f"failed to run scheduler profile '{profile_name}'")
        return SchedulingResult(
            profile_results=dict(profile_results),
            primary_profile_name=profile_name,
        )


def single_profile_handler_factory(
    name: str, raw_parameters: Any, handle: Any
) -> SingleProfileHandler:
    """Build a SingleProfileHandler named ``name``; parameters are ignored."""
    return SingleProfileHandler().with_name(name)