"""
Retry policy helpers.

Profiles come from ExecutionOptions at invoke time. A step's effective
profile is its own RetryProfile, else the DefaultRetryProfile, else a single
attempt without retry.
"""

from typing import Optional

from ..errors import UnknownRetryProfile
from ..models import ExecutionOptions, PlanStep, RetryProfile

BUILTIN_RETRY_PROFILE = RetryProfile(max_attempts=0, initial_delay_milliseconds=0, max_delay_milliseconds=0)


def effective_retry_profile(step: PlanStep, options: ExecutionOptions) -> RetryProfile:
    """
    Determine the retry profile for a step.

    Raises:
        UnknownRetryProfile: If the step names a profile that was not supplied
    """
    if step.retry_profile:
        profile = options.retry_profiles.get(step.retry_profile)
        if profile is None:
            raise UnknownRetryProfile(step.retry_profile, step.name)
        return profile

    if options.default_retry_profile:
        return options.retry_profiles[options.default_retry_profile]

    return BUILTIN_RETRY_PROFILE


def backoff_delay_ms(profile: RetryProfile, failed_attempt: int) -> int:
    """
    Delay before the attempt following ``failed_attempt`` (1-based).

    Starts at InitialDelayMilliseconds and doubles per retry, capped at
    MaxDelayMilliseconds.
    """
    delay = profile.initial_delay_milliseconds * (2 ** (failed_attempt - 1))
    return min(delay, profile.max_delay_milliseconds)


def describe(profile: Optional[RetryProfile]) -> str:
    if profile is None:
        return "none"
    return (
        f"{profile.total_attempts} attempt(s), {profile.initial_delay_milliseconds}ms"
        f"..{profile.max_delay_milliseconds}ms"
    )
