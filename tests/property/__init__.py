"""
Hypothesis profiles for the property suite.

    HYPOTHESIS_PROFILE=dev|ci|stress   (default: ci when $CI is set, else dev)

Stores are built inside each example (not from pytest fixtures), so
function-scoped fixtures never leak state between examples.
"""
from __future__ import annotations

import os

from hypothesis import HealthCheck, Verbosity, settings

_SLOW = (HealthCheck.too_slow, HealthCheck.filter_too_much)

settings.register_profile("dev", max_examples=100, deadline=None, suppress_health_check=_SLOW)
settings.register_profile(
    "ci",
    max_examples=200,
    deadline=None,
    derandomize=True,
    suppress_health_check=_SLOW,
    verbosity=Verbosity.verbose,
)
settings.register_profile(
    "stress",
    max_examples=2000,
    deadline=None,
    derandomize=True,
    suppress_health_check=_SLOW + (HealthCheck.data_too_large,),
)


def _on_ci() -> bool:
    return os.getenv("CI", "").lower() not in ("", "0", "false", "no", "off")


settings.load_profile(os.getenv("HYPOTHESIS_PROFILE") or ("ci" if _on_ci() else "dev"))
