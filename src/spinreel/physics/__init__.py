"""Spin physics planner."""

from spinreel.physics.planner import (
    DROP_THRESHOLD_RPM,
    SpinParameters,
    SpinPlan,
    plan_spin,
    verify_plan,
    resolve_pocket,
    calculate_drop_frame,
    angular_position,
    rpm_to_rad,
)

__all__ = [
    "DROP_THRESHOLD_RPM",
    "SpinParameters",
    "SpinPlan",
    "plan_spin",
    "verify_plan",
    "resolve_pocket",
    "calculate_drop_frame",
    "angular_position",
    "rpm_to_rad",
]
