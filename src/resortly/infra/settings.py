"""Reservation engine settings.

Loaded from environment variables on demand so tests can patch os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_OCCUPYING_POLICY = "approved"


@dataclass(frozen=True)
class ReservationSettings:
    """Engine-wide reservation policy.

    Attributes:
        occupying_policy: Name of the policy deciding which reservation
            statuses block a room's calendar. One of the keys of
            resortly.domain.availability.OCCUPYING_POLICIES.
    """

    occupying_policy: str = DEFAULT_OCCUPYING_POLICY


def get_reservation_settings() -> ReservationSettings:
    """Load reservation settings from the environment.

    RESERVATION_OCCUPYING_POLICY selects the occupying-status policy.
    Values are lower-cased and stripped; validation happens where the
    policy is resolved.
    """
    raw = os.environ.get("RESERVATION_OCCUPYING_POLICY", "").strip().lower()
    if not raw:
        return ReservationSettings()
    return ReservationSettings(occupying_policy=raw)
