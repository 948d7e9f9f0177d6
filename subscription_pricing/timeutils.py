"""Horloge du moteur : toutes les dates manipulées sont en UTC, avec fuseau."""

from datetime import datetime
from typing import Callable

import pytz  # type: ignore

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def ensure_utc(value: datetime) -> datetime:
    """Rend une date naïve explicite en UTC ; convertit les autres fuseaux."""
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)
