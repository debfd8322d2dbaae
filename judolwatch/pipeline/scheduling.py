"""Mapping between schedule choices and cron expressions."""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from ..errors import ConfigError


class ScheduleOption(str, Enum):
    """Crawl intervals offered to operators."""

    EVERY_30_MINUTES = "30m"
    EVERY_HOUR = "1h"
    EVERY_2_HOURS = "2h"
    EVERY_3_HOURS = "3h"
    EVERY_5_HOURS = "5h"
    EVERY_8_HOURS = "8h"
    EVERY_12_HOURS = "12h"

    @classmethod
    def choices(cls) -> list[str]:
        return [option.value for option in cls]


CANONICAL_CRON: dict[ScheduleOption, str] = {
    ScheduleOption.EVERY_30_MINUTES: "*/30 * * * *",
    ScheduleOption.EVERY_HOUR: "0 * * * *",
    ScheduleOption.EVERY_2_HOURS: "0 */2 * * *",
    ScheduleOption.EVERY_3_HOURS: "0 */3 * * *",
    ScheduleOption.EVERY_5_HOURS: "0 */5 * * *",
    ScheduleOption.EVERY_8_HOURS: "0 */8 * * *",
    ScheduleOption.EVERY_12_HOURS: "0 */12 * * *",
}

DESCRIPTIONS: dict[ScheduleOption, str] = {
    ScheduleOption.EVERY_30_MINUTES: "Every 30 minutes",
    ScheduleOption.EVERY_HOUR: "Every hour",
    ScheduleOption.EVERY_2_HOURS: "Every 2 hours",
    ScheduleOption.EVERY_3_HOURS: "Every 3 hours",
    ScheduleOption.EVERY_5_HOURS: "Every 5 hours",
    ScheduleOption.EVERY_8_HOURS: "Every 8 hours",
    ScheduleOption.EVERY_12_HOURS: "Every 12 hours",
}

# Step values found in a "*/N" field, whatever position the backend put it in.
_INTERVAL_LABELS: dict[int, ScheduleOption] = {
    30: ScheduleOption.EVERY_30_MINUTES,
    2: ScheduleOption.EVERY_2_HOURS,
    3: ScheduleOption.EVERY_3_HOURS,
    5: ScheduleOption.EVERY_5_HOURS,
    8: ScheduleOption.EVERY_8_HOURS,
    12: ScheduleOption.EVERY_12_HOURS,
}

_STEP_RE = re.compile(r"\*/(\d+)")

HOURLY_CRON = "0 * * * *"


def _coerce_option(label: ScheduleOption | str) -> ScheduleOption:
    if isinstance(label, ScheduleOption):
        return label
    try:
        return ScheduleOption(str(label).strip())
    except ValueError:
        raise ConfigError(f"Unknown schedule option: {label!r}") from None


def label_to_cron(label: ScheduleOption | str) -> str:
    """Canonical cron string for a schedule option; ConfigError if unknown."""
    return CANONICAL_CRON[_coerce_option(label)]


def cron_to_label(cron: Optional[str]) -> Optional[ScheduleOption]:
    """
    Best-effort reverse mapping of a backend cron string.

    The backend does not always echo the canonical string (e.g. it may
    return a six-field "* */30 * * * *"), so after an exact match we look
    for a "*/N" step in any field. Returns None when nothing matches; the
    caller keeps its previous selection.
    """
    if not cron:
        return None
    cron = cron.strip()

    for option, expression in CANONICAL_CRON.items():
        if expression == cron:
            return option

    for part in cron.split():
        if "*/" not in part:
            continue
        match = _STEP_RE.search(part)
        if not match:
            continue
        option = _INTERVAL_LABELS.get(int(match.group(1)))
        if option is not None:
            return option

    if cron == HOURLY_CRON:
        return ScheduleOption.EVERY_HOUR

    return None


def resolve_selection(
    cron: Optional[str],
    previous: Optional[ScheduleOption],
) -> Optional[ScheduleOption]:
    """Parsed option for cron, or the previous selection if unrecognized."""
    parsed = cron_to_label(cron)
    return parsed if parsed is not None else previous


def describe(label: ScheduleOption | str) -> str:
    return DESCRIPTIONS[_coerce_option(label)]


class ScheduleTranslator:
    """Object facade over the module functions for injection into coordinators."""

    label_to_cron = staticmethod(label_to_cron)
    cron_to_label = staticmethod(cron_to_label)
    resolve_selection = staticmethod(resolve_selection)
    describe = staticmethod(describe)
