from __future__ import annotations

import re

MIN_VIDEO_DURATION_SECONDS = 60
ISO8601_DURATION_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def parse_duration_seconds(raw_value: object) -> int:
    """Convert a YouTube ``contentDetails.duration`` code such as ``PT1M20S`` to seconds.

    Anything that is not a duration code yields ``0`` so callers can treat the
    video as having an unknown length.
    """
    if not isinstance(raw_value, str):
        return 0
    matched = ISO8601_DURATION_PATTERN.match(raw_value.strip().upper())
    if matched is None:
        return 0

    days = int(matched.group("days") or 0)
    hours = int(matched.group("hours") or 0)
    minutes = int(matched.group("minutes") or 0)
    seconds = int(matched.group("seconds") or 0)
    return days * 86_400 + hours * 3_600 + minutes * 60 + seconds


def meets_minimum_duration(
    raw_value: object,
    *,
    min_seconds: int = MIN_VIDEO_DURATION_SECONDS,
) -> bool:
    return parse_duration_seconds(raw_value) >= max(1, min_seconds)
