"""Shared validation utilities"""

import re
from datetime import date
from typing import Optional

from ..errors import ValidationError
from ..models import AMENITIES, SPORTS, WEEKDAYS

# HH:MM, 24-hour; a single-digit hour is accepted and normalized
TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


def validate_hhmm(value: Optional[str]) -> str:
    """
    Validate and normalize a 24-hour ``HH:MM`` time.

    Returns:
        Zero-padded ``HH:MM`` string

    Raises:
        ValueError: If the time is missing or malformed
    """
    if not value or not isinstance(value, str):
        raise ValueError("Time is required in HH:MM format")

    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time '{value}'. Use HH:MM format")

    return f"{int(match.group(1)):02d}:{match.group(2)}"


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def validate_weekday(value: Optional[str]) -> str:
    """Validate a weekday name (case-insensitive) and return its canonical form"""
    if not value or not isinstance(value, str):
        raise ValueError("Day is required")

    for day in WEEKDAYS:
        if day.lower() == value.strip().lower():
            return day

    raise ValueError(f"Invalid day '{value}'. Must be one of: {', '.join(WEEKDAYS)}")


def weekday_of(value: date) -> str:
    return WEEKDAYS[value.weekday()]


def validate_slot_template(day: Optional[str], start_time: Optional[str], end_time: Optional[str]) -> dict:
    """
    Validate one recurring slot template.

    Returns:
        ``{"day", "start_time", "end_time"}`` with canonical values

    Raises:
        ValueError: If any part is malformed or start is not before end
    """
    day = validate_weekday(day)
    start = validate_hhmm(start_time)
    end = validate_hhmm(end_time)

    if time_to_minutes(start) >= time_to_minutes(end):
        raise ValueError(f"End time must be after start time ({day} {start}-{end})")

    return {"day": day, "start_time": start, "end_time": end}


def validate_slot_templates(slots: Optional[list]) -> list[dict]:
    """Validate a list of slot templates; at least one, no duplicates"""
    if not slots:
        raise ValueError("At least one time slot is required")

    templates = []
    seen = set()
    for slot in slots:
        if not isinstance(slot, dict):
            raise ValueError("Invalid time slot format")
        template = validate_slot_template(
            slot.get("day"), slot.get("start_time"), slot.get("end_time")
        )
        key = (template["day"], template["start_time"], template["end_time"])
        if key in seen:
            raise ValueError(
                f"Duplicate time slot {template['day']} {template['start_time']}-{template['end_time']}"
            )
        seen.add(key)
        templates.append(template)

    return templates


def validate_sports(sports: Optional[list], custom_sport: Optional[str]) -> tuple[list[str], Optional[str]]:
    """
    Validate offered sports against the closed set.

    Returns:
        (sports, custom_sport) where custom_sport is kept only when "Other" is offered
    """
    if not sports:
        raise ValueError("At least one sport must be selected")

    invalid = [s for s in sports if s not in SPORTS]
    if invalid:
        raise ValueError(f"Invalid sport(s): {', '.join(map(str, invalid))}")

    if "Other" in sports:
        if not custom_sport or not custom_sport.strip():
            raise ValueError('Custom sport name is required when "Other" is selected')
        return list(dict.fromkeys(sports)), custom_sport.strip()

    return list(dict.fromkeys(sports)), None


def validate_amenities(amenities: Optional[list]) -> list[str]:
    if not amenities:
        raise ValueError("At least one amenity must be selected")

    invalid = [a for a in amenities if a not in AMENITIES]
    if invalid:
        raise ValueError(f"Invalid amenity(ies): {', '.join(map(str, invalid))}")

    return list(dict.fromkeys(amenities))


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a phone number.

    Accepts 10 to 15 digits with an optional leading "+"; separators are dropped.

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    has_plus = phone.strip().startswith("+")
    digits = re.sub(r"\D", "", phone)

    if not 10 <= len(digits) <= 15:
        raise ValueError("Phone number must have between 10 and 15 digits")

    return f"+{digits}" if has_plus else digits


def validated(field: str, func, *args):
    """Run a validator and report its ValueError as a field-specific ValidationError"""
    try:
        return func(*args)
    except ValueError as e:
        raise ValidationError(str(e), field=field) from e
