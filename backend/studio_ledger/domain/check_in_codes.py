"""QR check-in payloads: ``<scheme>://checkin/<class_id>/<booking_id>``."""

from __future__ import annotations

from typing import NamedTuple

from ..core.exceptions import ValidationException


class CheckInCode(NamedTuple):
    class_id: str
    booking_id: str


def build_check_in_code(scheme: str, class_id: str, booking_id: str) -> str:
    return f"{scheme}://checkin/{class_id}/{booking_id}"


def parse_check_in_code(code: str, scheme: str) -> CheckInCode:
    prefix = f"{scheme}://checkin/"
    raw = (code or "").strip()
    if not raw.startswith(prefix):
        raise ValidationException("Unrecognised check-in code", code="invalid_check_in_code")
    parts = raw[len(prefix) :].split("/")
    if len(parts) != 2 or not all(parts):
        raise ValidationException("Malformed check-in code", code="invalid_check_in_code")
    return CheckInCode(class_id=parts[0], booking_id=parts[1])
