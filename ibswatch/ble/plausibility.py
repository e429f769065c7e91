"""Plausibility filter telling the configured sensor apart from other BLE traffic."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import UNCHECKED, RawAdvertisement, Variant


class Reason(Enum):
    """Why an advertisement was accepted or rejected."""

    ACCEPTED = "accepted"
    UNCHECKED = "unchecked"
    ADDRESS_MISMATCH = "address_mismatch"
    SHAPE_MISMATCH = "shape_mismatch"


@dataclass(frozen=True)
class PlausibilityResult:
    """Outcome of a plausibility check; truthy when accepted.

    expected and found hold the (length, local name, service data,
    service UUIDs) tuples for a shape mismatch.
    """

    accepted: bool
    reason: Reason
    expected: Optional[tuple] = None
    found: Optional[tuple] = None

    def __bool__(self) -> bool:
        return self.accepted


def accept(
    advertisement: RawAdvertisement,
    variant: Variant,
    configured_address: Optional[str] = None,
) -> PlausibilityResult:
    """Decide whether advertisement comes from the wanted sensor."""
    if configured_address and configured_address.lower() != advertisement.address.lower():
        return PlausibilityResult(False, Reason.ADDRESS_MISMATCH)

    if variant is UNCHECKED:
        return PlausibilityResult(True, Reason.UNCHECKED)

    expected = variant.shape()
    found = advertisement.shape()
    if expected != found:
        return PlausibilityResult(False, Reason.SHAPE_MISMATCH, expected, found)

    return PlausibilityResult(True, Reason.ACCEPTED, expected, found)
