"""Tracking number allocation and validation.

Tracking numbers look like ``CF24`` + four-digit year + a per-year sequence
of 1 to 999 written without leading zeros, e.g. ``CF2420267``.

``TrackingAllocator.allocate`` tries three tiers and the first one that
answers wins:

1. ``sequence``: the backend's ``get_next_tracking_id`` procedure.
2. ``reconstructed``: highest same-year sequence already stored, plus one.
3. ``emergency``: a random sequence in 100..999. Not guaranteed unique; the
   unique constraint on insert catches collisions.
"""
import logging
import random
import re
from datetime import date
from typing import Callable, Optional

from shipping.errors import SequenceOverflow, StoreError, TrackingValidationError
from shipping.schemas import AllocationOut

logger = logging.getLogger(__name__)

PREFIX = "CF24"
MAX_SEQUENCE = 999
TRACKING_PATTERN = re.compile(r"^CF24(\d{4})([1-9]\d{0,2})$")

TIER_SEQUENCE = "sequence"
TIER_RECONSTRUCTED = "reconstructed"
TIER_EMERGENCY = "emergency"


def year_prefix(year: int) -> str:
    return f"{PREFIX}{year}"


class TrackingAllocator:
    def __init__(self, store, today: Callable[[], date] = date.today, rng: Optional[random.Random] = None):
        self.store = store
        self.today = today
        self.rng = rng or random.Random()

    def allocate(self) -> AllocationOut:
        year = self.today().year
        try:
            value = self.store.next_tracking_id()
        except StoreError as e:
            logger.warning("get_next_tracking_id unavailable, reconstructing from stored shipments: %s", e)
        else:
            if value:
                logger.info("Allocated %s from sequence procedure", value)
                return AllocationOut(tracking_number=value, tier=TIER_SEQUENCE)
            logger.info("get_next_tracking_id returned nothing, reconstructing from stored shipments")

        warnings = []
        try:
            tracking_number = self._reconstruct(year)
            logger.info("Allocated %s by reconstruction", tracking_number)
            return AllocationOut(tracking_number=tracking_number, tier=TIER_RECONSTRUCTED)
        except SequenceOverflow as e:
            logger.warning("%s", e)
            warnings.append(str(e))
        except StoreError as e:
            logger.warning("Tracking number reconstruction failed, using emergency number: %s", e)

        tracking_number = f"{year_prefix(year)}{self.rng.randint(100, MAX_SEQUENCE)}"
        logger.warning("Allocated emergency tracking number %s (uniqueness not guaranteed)", tracking_number)
        return AllocationOut(tracking_number=tracking_number, tier=TIER_EMERGENCY, warnings=warnings)

    def _reconstruct(self, year: int) -> str:
        prefix = year_prefix(year)
        highest = 0
        for tracking_number in self.store.tracking_numbers_like(prefix):
            suffix = tracking_number[len(prefix):]
            if not (suffix.isascii() and suffix.isdigit()):
                logger.debug("Ignoring unparseable tracking number %s", tracking_number)
                continue
            highest = max(highest, int(suffix))
        next_sequence = highest + 1
        if next_sequence > MAX_SEQUENCE:
            raise SequenceOverflow(year, next_sequence)
        return f"{prefix}{next_sequence}"

    def validate(self, candidate: str) -> str:
        """Check a tracking number before submission and return it normalized.

        Raises TrackingValidationError with code ``malformed``, ``stale_year``
        or ``out_of_range``.
        """
        normalized = (candidate or "").strip().upper()
        current_year = self.today().year
        m = TRACKING_PATTERN.match(normalized)
        if not m:
            raise TrackingValidationError(
                "malformed",
                f"Tracking number {candidate!r} must look like {year_prefix(current_year)}N "
                "with a 1-3 digit sequence and no leading zero. Please regenerate it.",
            )
        year, sequence = int(m.group(1)), int(m.group(2))
        if year != current_year:
            raise TrackingValidationError(
                "stale_year",
                f"Tracking number {normalized} belongs to {year}, not {current_year}. Please regenerate it.",
            )
        if not 1 <= sequence <= MAX_SEQUENCE:
            raise TrackingValidationError(
                "out_of_range",
                f"Tracking sequence {sequence} is outside 1-{MAX_SEQUENCE}. Please regenerate it.",
            )
        return normalized
