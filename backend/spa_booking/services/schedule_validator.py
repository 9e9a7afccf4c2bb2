"""
Schedule validation: does a (staff, start, end) request fit availability
and capacity?

The steps run in a fixed order and stop at the first rejection:

1. the interval must have a positive duration;
2. the local window (business timezone) must fit entirely inside one of the
   staff member's blocks for the start's weekday, first match in catalog
   order wins and blocks are never merged;
3. fewer than ``max_concurrent`` active appointments of that staff member may
   already overlap the interval.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from spa_booking.domain.entities import ACTIVE_STATUSES, AvailabilityBlock
from spa_booking.services.availability_catalog import AvailabilityCatalog
from spa_booking.services.conflict_counter import ConflictCounter
from spa_booking.utils.time_utils import ensure_utc, local_window

logger = logging.getLogger(__name__)

NON_POSITIVE_DURATION = "non-positive duration"
OUTSIDE_AVAILABILITY = "outside availability"
CAPACITY_EXCEEDED = "capacity exceeded"


@dataclass(frozen=True)
class ScheduleDecision:
    """Outcome of a validation. ``block`` is set when the request is accepted."""

    accepted: bool
    reason: Optional[str] = None
    detail: Optional[str] = None
    block: Optional[AvailabilityBlock] = None

    @classmethod
    def ok(cls, block: Optional[AvailabilityBlock] = None) -> "ScheduleDecision":
        return cls(accepted=True, block=block)

    @classmethod
    def rejected(cls, reason: str, detail: Optional[str] = None) -> "ScheduleDecision":
        return cls(accepted=False, reason=reason, detail=detail)

    def __bool__(self) -> bool:
        return self.accepted


class ScheduleValidator:
    def __init__(self, catalog: AvailabilityCatalog, counter: ConflictCounter):
        self.catalog = catalog
        self.counter = counter

    def validate(
        self,
        staff_id: int,
        start: datetime,
        end: datetime,
        exclude_appointment_id: Optional[int] = None,
    ) -> ScheduleDecision:
        start, end = ensure_utc(start), ensure_utc(end)
        if start >= end:
            return ScheduleDecision.rejected(
                NON_POSITIVE_DURATION, "End time must be after start time"
            )

        weekday, start_local, end_local = local_window(start, end)
        blocks = self.catalog.lookup(staff_id, weekday)
        matching = next(
            (block for block in blocks if block.contains(start_local, end_local)),
            None,
        )
        if matching is None:
            logger.debug(
                "No availability block contains requested window",
                extra={
                    "context": {
                        "staff_id": staff_id,
                        "day_of_week": weekday.value,
                        "start_local": start_local.isoformat(),
                        "end_local": end_local.isoformat(),
                        "blocks": len(blocks),
                    }
                },
            )
            return ScheduleDecision.rejected(
                OUTSIDE_AVAILABILITY,
                f"Staff {staff_id} is not available on {weekday.value} "
                f"from {start_local:%H:%M} to {end_local:%H:%M}",
            )

        active = self.counter.count_overlapping(
            staff_id,
            start,
            end,
            ACTIVE_STATUSES,
            exclude_appointment_id=exclude_appointment_id,
        )
        if active >= matching.max_concurrent:
            return ScheduleDecision.rejected(
                CAPACITY_EXCEEDED,
                f"{active} of {matching.max_concurrent} slots already booked "
                f"for this time",
            )

        return ScheduleDecision.ok(matching)
