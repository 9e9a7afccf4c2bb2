"""
Availability catalog service.

Read side: ``lookup`` returns a staff member's recurring blocks for one
weekday in catalog order (start time ascending). An empty list means the
staff member takes no bookings that day.

Write side: block management keeps the catalog free of overlapping blocks
for the same staff member and weekday, so the first matching block found by
the schedule validator is also the only one.
"""

import logging
from typing import List, Optional

from spa_booking.core.exceptions import NotFoundError, ValidationFailure
from spa_booking.domain.entities import AvailabilityBlock, DayOfWeek
from spa_booking.domain.interfaces import IAvailabilityRepository, IStaffReader
from spa_booking.schemas.dtos import (
    INVALID_REQUEST,
    AvailabilityBlockCreateRequest,
    AvailabilityBlockResponse,
    AvailabilityBlockUpdateRequest,
    check_block_shape,
)

logger = logging.getLogger(__name__)


class AvailabilityCatalog:
    """Application service for staff availability blocks."""

    def __init__(
        self,
        availability_repo: IAvailabilityRepository,
        staff_repo: IStaffReader,
    ):
        self.availability_repo = availability_repo
        self.staff_repo = staff_repo

    def lookup(self, staff_id: int, day_of_week: DayOfWeek) -> List[AvailabilityBlock]:
        """Blocks of ``staff_id`` on ``day_of_week``, ordered by start time."""
        return self.availability_repo.find_by_staff_and_day(staff_id, day_of_week)

    def get_block(self, block_id: int) -> AvailabilityBlockResponse:
        block = self.availability_repo.get_by_id(block_id)
        if not block:
            raise NotFoundError("Availability block", block_id)
        return AvailabilityBlockResponse.from_domain(block)

    def list_for_staff(self, staff_id: int) -> List[AvailabilityBlockResponse]:
        """Every block of a staff member, Monday first, then by start time."""
        self._require_staff(staff_id)
        return [
            AvailabilityBlockResponse.from_domain(block)
            for block in self.availability_repo.get_by_staff(staff_id)
        ]

    def create_block(
        self, request: AvailabilityBlockCreateRequest
    ) -> AvailabilityBlockResponse:
        """Create a block after field, staff and overlap checks."""
        request.validate()
        self._require_staff(request.staff_id)

        block = AvailabilityBlock(
            staff_id=request.staff_id,
            day_of_week=request.day_of_week,
            start_time=request.start_time,
            end_time=request.end_time,
            max_concurrent=request.max_concurrent,
        )
        self._reject_overlap(block)

        created = self.availability_repo.create(block)
        logger.info(
            "Availability block created",
            extra={
                "context": {
                    "block_id": created.id,
                    "staff_id": created.staff_id,
                    "day_of_week": created.day_of_week.value,
                    "window": f"{created.start_time}-{created.end_time}",
                }
            },
        )
        return AvailabilityBlockResponse.from_domain(created)

    def update_block(
        self, block_id: int, request: AvailabilityBlockUpdateRequest
    ) -> AvailabilityBlockResponse:
        """Apply a partial update; checks run on the effective values."""
        request.validate()

        current = self.availability_repo.get_by_id(block_id)
        if not current:
            raise NotFoundError("Availability block", block_id)

        staff_id = request.staff_id if request.staff_id is not None else current.staff_id
        if staff_id != current.staff_id:
            self._require_staff(staff_id)

        effective = {
            "day_of_week": request.day_of_week or current.day_of_week,
            "start_time": request.start_time or current.start_time,
            "end_time": request.end_time or current.end_time,
            "max_concurrent": (
                request.max_concurrent
                if request.max_concurrent is not None
                else current.max_concurrent
            ),
        }
        check_block_shape(
            effective["start_time"], effective["end_time"], effective["max_concurrent"]
        )

        block = AvailabilityBlock(id=block_id, staff_id=staff_id, **effective)
        self._reject_overlap(block, exclude_block_id=block_id)

        updated = self.availability_repo.update(block)
        logger.info(
            "Availability block updated",
            extra={"context": {"block_id": block_id, "staff_id": staff_id}},
        )
        return AvailabilityBlockResponse.from_domain(updated)

    def remove_block(self, block_id: int) -> None:
        if not self.availability_repo.delete(block_id):
            raise NotFoundError("Availability block", block_id)
        logger.info(
            "Availability block removed", extra={"context": {"block_id": block_id}}
        )

    def _require_staff(self, staff_id: int) -> None:
        if not self.staff_repo.get_by_id(staff_id):
            raise NotFoundError("Staff", staff_id)

    def _reject_overlap(
        self, block: AvailabilityBlock, exclude_block_id: Optional[int] = None
    ) -> None:
        for existing in self.lookup(block.staff_id, block.day_of_week):
            if existing.id == exclude_block_id:
                continue
            if block.overlaps(existing):
                raise ValidationFailure(
                    INVALID_REQUEST,
                    f"Block overlaps existing block {existing.id} "
                    f"({existing.start_time}-{existing.end_time}) "
                    f"on {existing.day_of_week.value}",
                )
