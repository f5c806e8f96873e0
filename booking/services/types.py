"""Plain value objects passed between the scheduling core and its store."""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Optional

from booking.timeutils import format_time


@dataclass(frozen=True)
class Window:
    """A recurring weekly availability window with minute-of-day bounds."""
    id: Optional[int]
    doctor_id: int
    day_of_week: str
    start_time: int
    end_time: int
    max_occupants: Optional[int] = None

    @property
    def is_limited(self) -> bool:
        return bool(self.max_occupants)

    def label(self) -> str:
        return f"{self.day_of_week} {format_time(self.start_time)}-{format_time(self.end_time)}"

    def summary(self, projected_date: Optional[datetime.date] = None) -> dict:
        return {
            'dayOfWeek': self.day_of_week,
            'date': projected_date.isoformat() if projected_date else None,
            'startTime': format_time(self.start_time),
            'endTime': format_time(self.end_time),
            'maxOccupants': self.max_occupants,
        }


@dataclass
class Booking:
    id: Optional[int]
    doctor_id: int
    patient_id: int
    date: datetime.date
    time: int
    status: str = 'scheduled'
    department_id: Optional[int] = None
    reason: str = ''

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'doctorId': self.doctor_id,
            'patientId': self.patient_id,
            'departmentId': self.department_id,
            'date': self.date.isoformat(),
            'time': format_time(self.time),
            'status': self.status,
            'reason': self.reason,
        }


@dataclass
class MigrationOutcome:
    booking_id: int
    status: str
    new_date: Optional[datetime.date] = None
    new_time: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'appointmentId': self.booking_id,
            'status': self.status,
            'newDate': self.new_date.isoformat() if self.new_date else None,
            'newTime': format_time(self.new_time) if self.new_time is not None else None,
            'error': self.reason,
        }


@dataclass
class RescheduleResult:
    window: Window
    window_updated: bool = False
    window_error: Optional[str] = None
    affected_ids: list[int] = field(default_factory=list)
    outcomes: list[MigrationOutcome] = field(default_factory=list)
    notification: str = 'skipped'
    notification_error: Optional[str] = None
    message: str = ''

    @property
    def updated_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == 'updated')

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == 'failed')

    def to_dict(self) -> dict:
        return {
            'windowId': self.window.id,
            'window': self.window.summary(),
            'windowUpdated': self.window_updated,
            'windowError': self.window_error,
            'affectedIds': list(self.affected_ids),
            'successfulUpdates': self.updated_count,
            'failedUpdates': self.failed_count,
            'updateResults': [o.to_dict() for o in self.outcomes],
            'notification': self.notification,
            'notificationError': self.notification_error,
            'message': self.message,
        }
