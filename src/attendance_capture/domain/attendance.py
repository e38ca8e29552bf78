"""Attendance record returned after a punch."""

from pydantic import BaseModel


class AttendanceRecord(BaseModel):
    """A single day's attendance for an employee."""

    attendance_id: int
    employee_id: int
    date: str
    status: str
    check_in: str | None = None
    check_out: str | None = None
    net_hours: float | None = None
    work_hours: float | None = None

    @property
    def hours(self) -> float | None:
        """Net hours, falling back to the legacy work_hours field."""
        return self.net_hours if self.net_hours is not None else self.work_hours
