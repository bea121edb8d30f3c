"""Local SQLite storage for breath sessions and device calibrations."""

from breathco.database.repository import CalibrationRepository, SessionRepository

__all__ = [
    "CalibrationRepository",
    "SessionRepository",
]
