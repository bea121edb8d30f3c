"""Sampling sessions, persisted records and CSV export."""

from breathco.session.records import (
    BreathDataPointRecord,
    BreathSessionRecord,
    build_session_record,
    format_timestamp,
    generate_session_id,
)
from breathco.session.sampling import SamplingSession, SessionOutcome

__all__ = [
    "BreathDataPointRecord",
    "BreathSessionRecord",
    "SamplingSession",
    "SessionOutcome",
    "build_session_record",
    "format_timestamp",
    "generate_session_id",
]
