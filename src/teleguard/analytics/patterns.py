"""Activity pattern summary - behavior context for a subscriber."""

from collections import Counter
from typing import Optional, Sequence

from teleguard.common.constants import DataConstants
from teleguard.data.schemas import ActivityPattern, ActivityRecord


def summarize_activity(
    records: Sequence[ActivityRecord],
    subject_id: Optional[str] = None,
) -> ActivityPattern:
    """Aggregate a subscriber's activity records.

    The peak hour is the busiest hour of day (earliest on ties, timestamps
    taken as recorded). A peak before 06:00 or after 22:00 marks the
    pattern as unusual_hours.
    """
    if subject_id is None:
        subject_id = records[0].subject_id if records else None

    calls = [r for r in records if r.activity_type == "call"]
    fraud = [r for r in records if r.is_fraud_flagged]
    total = len(records)

    time_pattern = "normal_hours"
    if records:
        hour_counts = Counter(r.timestamp.hour for r in records)
        peak_count = max(hour_counts.values())
        peak_hour = min(h for h, c in hour_counts.items() if c == peak_count)
        if peak_hour < DataConstants.UNUSUAL_HOURS_START or peak_hour > DataConstants.UNUSUAL_HOURS_END:
            time_pattern = "unusual_hours"

    return ActivityPattern(
        subject_id=subject_id,
        total_calls=len(calls),
        total_sms=total - len(calls),
        fraud_count=len(fraud),
        average_duration=(
            sum(r.duration_seconds for r in calls) / len(calls) if calls else 0.0
        ),
        unique_locations=len({r.location for r in records}),
        roaming_percentage=(
            sum(1 for r in records if r.is_roaming) / total * 100 if total else 0.0
        ),
        suspicious_numbers=len({r.peer_address for r in fraud}),
        time_pattern=time_pattern,
    )
