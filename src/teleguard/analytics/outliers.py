"""Statistical Outlier Detector.

Three passes over one batch of activity records:
1. Call duration outliers (population z-score, |z| > 2)
2. Location frequency spikes (z > 2 and count > 2x mean, >3 locations)
3. Fraud-rate spike (flagged / total > 10%)

Population statistics throughout (numpy default ddof=0). A pass whose
standard deviation is zero is skipped.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence

import numpy as np

from teleguard.common.constants import DataConstants, OutlierConstants
from teleguard.data.schemas import ActivityRecord, Anomaly, Severity
from teleguard.publishing import TOPIC_ANOMALY_DETECTED

logger = logging.getLogger(__name__)

DURATION_OUTLIER = "call_duration_outlier"
LOCATION_SPIKE = "location_activity_spike"
FRAUD_RATE_SPIKE = "fraud_rate_spike"


class OutlierDetector:
    """Keeps no state between scans; safe to run alongside the scoring pipeline."""

    def __init__(
        self,
        publisher: Optional[Any] = None,
        audit_logger: Optional[Any] = None,
        policy_version: str = "1.0.0",
    ):
        """Initialize the detector.

        Args:
            publisher: EventPublisher notified of findings from scan()
            audit_logger: AuditLogger recording each completed scan
            policy_version: Version stamped on audit entries
        """
        self.publisher = publisher
        self.audit_logger = audit_logger
        self.policy_version = policy_version

    def detect(self, records: Sequence[ActivityRecord]) -> List[Anomaly]:
        """Run all passes. Batches smaller than 50 records yield nothing."""
        if len(records) < OutlierConstants.MIN_SAMPLE_SIZE:
            return []

        anomalies: List[Anomaly] = []
        anomalies.extend(self._duration_outliers(records))
        anomalies.extend(self._location_spikes(records))
        fraud = self._fraud_rate_spike(records)
        if fraud is not None:
            anomalies.append(fraud)
        return anomalies

    def scan(
        self,
        activity_store: Any,
        subject_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = DataConstants.ACTIVITY_SCAN_LIMIT,
    ) -> List[Anomaly]:
        """Load activity from the store and detect outliers in it."""
        records = activity_store.get_activities(
            subject_id=subject_id, start=start, end=end, limit=limit
        )
        anomalies = self.detect(records)

        logger.info(
            f"Outlier scan found {len(anomalies)} anomalies in {len(records)} records",
            extra={"subject_id": subject_id, "record_count": len(records)},
        )

        if self.publisher is not None:
            for anomaly in anomalies:
                self.publisher.publish(TOPIC_ANOMALY_DETECTED, anomaly.model_dump(mode="json"))
        if self.audit_logger is not None:
            try:
                self.audit_logger.log_anomaly_scan(
                    record_count=len(records),
                    anomaly_count=len(anomalies),
                    policy_version=self.policy_version,
                    metadata={"subject_id": subject_id},
                )
            except Exception as e:
                logger.error(f"Failed to audit outlier scan: {e}")
        return anomalies

    def _duration_outliers(self, records: Sequence[ActivityRecord]) -> List[Anomaly]:
        calls = [r for r in records if r.activity_type == "call" and r.duration_seconds > 0]
        if not calls:
            return []

        durations = np.array([r.duration_seconds for r in calls], dtype=float)
        mean = float(durations.mean())
        std = float(durations.std())
        if std == 0:
            return []

        threshold = OutlierConstants.DURATION_Z_THRESHOLD
        anomalies = []
        for record, duration in zip(calls, durations):
            if abs(duration - mean) <= threshold * std:
                continue
            z = abs(float(duration) - mean) / std
            if z > OutlierConstants.DURATION_Z_CRITICAL:
                severity = Severity.CRITICAL
            elif z > OutlierConstants.DURATION_Z_HIGH:
                severity = Severity.HIGH
            else:
                severity = Severity.MEDIUM

            anomalies.append(Anomaly(
                timestamp=record.timestamp,
                anomaly_type=DURATION_OUTLIER,
                severity=severity,
                score=min(10.0, z),
                description=f"Unusual call duration: {record.duration_seconds}s (avg: {mean:.1f}s)",
                affected_metrics=["call_duration"],
                confidence=min(
                    OutlierConstants.DURATION_CONFIDENCE_CAP, 0.6 + (z - threshold) * 0.1
                ),
                source=f"user_{record.subject_id}",
                details={
                    "record_id": record.record_id,
                    "actual_duration": record.duration_seconds,
                    "mean_duration": round(mean, 3),
                    "std_duration": round(std, 3),
                    "z_score": round(z, 3),
                    "expected_range": f"{mean - threshold * std:.1f}-{mean + threshold * std:.1f}s",
                    "peer_address": record.peer_address,
                },
            ))
            if len(anomalies) >= OutlierConstants.MAX_DURATION_OUTLIERS:
                break
        return anomalies

    def _location_spikes(self, records: Sequence[ActivityRecord]) -> List[Anomaly]:
        counts: dict = {}
        for record in records:
            counts[record.location] = counts.get(record.location, 0) + 1
        if len(counts) <= OutlierConstants.LOCATION_MIN_DISTINCT:
            return []

        values = np.array(list(counts.values()), dtype=float)
        mean = float(values.mean())
        std = float(values.std())
        if std == 0:
            return []

        anomalies = []
        for location, count in counts.items():
            z = (count - mean) / std
            if not (z > OutlierConstants.LOCATION_Z_THRESHOLD
                    and count > OutlierConstants.LOCATION_MEAN_MULTIPLIER * mean):
                continue
            if z > OutlierConstants.LOCATION_Z_CRITICAL:
                severity = Severity.CRITICAL
            elif count > OutlierConstants.LOCATION_HIGH_MEAN_MULTIPLIER * mean:
                severity = Severity.HIGH
            else:
                severity = Severity.MEDIUM

            anomalies.append(Anomaly(
                anomaly_type=LOCATION_SPIKE,
                severity=severity,
                score=min(10.0, z),
                description=f"Unusual activity spike in {location}: {count} activities (avg: {mean:.1f})",
                affected_metrics=["location_frequency"],
                confidence=min(OutlierConstants.LOCATION_CONFIDENCE_CAP, 0.5 + z * 0.1),
                source=location,
                details={
                    "activity_count": count,
                    "average_count": round(mean, 3),
                    "z_score": round(z, 3),
                    "spike_ratio": round(count / mean, 3),
                },
            ))
        return anomalies

    def _fraud_rate_spike(self, records: Sequence[ActivityRecord]) -> Optional[Anomaly]:
        total = len(records)
        flagged = sum(1 for r in records if r.is_fraud_flagged)
        rate = flagged / total
        if rate <= OutlierConstants.FRAUD_RATE_THRESHOLD:
            return None

        if rate > OutlierConstants.FRAUD_RATE_CRITICAL:
            severity = Severity.CRITICAL
        elif rate >= OutlierConstants.FRAUD_RATE_HIGH:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM

        return Anomaly(
            anomaly_type=FRAUD_RATE_SPIKE,
            severity=severity,
            score=min(10.0, rate * OutlierConstants.FRAUD_RATE_SCORE_MULTIPLIER),
            description=f"Fraud-flagged activity at {rate:.1%} of {total} records",
            affected_metrics=["fraud_rate"],
            confidence=OutlierConstants.FRAUD_RATE_CONFIDENCE,
            source="activity_batch",
            details={"fraud_count": flagged, "total": total, "fraud_rate": rate},
        )
