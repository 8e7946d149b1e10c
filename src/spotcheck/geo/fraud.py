"""
Heuristic fraud screening for proof-of-visit submissions.

``FraudDetector.assess`` runs five independent checks against a new
submission, the player's previous submissions and the challenge location,
then folds them into one ``FraudAssessment``:

- location spoofing: exact target match, sub-meter accuracy, well-known
  default coordinates (Null Island, emulator defaults)
- travel speed from the previous submission
- submission timing: daily cap, minimum interval, robotic regularity
- submission pattern: duplicate challenge, single proof type
- GPS accuracy quality

Aggregation:
    any check failed                         -> high risk, reject
    mean confidence < 0.7 or any flag raised -> medium risk, review
    otherwise                                -> low risk, approve

Like ``LocationVerification`` the result is advisory. ``assess`` never
raises.

Tags:
    fraud, geo, heuristics, spotcheck
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from spotcheck.core.logging import get_logger
from spotcheck.geo import geodesy
from spotcheck.geo.geodesy import GPSCoordinate
from spotcheck.geo.verification import FraudRisk

logger = get_logger(__name__)

MAX_DRIVING_SPEED_MPS = 50.0
MAX_FLIGHT_SPEED_MPS = 250.0
MIN_SUBMISSION_INTERVAL_S = 60.0
MAX_DAILY_SUBMISSIONS = 50
GOOD_GPS_ACCURACY_M = 10.0
POOR_GPS_ACCURACY_M = 100.0
SPOOF_TOLERANCE_DEG = 0.0001
REVIEW_CONFIDENCE = 0.7

# Default positions handed out by emulators and mock-location apps
SPOOFING_COORDINATES: tuple[tuple[float, float], ...] = (
    (0.0, 0.0),  # Null Island
    (37.7749, -122.4194),  # San Francisco
    (40.7128, -74.0060),  # New York
    (51.5074, -0.1278),  # London
)


class RecommendedAction(str, Enum):
    APPROVE = "approve"
    REVIEW = "review"
    REJECT = "reject"


@dataclass(frozen=True)
class Submission:
    """A proof-of-visit submission as far as fraud screening cares."""

    challenge_id: str
    location: GPSCoordinate
    submitted_at: datetime
    proof_type: str = "photo"

    def located(self) -> GPSCoordinate:
        """Location with ``submitted_at`` as timestamp when the fix has none."""
        if self.location.timestamp is not None:
            return self.location
        return dataclasses.replace(self.location, timestamp=self.submitted_at)


@dataclass(frozen=True)
class FraudCheck:
    name: str
    passed: bool
    confidence: float
    reason: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FraudAssessment:
    is_valid: bool
    fraud_risk: FraudRisk
    reasons: tuple[str, ...]
    confidence: float
    recommended_action: RecommendedAction
    checks: tuple[FraudCheck, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "fraud_risk": self.fraud_risk.value,
            "reasons": list(self.reasons),
            "confidence": round(self.confidence, 3),
            "recommended_action": self.recommended_action.value,
            "checks": {c.name: c.passed for c in self.checks},
        }


def is_spoofing_coordinate(coord: GPSCoordinate) -> bool:
    return any(
        abs(coord.latitude - lat) < SPOOF_TOLERANCE_DEG and abs(coord.longitude - lon) < SPOOF_TOLERANCE_DEG
        for lat, lon in SPOOFING_COORDINATES
    )


def submission_intervals(history: Sequence[Submission]) -> list[float]:
    """Seconds between consecutive submissions, oldest first."""
    ordered = sorted(history, key=lambda s: s.submitted_at)
    return [
        (b.submitted_at - a.submitted_at).total_seconds() for a, b in zip(ordered, ordered[1:])
    ]


def suspicious_timing_pattern(intervals: Sequence[float]) -> str | None:
    """Describe a robotic submission rhythm, if any (needs 3+ intervals)."""
    if len(intervals) < 3:
        return None
    steady = sum(1 for prev, cur in zip(intervals, intervals[1:]) if abs(cur - prev) < 5)
    if steady > len(intervals) * 0.7:
        return "Regular interval pattern suggests automation"
    rapid = sum(1 for interval in intervals if interval < MIN_SUBMISSION_INTERVAL_S)
    if rapid > len(intervals) * 0.5:
        return "Many rapid submissions detected"
    return None


class FraudDetector:
    """Runs the fraud heuristics. Stateless."""

    def assess(
        self,
        submission: Submission,
        history: Sequence[Submission],
        challenge_location: GPSCoordinate,
    ) -> FraudAssessment:
        checks = (
            self.check_location(submission.location, challenge_location),
            self.check_travel_speed(submission, history),
            self.check_timing(submission, history),
            self.check_pattern(submission, history),
            self.check_accuracy(submission.location),
        )
        assessment = self.aggregate(checks)
        logger.info(
            "fraud_assessed",
            challenge_id=submission.challenge_id,
            fraud_risk=assessment.fraud_risk.value,
            action=assessment.recommended_action.value,
            failed=[c.name for c in checks if not c.passed],
        )
        return assessment

    def check_location(self, location: GPSCoordinate, target: GPSCoordinate) -> FraudCheck:
        errors = geodesy.validate(location)
        if errors:
            return FraudCheck("location", False, 0.0, "Invalid GPS coordinates", {"errors": errors})

        if location.latitude == target.latitude and location.longitude == target.longitude:
            return FraudCheck(
                "location", False, 0.9, "Exact coordinate match suggests GPS spoofing", {"exact_match": True}
            )
        if location.accuracy is not None and location.accuracy < 1:
            return FraudCheck(
                "location", False, 0.8, "Unrealistically high GPS accuracy", {"accuracy": location.accuracy}
            )
        if is_spoofing_coordinate(location):
            return FraudCheck("location", False, 0.95, "Common GPS spoofing coordinate detected")

        return FraudCheck("location", True, 0.8, details={"distance": geodesy.distance(location, target)})

    def check_travel_speed(self, submission: Submission, history: Sequence[Submission]) -> FraudCheck:
        if not history:
            return FraudCheck("travel_speed", True, 0.5, details={"note": "no previous submission"})

        previous = max(history, key=lambda s: s.submitted_at)
        mps = geodesy.speed(previous.located(), submission.located())
        if mps is None:
            return FraudCheck("travel_speed", True, 0.3, details={"note": "speed unavailable"})

        details = {"speed": mps}
        if mps > MAX_FLIGHT_SPEED_MPS:
            return FraudCheck("travel_speed", False, 0.95, "Impossible travel speed detected", details)
        if mps > MAX_DRIVING_SPEED_MPS:
            return FraudCheck("travel_speed", True, 0.4, "High travel speed detected", details)
        return FraudCheck("travel_speed", True, 0.8, details=details)

    def check_timing(self, submission: Submission, history: Sequence[Submission]) -> FraudCheck:
        now = submission.submitted_at
        day_ago = now - timedelta(days=1)
        daily = sum(1 for s in history if s.submitted_at >= day_ago)
        if daily >= MAX_DAILY_SUBMISSIONS:
            return FraudCheck(
                "timing", False, 0.9, "Exceeded maximum daily submissions", {"daily_submissions": daily}
            )

        if history:
            since_last = (now - max(s.submitted_at for s in history)).total_seconds()
            if since_last < MIN_SUBMISSION_INTERVAL_S:
                return FraudCheck(
                    "timing", False, 0.8, "Submissions too close together", {"since_last": since_last}
                )

        pattern = suspicious_timing_pattern(submission_intervals(history))
        if pattern:
            return FraudCheck("timing", True, 0.4, "Suspicious timing pattern detected", {"pattern": pattern})
        return FraudCheck("timing", True, 0.8, details={"daily_submissions": daily})

    def check_pattern(self, submission: Submission, history: Sequence[Submission]) -> FraudCheck:
        duplicates = sum(1 for s in history if s.challenge_id == submission.challenge_id)
        if duplicates:
            return FraudCheck(
                "pattern", False, 0.9, "Duplicate challenge submission detected", {"duplicates": duplicates}
            )

        total = len(history)
        same_type = sum(1 for s in history if s.proof_type == submission.proof_type)
        ratio = same_type / total if total else 0.0
        if total > 10 and ratio > 0.9:
            return FraudCheck("pattern", True, 0.5, "Suspicious proof type pattern", {"proof_type_ratio": ratio})
        return FraudCheck("pattern", True, 0.8, details={"proof_type_ratio": ratio})

    def check_accuracy(self, location: GPSCoordinate) -> FraudCheck:
        accuracy = location.accuracy
        if accuracy is None:
            return FraudCheck("accuracy", True, 0.3, "No GPS accuracy reported")
        if accuracy > POOR_GPS_ACCURACY_M:
            return FraudCheck("accuracy", True, 0.4, "Poor GPS accuracy", {"accuracy": accuracy})
        if accuracy <= GOOD_GPS_ACCURACY_M:
            return FraudCheck("accuracy", True, 0.9, details={"accuracy": accuracy})
        return FraudCheck("accuracy", True, 0.7, details={"accuracy": accuracy})

    @staticmethod
    def aggregate(checks: Sequence[FraudCheck]) -> FraudAssessment:
        failed = [c for c in checks if not c.passed]
        reasons = tuple(c.reason for c in checks if c.reason)
        confidence = sum(c.confidence for c in checks) / len(checks) if checks else 0.0

        if failed:
            risk, action = FraudRisk.HIGH, RecommendedAction.REJECT
        elif confidence < REVIEW_CONFIDENCE or reasons:
            risk, action = FraudRisk.MEDIUM, RecommendedAction.REVIEW
        else:
            risk, action = FraudRisk.LOW, RecommendedAction.APPROVE

        return FraudAssessment(
            is_valid=not failed,
            fraud_risk=risk,
            reasons=reasons,
            confidence=confidence,
            recommended_action=action,
            checks=tuple(checks),
        )


__all__ = [
    "FraudAssessment",
    "FraudCheck",
    "FraudDetector",
    "RecommendedAction",
    "SPOOFING_COORDINATES",
    "Submission",
    "is_spoofing_coordinate",
    "submission_intervals",
    "suspicious_timing_pattern",
]
