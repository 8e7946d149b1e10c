"""
Proof-of-visit location verification.

``LocationVerifier.verify`` compares the player's fix with the challenge
location and returns a ``LocationVerification`` verdict. Validity depends
only on distance versus radius. ``fraud_risk`` is advisory: upstream code
treats a high risk as one more reason to send the check-in to manual review,
never as a retryable failure.

Rules:
    verification_method
        accuracy unknown        -> manual
        accuracy <= 100 m       -> gps
        accuracy <= 1000 m      -> network
        otherwise               -> manual
    fraud_risk
        manual or unknown accuracy               -> high
        accuracy > 50 m or distance > 0.8*radius -> medium
        otherwise                                -> low

Tags:
    geo, verification, fraud-risk, spotcheck
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from spotcheck.core.logging import get_logger
from spotcheck.geo.geodesy import GPSCoordinate, InvalidCoordinateError, distance, validate_and_normalize

logger = get_logger(__name__)

DEFAULT_RADIUS_M = 100.0
GPS_ACCURACY_LIMIT_M = 100
NETWORK_ACCURACY_LIMIT_M = 1000
MEDIUM_RISK_ACCURACY_M = 50
MEDIUM_RISK_RADIUS_FRACTION = 0.8


class FraudRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VerificationMethod(str, Enum):
    GPS = "gps"
    NETWORK = "network"
    MANUAL = "manual"


@dataclass(frozen=True)
class LocationVerification:
    """Verdict for one check-in attempt.

    ``distance`` is whole meters, or ``None`` when the input was invalid.
    """

    is_valid: bool
    distance: int | None
    accuracy: float | None
    fraud_risk: FraudRisk
    verification_method: VerificationMethod
    errors: tuple[str, ...] = ()

    @property
    def needs_manual_review(self) -> bool:
        return self.fraud_risk is FraudRisk.HIGH

    def to_dict(self) -> dict[str, object]:
        return {
            "is_valid": self.is_valid,
            "distance": self.distance,
            "accuracy": self.accuracy,
            "fraud_risk": self.fraud_risk.value,
            "verification_method": self.verification_method.value,
            "needs_manual_review": self.needs_manual_review,
            "errors": list(self.errors),
        }


def method_for_accuracy(accuracy: float | None) -> VerificationMethod:
    if accuracy is None:
        return VerificationMethod.MANUAL
    if accuracy <= GPS_ACCURACY_LIMIT_M:
        return VerificationMethod.GPS
    if accuracy <= NETWORK_ACCURACY_LIMIT_M:
        return VerificationMethod.NETWORK
    return VerificationMethod.MANUAL


class LocationVerifier:
    """Checks a player's fix against a target radius."""

    def __init__(self, default_radius: float = DEFAULT_RADIUS_M):
        if default_radius <= 0:
            raise ValueError("default_radius must be > 0")
        self.default_radius = default_radius

    def verify(
        self,
        user: GPSCoordinate,
        target: GPSCoordinate,
        radius_meters: float | None = None,
    ) -> LocationVerification:
        radius = self.default_radius if radius_meters is None else radius_meters
        if radius <= 0:
            raise ValueError("radius_meters must be > 0")

        try:
            user_n = validate_and_normalize(user)
            target_n = validate_and_normalize(target)
        except InvalidCoordinateError as e:
            logger.info("location_rejected", errors=e.errors)
            return LocationVerification(
                is_valid=False,
                distance=None,
                accuracy=user.accuracy,
                fraud_risk=FraudRisk.HIGH,
                verification_method=VerificationMethod.MANUAL,
                errors=tuple(e.errors),
            )

        meters = distance(user_n, target_n)
        accuracy = user_n.accuracy
        method = method_for_accuracy(accuracy)

        if method is VerificationMethod.MANUAL or accuracy is None:
            risk = FraudRisk.HIGH
        elif accuracy > MEDIUM_RISK_ACCURACY_M or meters > radius * MEDIUM_RISK_RADIUS_FRACTION:
            risk = FraudRisk.MEDIUM
        else:
            risk = FraudRisk.LOW

        verdict = LocationVerification(
            is_valid=meters <= radius,
            distance=round(meters),
            accuracy=accuracy,
            fraud_risk=risk,
            verification_method=method,
        )
        logger.info(
            "location_verified",
            is_valid=verdict.is_valid,
            distance=verdict.distance,
            radius=radius,
            accuracy=accuracy,
            fraud_risk=risk.value,
            method=method.value,
        )
        return verdict


def verify_location(
    user: GPSCoordinate,
    target: GPSCoordinate,
    radius_meters: float = DEFAULT_RADIUS_M,
) -> LocationVerification:
    """One-off verification with a throwaway verifier."""
    return LocationVerifier().verify(user, target, radius_meters)


__all__ = [
    "DEFAULT_RADIUS_M",
    "FraudRisk",
    "LocationVerification",
    "LocationVerifier",
    "VerificationMethod",
    "method_for_accuracy",
    "verify_location",
]
