"""Spotcheck geo — geodesy, check-in verification and fraud heuristics."""

from spotcheck.geo.geodesy import GPSCoordinate, InvalidCoordinateError
from spotcheck.geo.verification import (
    FraudRisk,
    LocationVerification,
    LocationVerifier,
    VerificationMethod,
    verify_location,
)

__all__ = [
    "FraudRisk",
    "GPSCoordinate",
    "InvalidCoordinateError",
    "LocationVerification",
    "LocationVerifier",
    "VerificationMethod",
    "verify_location",
]
