"""Pydantic schemas shared by the scanner core and its collaborators."""

from uploadguard.schemas.policy import PolicyValidationError, SecurityConfig, SecurityLevel
from uploadguard.schemas.scan_result import ScanMetadata, ScanResult
from uploadguard.schemas.threat import Severity, Threat, ThreatType

__all__ = [
    "PolicyValidationError",
    "ScanMetadata",
    "ScanResult",
    "SecurityConfig",
    "SecurityLevel",
    "Severity",
    "Threat",
    "ThreatType",
]
