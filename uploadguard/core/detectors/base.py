"""Abstract interface shared by every scan detector.

All detectors subclass :class:`Detector`.  The pipeline runs every enabled
detector against the same :class:`~uploadguard.core.scan_subject.ScanSubject`
and :class:`~uploadguard.schemas.policy.SecurityConfig`, concatenates their
threat lists and hands the union to the decision engine.

Detector contract
-----------------
* **Stateless.**  A detector holds only construction-time limits.  The same
  instance is reused concurrently across scans.
* **Read-only.**  Detectors never mutate the subject or the policy.
* **Local faults are modeled.**  Expected I/O or decode failures are turned
  into low/medium threats (or silently skipped) inside the detector.
  Anything else propagates; the pipeline converts it into a fail-secure
  result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from uploadguard.core.scan_subject import ScanSubject
from uploadguard.schemas.policy import SecurityConfig
from uploadguard.schemas.threat import Threat


class Detector(ABC):
    """Base class for all detectors."""

    #: Short, stable identifier used in span names and log entries.
    name: str = "detector"

    def is_enabled(self, subject: ScanSubject, policy: SecurityConfig) -> bool:
        """Return ``True`` if this detector applies to *subject* under *policy*.

        Disabled detectors contribute an empty threat list.  The default
        implementation always runs.
        """
        return True

    @abstractmethod
    async def inspect(self, subject: ScanSubject, policy: SecurityConfig) -> list[Threat]:
        """Inspect *subject* and return the threats found, in detection order.

        Args:
            subject: The file under scan.
            policy: The active, immutable policy.

        Returns:
            A possibly empty list of :class:`~uploadguard.schemas.threat.Threat`.
        """


def format_file_size(num_bytes: float) -> str:
    """Return *num_bytes* as a short human-readable string (``"1.5 MB"``)."""
    units = ("B", "KB", "MB", "GB")
    size = float(num_bytes)
    unit = 0
    while size >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{size:.1f} {units[unit]}"
