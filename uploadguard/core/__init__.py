"""UploadGuard core scanning components.

This package contains the scan subject and content sources, the magic-number
table, the heuristic rule table, the six detectors, the decision engine and
the scan pipeline orchestrator.
"""
