"""Collaborator interfaces consumed by the scan pipeline.

The audit logger, quarantine store and policy store are owned by the host
application.  This package defines their interfaces plus lightweight
implementations (structured-log audit sink, in-memory policy store) and the
batch threat summary.
"""
