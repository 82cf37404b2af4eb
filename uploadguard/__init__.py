"""UploadGuard — pre-upload file security scanner.

Static, local inspection of user-supplied files before they are accepted for
storage: disguised executables, script and markup injection, decompression
bombs and polyglot payloads, followed by an allow/block/quarantine decision
under a configurable :class:`~uploadguard.schemas.policy.SecurityConfig`.
"""
