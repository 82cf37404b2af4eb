"""Heuristic rule library for UploadGuard.

Provides the built-in injection rule table and custom pattern compilation.
"""

from uploadguard.core.patterns.injection_rules import (
    BUILTIN_RULES,
    BASE64_RUN,
    InjectionRule,
    compile_custom_patterns,
    get_builtin_rules,
)

__all__ = [
    "BASE64_RUN",
    "BUILTIN_RULES",
    "InjectionRule",
    "compile_custom_patterns",
    "get_builtin_rules",
]
