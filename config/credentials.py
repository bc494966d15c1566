"""Credential lookup used by the search client.

Secure storage lives outside this package; here we only read the process
environment and fall back to the plain preference value from settings.
"""

from __future__ import annotations

import os
from typing import Callable, Optional

from .settings import get_settings

CredentialResolver = Callable[[str], Optional[str]]

SERPAPI_API_KEY = "serpapi_api_key"


def resolve_credential(name: str) -> Optional[str]:
    """Return the credential value for ``name`` or None when absent/blank."""
    key = str(name or "").strip()
    if not key:
        return None

    value = os.environ.get(key.upper())
    if value and value.strip():
        return value.strip()

    fallback = getattr(get_settings().credentials, key.lower(), None)
    if fallback and str(fallback).strip():
        return str(fallback).strip()
    return None


def static_resolver(values: dict) -> CredentialResolver:
    """Build a resolver over a fixed mapping (CLI overrides, tests)."""
    frozen = {str(k).lower(): v for k, v in dict(values or {}).items()}

    def _resolve(name: str) -> Optional[str]:
        value = frozen.get(str(name or "").strip().lower())
        text = str(value or "").strip()
        return text or None

    return _resolve
