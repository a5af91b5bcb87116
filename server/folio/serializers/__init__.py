"""Serializer package for the `folio` Django app.

This package re-exports the public DRF serializer classes used by views.
"""

from .passkey import (
    CheckExistingSerializer,
    PasskeyLoginBeginSerializer,
    PasskeyLoginCompleteSerializer,
    PasskeyRegisterCompleteSerializer,
    PasskeyRenameSerializer,
    PasswordLoginSerializer,
)

__all__ = [
    "CheckExistingSerializer",
    "PasskeyLoginBeginSerializer",
    "PasskeyLoginCompleteSerializer",
    "PasskeyRegisterCompleteSerializer",
    "PasskeyRenameSerializer",
    "PasswordLoginSerializer",
]
