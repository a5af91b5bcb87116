import logging

from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


def exception_handler(exc, context):
    """
    Custom exception handler for DRF that returns consistent error format.

    Passkey errors that escape a view (store outages in particular) are
    rendered in the same envelope as regular DRF errors.
    """
    if isinstance(exc, PasskeyError):
        request = context.get("request")
        logger.warning(
            "Unhandled %s on %s: %s",
            exc.code,
            getattr(request, "path", "?"),
            exc,
        )
        return Response(
            format_error(code=exc.code, message=exc.public_message),
            status=exc.status_code,
        )

    # rest_framework.views loads the authentication classes, which import this package.
    from rest_framework.views import exception_handler as drf_exception_handler

    response = drf_exception_handler(exc, context)

    if response:
        response.data = format_error(
            code=getattr(exc, "default_code", "error"),
            message=str(exc),
            details=(
                response.data
                if isinstance(response.data, dict)
                else {"detail": response.data}
            ),
        )

    return response


def format_error(code: str, message: str, details=None):
    return {
        "error": {
            "code": str(code).upper(),
            "message": message,
            "details": details if details is not None else {},
        }
    }


class PasskeyError(Exception):
    """Base class for every failure raised by the passkey core."""

    code = "passkey_error"
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Passkey operation failed"


class CeremonyRejected(PasskeyError):
    """A registration or authentication response failed verification."""

    code = "ceremony_rejected"


class ChallengeExpiredOrMissing(CeremonyRejected):
    code = "challenge_expired_or_missing"


class MalformedAttestation(CeremonyRejected):
    code = "malformed_attestation"


class MalformedAssertion(CeremonyRejected):
    code = "malformed_assertion"


class OriginMismatch(CeremonyRejected):
    code = "origin_mismatch"


class RpIdMismatch(CeremonyRejected):
    code = "rp_id_mismatch"


class ChallengeMismatch(CeremonyRejected):
    code = "challenge_mismatch"


class CeremonyTypeMismatch(CeremonyRejected):
    code = "ceremony_type_mismatch"


class UserPresenceRequired(CeremonyRejected):
    code = "user_presence_required"


class DuplicateCredential(CeremonyRejected):
    """Raised when a credential id is already registered (to any owner)"""

    code = "duplicate_credential"
    status_code = status.HTTP_409_CONFLICT
    public_message = "This passkey is already registered"


class UnknownCredential(CeremonyRejected):
    code = "unknown_credential"


class SignatureInvalid(CeremonyRejected):
    code = "signature_invalid"


class ReplayDetected(CeremonyRejected):
    """Raised when an assertion's signature counter did not advance"""

    code = "replay_detected"


class NoCredentialsRegistered(PasskeyError):
    """Raised when a subject has no passkey to authenticate with"""

    code = "no_credentials"
    status_code = status.HTTP_404_NOT_FOUND
    public_message = "No passkeys registered"


class CredentialNotFound(PasskeyError):
    code = "credential_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    public_message = "Passkey not found"


class MalformedRecord(PasskeyError):
    """Raised when a stored record cannot be decoded into its typed form"""

    code = "malformed_record"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Stored record is corrupt"


class StoreUnavailable(PasskeyError):
    """Raised when the key-value store cannot be reached"""

    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    public_message = "Authentication store is unavailable"


class LockTimeout(StoreUnavailable):
    code = "lock_timeout"
