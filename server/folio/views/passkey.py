import logging

from django.conf import settings
from django_ratelimit.decorators import ratelimit
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from folio.serializers import (
    CheckExistingSerializer,
    PasskeyLoginBeginSerializer,
    PasskeyLoginCompleteSerializer,
    PasskeyRegisterCompleteSerializer,
    PasskeyRenameSerializer,
)
from folio.services import build_services
from folio.utils import (
    CeremonyRejected,
    CredentialNotFound,
    DuplicateCredential,
    NoCredentialsRegistered,
    format_error,
)
from folio.utils.webauthn import b64url_decode
from folio.views.auth import login_success_response, validation_error_response

logger = logging.getLogger(__name__)


def _subject(validated_data) -> str:
    return validated_data.get("username") or settings.ADMIN_USERNAME


def _not_found_response() -> Response:
    return Response(
        format_error(code="credential_not_found", message="Passkey not found"),
        status=status.HTTP_404_NOT_FOUND,
    )


@ratelimit(group="passkey_register_begin", key="ip", rate="5/m", block=True)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def passkey_register_begin(request):
    services = build_services()
    options = services.registration.begin_registration(request.user.username)
    return Response(options)


@ratelimit(group="passkey_register_complete", key="ip", rate="5/m", block=True)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def passkey_register_complete(request):
    serializer = PasskeyRegisterCompleteSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer)

    services = build_services()
    try:
        passkey = services.registration.complete_registration(
            request.user.username,
            serializer.validated_data["credential"],
            serializer.validated_data.get("name"),
        )
    except DuplicateCredential as exc:
        logger.warning("Duplicate passkey registration for %s: %s", request.user.username, exc)
        return Response(
            format_error(code=exc.code, message=exc.public_message),
            status=status.HTTP_409_CONFLICT,
        )
    except CeremonyRejected as exc:
        logger.warning(
            "Passkey registration rejected for %s: %s (%s)",
            request.user.username,
            exc.code,
            exc,
        )
        return Response(
            format_error(
                code="registration_failed",
                message="Passkey registration failed",
                details={"reason": exc.code},
            ),
            status=status.HTTP_400_BAD_REQUEST,
        )

    return Response(
        {"message": "Passkey registered successfully", "passkey": passkey},
        status=status.HTTP_201_CREATED,
    )


@ratelimit(group="passkey_login_begin", key="ip", rate="10/m", block=True)
@api_view(["POST"])
@permission_classes([AllowAny])
def passkey_login_begin(request):
    serializer = PasskeyLoginBeginSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer)

    services = build_services()
    try:
        options = services.authentication.begin_authentication(_subject(serializer.validated_data))
    except NoCredentialsRegistered as exc:
        return Response(
            format_error(code=exc.code, message=exc.public_message),
            status=status.HTTP_404_NOT_FOUND,
        )
    return Response(options)


@ratelimit(group="passkey_login_complete", key="ip", rate="10/m", block=True)
@api_view(["POST"])
@permission_classes([AllowAny])
def passkey_login_complete(request):
    """
    Verify a passkey assertion and start an admin session.

    Every verification failure answers the same PASSKEY_AUTH_FAILED error;
    the specific reason is only written to the server log.
    """
    serializer = PasskeyLoginCompleteSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer)

    services = build_services()
    try:
        identity = services.authentication.complete_authentication(
            _subject(serializer.validated_data),
            serializer.validated_data["credential"],
        )
    except CeremonyRejected:
        return Response(
            format_error(
                code="passkey_auth_failed",
                message="Passkey authentication failed",
            ),
            status=status.HTTP_400_BAD_REQUEST,
        )

    token, record = services.sessions.issue(identity)
    return login_success_response(token, record.username)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def passkey_list(request):
    services = build_services()
    records = services.credentials.list_by_owner(request.user.username)
    return Response({"passkeys": [record.public_fields() for record in records]})


@api_view(["PATCH", "DELETE"])
@permission_classes([IsAuthenticated])
def passkey_detail(request, credential_id):
    """
    Rename (PATCH) or revoke (DELETE) one of the admin's passkeys.

    Passkeys owned by anyone else are reported as not found.
    """
    try:
        raw_id = b64url_decode(credential_id)
    except ValueError:
        return _not_found_response()
    if not raw_id:
        return _not_found_response()

    services = build_services()
    owner_id = request.user.username

    if request.method == "DELETE":
        try:
            services.credentials.remove(raw_id, owner_id)
        except CredentialNotFound:
            return _not_found_response()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = PasskeyRenameSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer)
    try:
        record = services.credentials.rename(raw_id, owner_id, serializer.validated_data["name"])
    except CredentialNotFound:
        return _not_found_response()
    return Response(record.public_fields())


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def passkey_status(request):
    services = build_services()
    records = services.credentials.list_by_owner(request.user.username)
    registered_at = min((record.created_at for record in records), default=None)
    return Response(
        {
            "hasPasskey": bool(records),
            "count": len(records),
            "registeredAt": registered_at.isoformat() if registered_at else None,
        }
    )


@ratelimit(group="passkey_check_existing", key="ip", rate="30/m", block=True)
@api_view(["GET"])
@permission_classes([AllowAny])
def passkey_check_existing(request):
    """
    Tell the login page whether to offer the passkey button.

    GET /api/auth/passkey/check-existing/?username=admin
    """
    serializer = CheckExistingSerializer(data=request.query_params)
    if not serializer.is_valid():
        return validation_error_response(serializer)

    services = build_services()
    return Response(
        {"hasPasskeys": services.credentials.has_credentials(_subject(serializer.validated_data))}
    )
