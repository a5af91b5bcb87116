import logging

from django.conf import settings
from django.utils.crypto import constant_time_compare
from django_ratelimit.decorators import ratelimit
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from folio.records import LOGIN_METHOD_PASSWORD, VerifiedIdentity, utcnow
from folio.serializers import PasswordLoginSerializer
from folio.services import build_services
from folio.sessions import presented_session_tokens
from folio.utils import format_error

logger = logging.getLogger(__name__)


def _session_cookie_name() -> str:
    return getattr(settings, "ADMIN_SESSION_COOKIE", "admin_session")


def set_session_cookie(response, token: str) -> None:
    """
    Attach the admin session token to ``response`` as an HttpOnly cookie.

    The cookie lives exactly as long as the stored session record.
    """
    response.set_cookie(
        _session_cookie_name(),
        token,
        # HttpOnly prevents JS access; reduces XSS impact.
        httponly=True,
        # Secure cookies outside DEBUG (HTTPS only).
        secure=not getattr(settings, "DEBUG", True),
        samesite="Strict",
        max_age=settings.ADMIN_SESSION_TTL_SECONDS,
        path="/",
    )


def login_success_response(token: str, username: str) -> Response:
    response = Response(
        {
            "success": True,
            "username": username,
            "redirect": settings.ADMIN_LOGIN_REDIRECT,
        }
    )
    set_session_cookie(response, token)
    return response


def validation_error_response(serializer) -> Response:
    return Response(
        format_error(
            code="validation_error",
            message="Invalid request",
            details=serializer.errors,
        ),
        status=status.HTTP_400_BAD_REQUEST,
    )


@ratelimit(group="password_login", key="ip", rate="5/m", block=True)
@api_view(["POST"])
@permission_classes([AllowAny])
def password_login(request):
    """
    Log the administrator in with the configured username and password.

    POST /api/auth/login/

    Body:
    {
        "username": "admin",
        "password": "..."
    }

    Notes:
    - This is the fallback when no passkey is registered yet.
    - Credentials come from `ADMIN_USERNAME` / `ADMIN_PASSWORD`; an unset
      password disables this path entirely.
    """
    serializer = PasswordLoginSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer)

    username = serializer.validated_data["username"]
    password = serializer.validated_data["password"]
    expected_password = getattr(settings, "ADMIN_PASSWORD", "") or ""

    if not expected_password:
        logger.error("Password login attempted but ADMIN_PASSWORD is not configured")

    # Compare both fields even when the username is wrong to keep timing flat.
    username_ok = constant_time_compare(username, settings.ADMIN_USERNAME)
    password_ok = bool(expected_password) and constant_time_compare(password, expected_password)
    if not (username_ok and password_ok):
        logger.warning("Password login rejected for %r", username)
        return Response(
            format_error(
                code="invalid_credentials",
                message="Invalid username or password",
            ),
            status=status.HTTP_401_UNAUTHORIZED,
        )

    services = build_services()
    token, record = services.sessions.issue(
        VerifiedIdentity(
            subject_id=settings.ADMIN_USERNAME,
            method=LOGIN_METHOD_PASSWORD,
            authenticated_at=utcnow(),
        )
    )
    return login_success_response(token, record.username)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def auth_logout(request):
    """
    Log out the current admin session.

    POST /api/auth/logout/

    Revokes the presented session (if any) server-side and deletes the
    session cookie. Tokens are read without authenticating the request, so
    clients holding an expired session can still log out.
    """
    sessions = build_services().sessions
    for token in presented_session_tokens(request):
        sessions.revoke(token)

    response = Response({"message": "Successfully logged out"})
    response.delete_cookie(_session_cookie_name(), path="/", samesite="Strict")
    return response


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def auth_me(request):
    """
    Return the current admin session.

    GET /api/auth/me/

    Returns:
    {
        "username": "admin",
        "loginMethod": "passkey",
        "loggedInAt": "2024-01-01T00:00:00+00:00",
        "credentialId": "..."
    }
    """
    session = request.user.session
    return Response(
        {
            "username": session.username,
            "loginMethod": session.login_method,
            "loggedInAt": session.logged_in_at.isoformat(),
            "credentialId": session.credential_id,
        }
    )
