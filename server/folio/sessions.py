"""
Admin sessions.

A session is an opaque random token bound to a ``SessionRecord`` stored at
``session:{token}`` with a fixed lifetime. The browser carries the token in an
HttpOnly cookie; API clients may send ``Authorization: Session <token>``.
"""
import logging
import secrets
from dataclasses import dataclass

from django.conf import settings
from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication, get_authorization_header

from folio.records import SessionRecord, VerifiedIdentity
from folio.store import KeyValueStore
from folio.utils.exceptions import MalformedRecord
from folio.utils.webauthn import b64url_encode

logger = logging.getLogger(__name__)

SESSION_TOKEN_BYTES = 32
DEFAULT_SESSION_TTL_SECONDS = 3600
AUTH_HEADER_KEYWORD = b"session"


def session_key(token: str) -> str:
    return f"session:{token}"


class SessionIssuer:
    def __init__(self, store: KeyValueStore, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS):
        self.store = store
        self.ttl_seconds = ttl_seconds

    def issue(self, identity: VerifiedIdentity) -> tuple[str, SessionRecord]:
        token = secrets.token_urlsafe(SESSION_TOKEN_BYTES)
        record = SessionRecord(
            username=identity.subject_id,
            login_method=identity.method,
            logged_in_at=identity.authenticated_at,
            credential_id=(
                b64url_encode(identity.credential_id)
                if identity.credential_id is not None
                else None
            ),
        )
        self.store.put(session_key(token), record.to_bytes(), ttl=self.ttl_seconds)
        logger.info("Session issued for %s via %s", record.username, record.login_method)
        return token, record

    def resolve(self, token: str) -> SessionRecord | None:
        if not token:
            return None
        raw = self.store.get(session_key(token))
        if raw is None:
            return None
        try:
            return SessionRecord.from_bytes(raw)
        except MalformedRecord:
            logger.warning("Dropping unreadable session %s...", token[:6])
            self.store.delete(session_key(token))
            return None

    def revoke(self, token: str) -> bool:
        if not token:
            return False
        return self.store.delete(session_key(token))


@dataclass
class AdminPrincipal:
    """The ``request.user`` of an authenticated admin request."""

    username: str
    session: SessionRecord
    token: str

    is_authenticated = True
    is_anonymous = False
    is_active = True

    def __str__(self):
        return self.username


def session_issuer_from_settings() -> SessionIssuer:
    return SessionIssuer(
        KeyValueStore.from_settings(),
        ttl_seconds=getattr(settings, "ADMIN_SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS),
    )


def presented_session_tokens(request) -> list[str]:
    """Tokens carried by the request (header, then cookie), unvalidated."""
    tokens = []
    auth = get_authorization_header(request).split()
    if len(auth) == 2 and auth[0].lower() == AUTH_HEADER_KEYWORD:
        tokens.append(auth[1].decode("latin-1"))
    cookie = request.COOKIES.get(getattr(settings, "ADMIN_SESSION_COOKIE", "admin_session"))
    if cookie and cookie not in tokens:
        tokens.append(cookie)
    return tokens


class AdminSessionAuthentication(BaseAuthentication):
    """
    DRF authentication backed by admin session tokens.

    An ``Authorization: Session <token>`` header wins over the session
    cookie. A stale cookie is treated as anonymous so public endpoints such
    as the login page keep working; a stale header is rejected.
    """

    keyword = "Session"

    def authenticate(self, request):
        token = self._token_from_header(request)
        from_header = token is not None
        if token is None:
            cookie_name = getattr(settings, "ADMIN_SESSION_COOKIE", "admin_session")
            token = request.COOKIES.get(cookie_name) or None
        if token is None:
            return None

        record = session_issuer_from_settings().resolve(token)
        if record is None:
            if from_header:
                raise exceptions.AuthenticationFailed("Session expired or invalid")
            return None

        return AdminPrincipal(username=record.username, session=record, token=token), token

    def _token_from_header(self, request):
        auth = get_authorization_header(request).split()
        if not auth or auth[0].lower() != AUTH_HEADER_KEYWORD:
            return None
        if len(auth) != 2:
            raise exceptions.AuthenticationFailed("Invalid session header")
        try:
            return auth[1].decode("ascii")
        except UnicodeDecodeError as exc:
            raise exceptions.AuthenticationFailed("Invalid session header") from exc

    def authenticate_header(self, request):
        return self.keyword
