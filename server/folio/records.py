"""
Typed records persisted in the key-value store.

Records are stored as compact JSON; binary fields are base64url without
padding. Decoding validates every field so that a corrupt or foreign value is
rejected at the store boundary with ``MalformedRecord`` instead of leaking
half-parsed data into a ceremony.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone

from folio.utils.exceptions import MalformedRecord
from folio.utils.webauthn import b64url_decode, b64url_encode

CEREMONY_REGISTRATION = "registration"
CEREMONY_AUTHENTICATION = "authentication"
CEREMONY_TYPES = (CEREMONY_REGISTRATION, CEREMONY_AUTHENTICATION)

LOGIN_METHOD_PASSKEY = "passkey"
LOGIN_METHOD_PASSWORD = "password"
LOGIN_METHODS = (LOGIN_METHOD_PASSKEY, LOGIN_METHOD_PASSWORD)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def _load(raw: bytes, kind: str) -> dict:
    if raw is None:
        raise MalformedRecord(f"{kind} record is empty")
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError, UnicodeDecodeError) as exc:
        raise MalformedRecord(f"{kind} record is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedRecord(f"{kind} record is not an object")
    return payload


def _dump(payload: dict) -> bytes:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")


def _require(payload: dict, name: str, expected_type, kind: str, optional: bool = False):
    value = payload.get(name)
    if value is None and optional:
        return None
    # bool is an int subclass; counters and algorithms must be real integers.
    if expected_type is int and isinstance(value, bool):
        raise MalformedRecord(f"{kind}.{name} must be an integer")
    if not isinstance(value, expected_type):
        raise MalformedRecord(f"{kind}.{name} is missing or has the wrong type")
    return value


def _require_bytes(payload: dict, name: str, kind: str) -> bytes:
    value = _require(payload, name, str, kind)
    try:
        return b64url_decode(value)
    except ValueError as exc:
        raise MalformedRecord(f"{kind}.{name} is not base64url") from exc


def _require_timestamp(payload: dict, name: str, kind: str, optional: bool = False) -> datetime | None:
    value = _require(payload, name, str, kind, optional=optional)
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise MalformedRecord(f"{kind}.{name} is not an ISO-8601 timestamp") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class ChallengeRecord:
    subject_id: str
    challenge: bytes
    ceremony_type: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def to_bytes(self) -> bytes:
        return _dump(
            {
                "subject_id": self.subject_id,
                "challenge": b64url_encode(self.challenge),
                "ceremony_type": self.ceremony_type,
                "created_at": _format_timestamp(self.created_at),
                "expires_at": _format_timestamp(self.expires_at),
            }
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "ChallengeRecord":
        kind = "challenge"
        payload = _load(raw, kind)
        ceremony_type = _require(payload, "ceremony_type", str, kind)
        if ceremony_type not in CEREMONY_TYPES:
            raise MalformedRecord(f"challenge.ceremony_type {ceremony_type!r} is unknown")
        challenge = _require_bytes(payload, "challenge", kind)
        if not challenge:
            raise MalformedRecord("challenge.challenge is empty")
        return cls(
            subject_id=_require(payload, "subject_id", str, kind),
            challenge=challenge,
            ceremony_type=ceremony_type,
            created_at=_require_timestamp(payload, "created_at", kind),
            expires_at=_require_timestamp(payload, "expires_at", kind),
        )


@dataclass
class CredentialRecord:
    credential_id: bytes
    owner_id: str
    public_key: bytes
    algorithm: int
    sign_count: int
    created_at: datetime
    transports: list = field(default_factory=list)
    display_name: str = ""
    last_used_at: datetime | None = None
    aaguid: str = ""

    @property
    def credential_id_b64(self) -> str:
        return b64url_encode(self.credential_id)

    def public_fields(self) -> dict:
        """Fields safe to show the owner when managing devices."""
        return {
            "id": self.credential_id_b64,
            "name": self.display_name,
            "createdAt": _format_timestamp(self.created_at),
            "lastUsedAt": _format_timestamp(self.last_used_at),
            "transports": list(self.transports),
        }

    def to_bytes(self) -> bytes:
        return _dump(
            {
                "credential_id": b64url_encode(self.credential_id),
                "owner_id": self.owner_id,
                "public_key": b64url_encode(self.public_key),
                "algorithm": self.algorithm,
                "sign_count": self.sign_count,
                "transports": list(self.transports),
                "display_name": self.display_name,
                "created_at": _format_timestamp(self.created_at),
                "last_used_at": _format_timestamp(self.last_used_at),
                "aaguid": self.aaguid,
            }
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "CredentialRecord":
        kind = "credential"
        payload = _load(raw, kind)
        sign_count = _require(payload, "sign_count", int, kind)
        if sign_count < 0:
            raise MalformedRecord("credential.sign_count is negative")
        transports = payload.get("transports") or []
        if not isinstance(transports, list) or not all(isinstance(t, str) for t in transports):
            raise MalformedRecord("credential.transports must be a list of strings")
        credential_id = _require_bytes(payload, "credential_id", kind)
        public_key = _require_bytes(payload, "public_key", kind)
        if not credential_id or not public_key:
            raise MalformedRecord("credential id and public key must not be empty")
        return cls(
            credential_id=credential_id,
            owner_id=_require(payload, "owner_id", str, kind),
            public_key=public_key,
            algorithm=_require(payload, "algorithm", int, kind),
            sign_count=sign_count,
            transports=transports,
            display_name=payload.get("display_name") or "",
            created_at=_require_timestamp(payload, "created_at", kind),
            last_used_at=_require_timestamp(payload, "last_used_at", kind, optional=True),
            aaguid=payload.get("aaguid") or "",
        )


@dataclass
class SessionRecord:
    username: str
    login_method: str
    logged_in_at: datetime
    credential_id: str | None = None

    def to_bytes(self) -> bytes:
        return _dump(
            {
                "username": self.username,
                "login_method": self.login_method,
                "logged_in_at": _format_timestamp(self.logged_in_at),
                "credential_id": self.credential_id,
            }
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "SessionRecord":
        kind = "session"
        payload = _load(raw, kind)
        login_method = _require(payload, "login_method", str, kind)
        if login_method not in LOGIN_METHODS:
            raise MalformedRecord(f"session.login_method {login_method!r} is unknown")
        return cls(
            username=_require(payload, "username", str, kind),
            login_method=login_method,
            logged_in_at=_require_timestamp(payload, "logged_in_at", kind),
            credential_id=_require(payload, "credential_id", str, kind, optional=True),
        )


@dataclass(frozen=True)
class VerifiedIdentity:
    subject_id: str
    method: str
    authenticated_at: datetime
    credential_id: bytes | None = None


def decode_id_list(raw: bytes | None) -> list[str]:
    """Decode an owner index value (JSON list of base64url credential ids)."""
    if raw is None:
        return []
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError, UnicodeDecodeError) as exc:
        raise MalformedRecord("credential index is not valid JSON") from exc
    if not isinstance(payload, list) or not all(isinstance(item, str) for item in payload):
        raise MalformedRecord("credential index must be a list of strings")
    return payload


def encode_id_list(ids: list[str]) -> bytes:
    return _dump(ids)
