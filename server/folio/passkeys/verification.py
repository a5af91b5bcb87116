"""
Checks shared by the registration and authentication ceremonies.

Every check raises a ``CeremonyRejected`` subclass naming the exact failure;
callers decide how much of that detail to expose.
"""
import hmac
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from fido2 import cbor
from fido2.cose import CoseKey
from fido2.utils import sha256
from fido2.webauthn import AuthenticatorData, CollectedClientData

from folio.utils.exceptions import (
    CeremonyTypeMismatch,
    ChallengeMismatch,
    OriginMismatch,
    RpIdMismatch,
    SignatureInvalid,
    UserPresenceRequired,
)
from folio.utils.webauthn import webauthn_json_bytes_to_bytes

CLIENT_DATA_CREATE = "webauthn.create"
CLIENT_DATA_GET = "webauthn.get"


def parse_client_data(raw: bytes, error_cls) -> CollectedClientData:
    try:
        return CollectedClientData(raw)
    except (ValueError, KeyError, TypeError) as exc:
        raise error_cls(f"clientDataJSON could not be parsed: {exc}") from exc


def parse_authenticator_data(raw: bytes, error_cls) -> AuthenticatorData:
    try:
        return AuthenticatorData(raw)
    except Exception as exc:
        raise error_cls(f"authenticatorData could not be parsed: {exc}") from exc


def verify_client_data(
    client_data: CollectedClientData,
    expected_type: str,
    expected_challenge: bytes,
    expected_origin: str,
) -> None:
    if client_data.type != expected_type:
        raise CeremonyTypeMismatch(
            f"Expected {expected_type}, got {client_data.type!r}"
        )
    if not hmac.compare_digest(client_data.challenge, expected_challenge):
        raise ChallengeMismatch("Signed challenge does not match the issued challenge")
    if client_data.origin != expected_origin:
        raise OriginMismatch(
            f"Origin {client_data.origin!r} is not {expected_origin!r}"
        )


def verify_rp_id_hash(auth_data: AuthenticatorData, rp_id: str) -> None:
    if not hmac.compare_digest(auth_data.rp_id_hash, sha256(rp_id.encode("utf-8"))):
        raise RpIdMismatch(f"Authenticator data is not scoped to {rp_id}")


def verify_user_presence(auth_data: AuthenticatorData, user_verification: str) -> None:
    if not auth_data.is_user_present():
        raise UserPresenceRequired("User presence flag is not set")
    if user_verification == "required" and not auth_data.is_user_verified():
        raise UserPresenceRequired("User verification is required but was not performed")


def cose_algorithm(public_key: CoseKey) -> int | None:
    alg = public_key.get(3)
    if isinstance(alg, int) and not isinstance(alg, bool):
        return alg
    return None


def verify_signature(
    public_key_bytes: bytes,
    authenticator_data: bytes,
    client_data_json: bytes,
    signature: bytes,
) -> None:
    """
    Verify an assertion signature with a stored CBOR-encoded COSE key.

    The signed message is ``authenticatorData || SHA-256(clientDataJSON)``.
    """
    message = authenticator_data + sha256(client_data_json)
    try:
        public_key = CoseKey.parse(cbor.decode(public_key_bytes))
        public_key.verify(message, signature)
    except InvalidSignature as exc:
        raise SignatureInvalid("Assertion signature does not verify") from exc
    except Exception as exc:
        raise SignatureInvalid(f"Stored key cannot verify signatures: {exc}") from exc


@dataclass(frozen=True)
class CeremonyConfig:
    """Relying party parameters shared by both ceremonies."""

    rp_id: str
    rp_name: str
    origin: str
    timeout_ms: int = 60000
    user_verification: str = "preferred"
    algorithms: tuple = (-7, -8, -257)
    accept_zero_counter: bool = False

    def supported_algorithms(self) -> list[int]:
        supported = set(CoseKey.supported_algorithms())
        return [alg for alg in self.algorithms if alg in supported]


def response_field(credential: dict, name: str, error_cls) -> bytes:
    """
    Pull a binary field out of a PublicKeyCredential JSON object.

    Browsers nest the authenticator output under ``response``; older clients
    post it flat next to ``id``. Both shapes are accepted.
    """
    container = credential.get("response")
    if not isinstance(container, dict):
        container = credential
    value = container.get(name)
    if value is None:
        raise error_cls(f"Missing {name}")
    try:
        return webauthn_json_bytes_to_bytes(value)
    except ValueError as exc:
        raise error_cls(f"{name} is not valid base64url: {exc}") from exc
