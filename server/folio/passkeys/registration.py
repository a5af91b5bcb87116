import logging

from fido2 import cbor
from fido2.webauthn import AttestationObject

from folio.passkeys.challenges import ChallengeStore
from folio.passkeys.credentials import CredentialStore
from folio.passkeys.verification import (
    CLIENT_DATA_CREATE,
    CeremonyConfig,
    cose_algorithm,
    parse_client_data,
    response_field,
    verify_client_data,
    verify_rp_id_hash,
    verify_user_presence,
)
from folio.records import CEREMONY_REGISTRATION, CredentialRecord, utcnow
from folio.utils.exceptions import MalformedAttestation
from folio.utils.webauthn import b64url_encode, webauthn_json_bytes_to_bytes

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "My Passkey"
MAX_DISPLAY_NAME_LENGTH = 50
# rpIdHash (32) + flags (1) + signCount (4), then aaguid (16) + credential id length (2)
AUTH_DATA_HEADER_LENGTH = 37
ATTESTED_HEADER_LENGTH = 18


class RegistrationCeremony:
    def __init__(self, config: CeremonyConfig, challenges: ChallengeStore, credentials: CredentialStore):
        self.config = config
        self.challenges = challenges
        self.credentials = credentials

    def begin_registration(self, owner_id: str) -> dict:
        """
        Build PublicKeyCredentialCreationOptions for ``owner_id``.

        Existing credentials are listed in ``excludeCredentials`` so the
        browser refuses to register the same authenticator twice. The only
        side effect is the challenge write.
        """
        user_handle = self.credentials.user_handle(owner_id)
        existing = self.credentials.list_by_owner(owner_id)
        challenge = self.challenges.issue(owner_id, CEREMONY_REGISTRATION)

        exclude_credentials = []
        for record in existing:
            descriptor = {"type": "public-key", "id": record.credential_id_b64}
            if record.transports:
                descriptor["transports"] = list(record.transports)
            exclude_credentials.append(descriptor)

        options = {
            "rp": {"id": self.config.rp_id, "name": self.config.rp_name},
            "user": {
                "id": b64url_encode(user_handle),
                "name": owner_id,
                "displayName": owner_id,
            },
            "challenge": b64url_encode(challenge.challenge),
            "pubKeyCredParams": [
                {"type": "public-key", "alg": alg}
                for alg in self.config.supported_algorithms()
            ],
            "timeout": self.config.timeout_ms,
            "excludeCredentials": exclude_credentials,
            "authenticatorSelection": {
                "residentKey": "preferred",
                "requireResidentKey": False,
                "userVerification": self.config.user_verification,
            },
            "attestation": "none",
        }
        return {"publicKey": options}

    def complete_registration(self, owner_id: str, credential: dict, display_name: str | None = None) -> dict:
        """
        Verify an attestation response and persist the new credential.

        Returns the stored credential's public fields (id, name, timestamps).
        """
        challenge = self.challenges.consume(owner_id, CEREMONY_REGISTRATION)

        if not isinstance(credential, dict):
            raise MalformedAttestation("Credential payload must be an object")

        client_data_raw = response_field(credential, "clientDataJSON", MalformedAttestation)
        attestation_raw = response_field(credential, "attestationObject", MalformedAttestation)

        client_data = parse_client_data(client_data_raw, MalformedAttestation)
        verify_client_data(
            client_data,
            expected_type=CLIENT_DATA_CREATE,
            expected_challenge=challenge.challenge,
            expected_origin=self.config.origin,
        )

        try:
            attestation = AttestationObject(attestation_raw)
        except Exception as exc:
            raise MalformedAttestation(f"attestationObject could not be parsed: {exc}") from exc

        auth_data = attestation.auth_data
        verify_rp_id_hash(auth_data, self.config.rp_id)
        verify_user_presence(auth_data, self.config.user_verification)

        credential_data = auth_data.credential_data
        if credential_data is None:
            raise MalformedAttestation("Authenticator data carries no attested credential")

        credential_id = bytes(credential_data.credential_id)
        if not credential_id:
            raise MalformedAttestation("Attested credential id is empty")

        claimed_id = credential.get("rawId") or credential.get("id")
        if claimed_id is not None:
            try:
                claimed_bytes = webauthn_json_bytes_to_bytes(claimed_id)
            except ValueError as exc:
                raise MalformedAttestation(f"rawId is not valid base64url: {exc}") from exc
            if claimed_bytes != credential_id:
                raise MalformedAttestation("rawId does not match the attested credential id")

        algorithm = cose_algorithm(credential_data.public_key)
        if algorithm is None or algorithm not in self.config.supported_algorithms():
            raise MalformedAttestation(f"Credential algorithm {algorithm} is not accepted")

        public_key = _raw_cose_key(bytes(auth_data), len(credential_id))
        if not public_key:
            raise MalformedAttestation("Attested credential carries no public key")

        record = CredentialRecord(
            credential_id=credential_id,
            owner_id=owner_id,
            public_key=public_key,
            algorithm=algorithm,
            sign_count=auth_data.counter,
            transports=_transports(credential),
            display_name=_display_name(display_name),
            created_at=utcnow(),
            aaguid=bytes(credential_data.aaguid).hex(),
        )
        self.credentials.add(owner_id, record)

        logger.info(
            "Passkey registered for %s (fmt=%s, alg=%s, counter=%s)",
            owner_id,
            attestation.fmt,
            algorithm,
            record.sign_count,
        )
        return record.public_fields()


def _display_name(value) -> str:
    if not isinstance(value, str):
        return DEFAULT_DISPLAY_NAME
    value = value.strip()
    return value[:MAX_DISPLAY_NAME_LENGTH] or DEFAULT_DISPLAY_NAME


def _transports(credential: dict) -> list[str]:
    response = credential.get("response")
    raw = response.get("transports") if isinstance(response, dict) else None
    if raw is None:
        raw = credential.get("transports")
    if not isinstance(raw, list):
        return []
    return [t for t in raw if isinstance(t, str)][:8]


def _raw_cose_key(auth_data: bytes, credential_id_length: int) -> bytes:
    """Slice the COSE key out of authenticator data exactly as the authenticator encoded it."""
    start = AUTH_DATA_HEADER_LENGTH + ATTESTED_HEADER_LENGTH + credential_id_length
    tail = auth_data[start:]
    try:
        _, rest = cbor.decode_from(tail)
    except Exception as exc:
        raise MalformedAttestation(f"COSE key could not be decoded: {exc}") from exc
    return tail[: len(tail) - len(rest)]
