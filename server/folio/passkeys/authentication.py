import hmac
import logging

from folio.passkeys.challenges import ChallengeStore
from folio.passkeys.credentials import CredentialStore
from folio.passkeys.verification import (
    CLIENT_DATA_GET,
    CeremonyConfig,
    parse_authenticator_data,
    parse_client_data,
    response_field,
    verify_client_data,
    verify_rp_id_hash,
    verify_signature,
    verify_user_presence,
)
from folio.records import (
    CEREMONY_AUTHENTICATION,
    LOGIN_METHOD_PASSKEY,
    VerifiedIdentity,
    utcnow,
)
from folio.utils.exceptions import (
    CeremonyRejected,
    CredentialNotFound,
    MalformedAssertion,
    MalformedRecord,
    NoCredentialsRegistered,
    UnknownCredential,
)
from folio.utils.webauthn import b64url_encode, webauthn_json_bytes_to_bytes

logger = logging.getLogger(__name__)


class AuthenticationCeremony:
    def __init__(self, config: CeremonyConfig, challenges: ChallengeStore, credentials: CredentialStore):
        self.config = config
        self.challenges = challenges
        self.credentials = credentials

    def begin_authentication(self, subject_id: str) -> dict:
        """
        Build PublicKeyCredentialRequestOptions for ``subject_id``.

        Raises ``NoCredentialsRegistered`` before any challenge is written
        when the subject has no passkey, so callers can offer the password
        login instead.
        """
        records = self.credentials.list_by_owner(subject_id)
        if not records:
            raise NoCredentialsRegistered(f"{subject_id} has no registered passkeys")

        challenge = self.challenges.issue(subject_id, CEREMONY_AUTHENTICATION)

        allow_credentials = []
        for record in records:
            descriptor = {"type": "public-key", "id": record.credential_id_b64}
            if record.transports:
                descriptor["transports"] = list(record.transports)
            allow_credentials.append(descriptor)

        options = {
            "challenge": b64url_encode(challenge.challenge),
            "rpId": self.config.rp_id,
            "allowCredentials": allow_credentials,
            "userVerification": self.config.user_verification,
            "timeout": self.config.timeout_ms,
        }
        return {"publicKey": options}

    def complete_authentication(self, subject_id: str, credential: dict) -> VerifiedIdentity:
        try:
            identity = self._verify(subject_id, credential)
        except CeremonyRejected as exc:
            logger.warning("Passkey login rejected for %s: %s (%s)", subject_id, exc.code, exc)
            raise
        logger.info(
            "Passkey login verified for %s with credential %s",
            subject_id,
            b64url_encode(identity.credential_id)[:12],
        )
        return identity

    def _verify(self, subject_id: str, credential: dict) -> VerifiedIdentity:
        challenge = self.challenges.consume(subject_id, CEREMONY_AUTHENTICATION)

        if not isinstance(credential, dict):
            raise MalformedAssertion("Credential payload must be an object")

        raw_id = credential.get("rawId") or credential.get("id")
        if raw_id is None:
            raise MalformedAssertion("Missing credential id")
        try:
            credential_id = webauthn_json_bytes_to_bytes(raw_id)
        except ValueError as exc:
            raise MalformedAssertion(f"Credential id is not valid base64url: {exc}") from exc

        try:
            record = self.credentials.find_by_credential_id(credential_id)
        except CredentialNotFound as exc:
            raise UnknownCredential("Credential is not registered") from exc
        except MalformedRecord as exc:
            raise UnknownCredential("Stored credential is unreadable") from exc
        if record.owner_id != subject_id:
            raise UnknownCredential("Credential belongs to a different subject")

        client_data_raw = response_field(credential, "clientDataJSON", MalformedAssertion)
        auth_data_raw = response_field(credential, "authenticatorData", MalformedAssertion)
        signature = response_field(credential, "signature", MalformedAssertion)

        client_data = parse_client_data(client_data_raw, MalformedAssertion)
        verify_client_data(
            client_data,
            expected_type=CLIENT_DATA_GET,
            expected_challenge=challenge.challenge,
            expected_origin=self.config.origin,
        )

        auth_data = parse_authenticator_data(auth_data_raw, MalformedAssertion)
        verify_rp_id_hash(auth_data, self.config.rp_id)
        verify_user_presence(auth_data, self.config.user_verification)

        self._check_user_handle(subject_id, credential)

        verify_signature(record.public_key, auth_data_raw, client_data_raw, signature)

        try:
            self.credentials.update_counter_and_usage(
                record.credential_id,
                auth_data.counter,
                accept_zero=self.config.accept_zero_counter,
            )
        except (CredentialNotFound, MalformedRecord) as exc:
            # Revoked or damaged between lookup and counter update.
            raise UnknownCredential("Credential is no longer usable") from exc

        return VerifiedIdentity(
            subject_id=subject_id,
            method=LOGIN_METHOD_PASSKEY,
            authenticated_at=utcnow(),
            credential_id=record.credential_id,
        )

    def _check_user_handle(self, subject_id: str, credential: dict) -> None:
        response = credential.get("response")
        container = response if isinstance(response, dict) else credential
        user_handle = container.get("userHandle")
        if not user_handle:
            return
        try:
            claimed = webauthn_json_bytes_to_bytes(user_handle)
        except ValueError as exc:
            raise MalformedAssertion(f"userHandle is not valid base64url: {exc}") from exc
        if not hmac.compare_digest(claimed, self.credentials.user_handle(subject_id)):
            raise UnknownCredential("userHandle does not belong to the subject")
