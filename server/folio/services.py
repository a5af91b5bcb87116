from dataclasses import dataclass

from django.conf import settings

from folio.passkeys import (
    AuthenticationCeremony,
    CeremonyConfig,
    ChallengeStore,
    CredentialStore,
    RegistrationCeremony,
)
from folio.sessions import SessionIssuer
from folio.store import KeyValueStore


@dataclass
class PasskeyServices:
    config: CeremonyConfig
    store: KeyValueStore
    challenges: ChallengeStore
    credentials: CredentialStore
    registration: RegistrationCeremony
    authentication: AuthenticationCeremony
    sessions: SessionIssuer


def ceremony_config_from_settings() -> CeremonyConfig:
    return CeremonyConfig(
        rp_id=settings.WEBAUTHN_RP_ID,
        rp_name=settings.WEBAUTHN_RP_NAME,
        origin=settings.WEBAUTHN_ORIGIN,
        timeout_ms=settings.WEBAUTHN_TIMEOUT_MS,
        user_verification=settings.WEBAUTHN_USER_VERIFICATION,
        algorithms=tuple(settings.WEBAUTHN_ALGORITHMS),
        accept_zero_counter=settings.WEBAUTHN_ACCEPT_ZERO_COUNTER,
    )


def build_services(store: KeyValueStore | None = None) -> PasskeyServices:
    """
    Wire the passkey core from Django settings.

    Every component receives the same explicit store handle; pass ``store`` to
    run the core against a different backend (tests use this).
    """
    store = store or KeyValueStore.from_settings()
    config = ceremony_config_from_settings()
    challenges = ChallengeStore(store, ttl_seconds=settings.WEBAUTHN_CHALLENGE_TTL_SECONDS)
    credentials = CredentialStore(store)
    return PasskeyServices(
        config=config,
        store=store,
        challenges=challenges,
        credentials=credentials,
        registration=RegistrationCeremony(config, challenges, credentials),
        authentication=AuthenticationCeremony(config, challenges, credentials),
        sessions=SessionIssuer(store, ttl_seconds=settings.ADMIN_SESSION_TTL_SECONDS),
    )
