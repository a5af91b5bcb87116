from .authentication import AuthenticationCeremony
from .challenges import ChallengeStore
from .credentials import CredentialStore
from .registration import RegistrationCeremony
from .verification import CeremonyConfig

__all__ = [
    "AuthenticationCeremony",
    "ChallengeStore",
    "CredentialStore",
    "RegistrationCeremony",
    "CeremonyConfig",
]
