from .exceptions import (
    exception_handler,
    format_error,
    PasskeyError,
    CeremonyRejected,
    ChallengeExpiredOrMissing,
    MalformedAttestation,
    MalformedAssertion,
    OriginMismatch,
    RpIdMismatch,
    ChallengeMismatch,
    CeremonyTypeMismatch,
    UserPresenceRequired,
    DuplicateCredential,
    UnknownCredential,
    SignatureInvalid,
    ReplayDetected,
    NoCredentialsRegistered,
    CredentialNotFound,
    MalformedRecord,
    StoreUnavailable,
    LockTimeout,
)

__all__ = [
    "exception_handler",
    "format_error",
    "PasskeyError",
    "CeremonyRejected",
    "ChallengeExpiredOrMissing",
    "MalformedAttestation",
    "MalformedAssertion",
    "OriginMismatch",
    "RpIdMismatch",
    "ChallengeMismatch",
    "CeremonyTypeMismatch",
    "UserPresenceRequired",
    "DuplicateCredential",
    "UnknownCredential",
    "SignatureInvalid",
    "ReplayDetected",
    "NoCredentialsRegistered",
    "CredentialNotFound",
    "MalformedRecord",
    "StoreUnavailable",
    "LockTimeout",
]
