import logging
import secrets
from datetime import timedelta

from folio.records import CEREMONY_TYPES, ChallengeRecord, utcnow
from folio.store import KeyValueStore
from folio.utils.exceptions import ChallengeExpiredOrMissing, MalformedRecord

logger = logging.getLogger(__name__)

CHALLENGE_BYTES = 32
MAX_CHALLENGE_TTL_SECONDS = 300


def challenge_key(subject_id: str, ceremony_type: str) -> str:
    return f"challenge:{subject_id}:{ceremony_type}"


class ChallengeStore:
    """
    Issues single-use challenges, one live challenge per (subject, ceremony).

    Issuing again for the same pair replaces the previous challenge.
    Consuming is a get-and-delete under a lock, so two concurrent completions
    can never both obtain the same challenge.
    """

    def __init__(self, store: KeyValueStore, ttl_seconds: int = MAX_CHALLENGE_TTL_SECONDS):
        self.store = store
        self.ttl_seconds = max(1, min(int(ttl_seconds), MAX_CHALLENGE_TTL_SECONDS))

    def issue(self, subject_id: str, ceremony_type: str) -> ChallengeRecord:
        if ceremony_type not in CEREMONY_TYPES:
            raise ValueError(f"Unknown ceremony type: {ceremony_type}")

        now = utcnow()
        record = ChallengeRecord(
            subject_id=subject_id,
            challenge=secrets.token_bytes(CHALLENGE_BYTES),
            ceremony_type=ceremony_type,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        self.store.put(
            challenge_key(subject_id, ceremony_type),
            record.to_bytes(),
            ttl=self.ttl_seconds,
        )
        logger.debug("Issued %s challenge for %s", ceremony_type, subject_id)
        return record

    def consume(self, subject_id: str, ceremony_type: str) -> ChallengeRecord:
        key = challenge_key(subject_id, ceremony_type)
        with self.store.lock(key):
            raw = self.store.get(key)
            if raw is None:
                raise ChallengeExpiredOrMissing(
                    f"No {ceremony_type} challenge pending for {subject_id}"
                )
            self.store.delete(key)

        try:
            record = ChallengeRecord.from_bytes(raw)
        except MalformedRecord as exc:
            logger.warning("Discarded unreadable challenge for %s: %s", subject_id, exc)
            raise ChallengeExpiredOrMissing("Stored challenge is unreadable") from exc

        if (
            record.subject_id != subject_id
            or record.ceremony_type != ceremony_type
            or record.is_expired()
        ):
            raise ChallengeExpiredOrMissing(
                f"No {ceremony_type} challenge pending for {subject_id}"
            )
        return record
