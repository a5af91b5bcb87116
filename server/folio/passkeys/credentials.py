import logging
import secrets

from folio.records import CredentialRecord, decode_id_list, encode_id_list, utcnow
from folio.store import KeyValueStore
from folio.utils.exceptions import (
    CredentialNotFound,
    DuplicateCredential,
    ReplayDetected,
    StoreUnavailable,
)
from folio.utils.webauthn import b64url_encode

logger = logging.getLogger(__name__)

USER_HANDLE_BYTES = 32


def credential_key(credential_id: bytes) -> str:
    return f"credential:{b64url_encode(credential_id)}"


def owner_index_key(owner_id: str) -> str:
    return f"credentials-by-owner:{owner_id}"


def user_handle_key(owner_id: str) -> str:
    return f"user-handle:{owner_id}"


class CredentialStore:
    """
    Persistent registry of passkeys.

    Each credential lives at ``credential:{id}`` without expiry and is listed in
    its owner's index ``credentials-by-owner:{owner}``. Credential ids are
    globally unique; signature counters only ever move forward.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _read(self, credential_id: bytes) -> CredentialRecord | None:
        raw = self.store.get(credential_key(credential_id))
        if raw is None:
            return None
        return CredentialRecord.from_bytes(raw)

    def _write(self, record: CredentialRecord) -> None:
        self.store.put(credential_key(record.credential_id), record.to_bytes(), ttl=None)

    def _index_ids(self, owner_id: str) -> list[str]:
        return decode_id_list(self.store.get(owner_index_key(owner_id)))

    def list_by_owner(self, owner_id: str) -> list[CredentialRecord]:
        records = []
        for credential_id_b64 in self._index_ids(owner_id):
            raw = self.store.get(f"credential:{credential_id_b64}")
            if raw is None:
                logger.warning(
                    "Owner index for %s references missing credential %s",
                    owner_id,
                    credential_id_b64[:12],
                )
                continue
            record = CredentialRecord.from_bytes(raw)
            if record.owner_id != owner_id:
                logger.error(
                    "Credential %s indexed under %s belongs to %s",
                    credential_id_b64[:12],
                    owner_id,
                    record.owner_id,
                )
                raise DuplicateCredential(
                    f"Credential {credential_id_b64} is indexed under two owners"
                )
            records.append(record)
        return records

    def has_credentials(self, owner_id: str) -> bool:
        return bool(self.list_by_owner(owner_id))

    def find_by_credential_id(self, credential_id: bytes) -> CredentialRecord:
        record = self._read(credential_id)
        if record is None:
            raise CredentialNotFound(f"Credential {b64url_encode(credential_id)} not found")
        return record

    def add(self, owner_id: str, record: CredentialRecord) -> CredentialRecord:
        if record.owner_id != owner_id:
            raise ValueError("Credential owner does not match the registering owner")

        inserted = self.store.add(credential_key(record.credential_id), record.to_bytes(), ttl=None)
        if not inserted:
            raise DuplicateCredential(
                f"Credential {record.credential_id_b64} is already registered"
            )

        index_key = owner_index_key(owner_id)
        try:
            with self.store.lock(index_key):
                ids = self._index_ids(owner_id)
                if record.credential_id_b64 not in ids:
                    ids.append(record.credential_id_b64)
                self.store.put(index_key, encode_id_list(ids), ttl=None)
        except StoreUnavailable:
            # An unindexed record can neither be listed nor revoked by its owner.
            self._discard_unindexed(record)
            raise

        logger.info("Registered credential %s for %s", record.credential_id_b64[:12], owner_id)
        return record

    def _discard_unindexed(self, record: CredentialRecord) -> None:
        logger.warning(
            "Index update failed for %s, discarding credential %s",
            record.owner_id,
            record.credential_id_b64[:12],
        )
        try:
            self.store.delete(credential_key(record.credential_id))
        except StoreUnavailable:
            logger.error("Credential %s left unindexed", record.credential_id_b64[:12])

    def update_counter_and_usage(
        self,
        credential_id: bytes,
        new_sign_count: int,
        accept_zero: bool = False,
    ) -> CredentialRecord:
        """
        Advance the stored signature counter and stamp ``last_used_at``.

        Raises ``ReplayDetected`` unless ``new_sign_count`` is strictly greater
        than the stored value. With ``accept_zero`` an authenticator that
        reports 0 while the stored value is 0 is accepted without touching the
        counter.
        """
        key = credential_key(credential_id)
        with self.store.lock(key):
            record = self._read(credential_id)
            if record is None:
                raise CredentialNotFound(f"Credential {b64url_encode(credential_id)} not found")

            if accept_zero and new_sign_count == 0 and record.sign_count == 0:
                record.last_used_at = utcnow()
                self._write(record)
                return record

            if new_sign_count <= record.sign_count:
                raise ReplayDetected(
                    f"Counter {new_sign_count} did not advance past {record.sign_count}"
                )

            record.sign_count = new_sign_count
            record.last_used_at = utcnow()
            self._write(record)
            return record

    def _owned(self, credential_id: bytes, owner_id: str) -> CredentialRecord:
        record = self._read(credential_id)
        if record is None or record.owner_id != owner_id:
            raise CredentialNotFound(f"Credential {b64url_encode(credential_id)} not found")
        return record

    def remove(self, credential_id: bytes, owner_id: str) -> None:
        key = credential_key(credential_id)
        with self.store.lock(key):
            record = self._owned(credential_id, owner_id)
            self.store.delete(key)

        index_key = owner_index_key(owner_id)
        with self.store.lock(index_key):
            ids = [i for i in self._index_ids(owner_id) if i != record.credential_id_b64]
            self.store.put(index_key, encode_id_list(ids), ttl=None)

        logger.info("Removed credential %s for %s", record.credential_id_b64[:12], owner_id)

    def rename(self, credential_id: bytes, owner_id: str, display_name: str) -> CredentialRecord:
        with self.store.lock(credential_key(credential_id)):
            record = self._owned(credential_id, owner_id)
            record.display_name = display_name
            self._write(record)
        return record

    def user_handle(self, owner_id: str) -> bytes:
        """Return the owner's opaque WebAuthn user handle, creating it once."""
        key = user_handle_key(owner_id)
        handle = self.store.get(key)
        if handle is not None:
            return handle
        candidate = secrets.token_bytes(USER_HANDLE_BYTES)
        if self.store.add(key, candidate, ttl=None):
            return candidate
        # Lost the race to another request; use the stored value.
        handle = self.store.get(key)
        if handle is None:
            raise StoreUnavailable(f"User handle for {owner_id} vanished")
        return handle
