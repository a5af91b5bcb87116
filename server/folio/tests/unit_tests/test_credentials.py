import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

from folio.passkeys.credentials import credential_key, owner_index_key
from folio.records import CredentialRecord, encode_id_list, utcnow
from folio.tests.base import PasskeyTestCase
from folio.utils import CredentialNotFound, DuplicateCredential, LockTimeout, ReplayDetected, StoreUnavailable


def _record(credential_id, owner_id="admin", sign_count=1):
    return CredentialRecord(
        credential_id=credential_id,
        owner_id=owner_id,
        public_key=b"\xa5\x01\x02",
        algorithm=-7,
        sign_count=sign_count,
        created_at=utcnow(),
        display_name="Key",
    )


class CredentialStoreTest(PasskeyTestCase):
    def setUp(self):
        super().setUp()
        self.credentials = self.services.credentials

    def test_list_by_owner_in_creation_order(self):
        self.credentials.add("admin", _record(b"first"))
        self.credentials.add("admin", _record(b"second"))
        self.credentials.add("other", _record(b"third", owner_id="other"))

        ids = [r.credential_id for r in self.credentials.list_by_owner("admin")]

        self.assertEqual(ids, [b"first", b"second"])

    def test_unknown_owner_has_no_credentials(self):
        self.assertEqual(self.credentials.list_by_owner("nobody"), [])
        self.assertFalse(self.credentials.has_credentials("nobody"))

    def test_duplicate_credential_id_rejected_across_owners(self):
        self.credentials.add("admin", _record(b"shared"))

        with self.assertRaises(DuplicateCredential):
            self.credentials.add("other", _record(b"shared", owner_id="other"))

        self.assertEqual(self.credentials.list_by_owner("other"), [])
        self.assertEqual(self.credentials.find_by_credential_id(b"shared").owner_id, "admin")

    def test_failed_index_update_discards_the_record(self):
        with patch.object(self.services.store, "lock", side_effect=LockTimeout("busy")):
            with self.assertRaises(LockTimeout):
                self.credentials.add("admin", _record(b"key"))

        self.assertIsNone(self.services.store.get(credential_key(b"key")))
        self.assertEqual(self.credentials.list_by_owner("admin"), [])

        self.credentials.add("admin", _record(b"key"))

        self.assertEqual(len(self.credentials.list_by_owner("admin")), 1)

    def test_index_write_outage_discards_the_record(self):
        real_put = self.services.store.put

        def put(key, value, ttl=None):
            if key == owner_index_key("admin"):
                raise StoreUnavailable("write failed")
            return real_put(key, value, ttl=ttl)

        with patch.object(self.services.store, "put", side_effect=put):
            with self.assertRaises(StoreUnavailable):
                self.credentials.add("admin", _record(b"key"))

        with self.assertRaises(CredentialNotFound):
            self.credentials.find_by_credential_id(b"key")

    def test_parallel_inserts_of_one_id_keep_a_single_owner(self):
        owners = ["admin", "editor", "author", "guest"]
        barrier = threading.Barrier(len(owners))

        def insert(owner):
            barrier.wait()
            try:
                self.credentials.add(owner, _record(b"shared", owner_id=owner))
            except DuplicateCredential:
                return None
            return owner

        with ThreadPoolExecutor(max_workers=len(owners)) as pool:
            winners = [o for o in pool.map(insert, owners) if o is not None]

        self.assertEqual(len(winners), 1)
        self.assertEqual(self.credentials.find_by_credential_id(b"shared").owner_id, winners[0])
        for owner in owners:
            expected = 1 if owner == winners[0] else 0
            self.assertEqual(len(self.credentials.list_by_owner(owner)), expected)

    def test_find_unknown_credential(self):
        with self.assertRaises(CredentialNotFound):
            self.credentials.find_by_credential_id(b"missing")

    def test_counter_must_strictly_increase(self):
        self.credentials.add("admin", _record(b"key", sign_count=1))

        updated = self.credentials.update_counter_and_usage(b"key", 5)
        self.assertEqual(updated.sign_count, 5)
        self.assertIsNotNone(updated.last_used_at)

        with self.assertRaises(ReplayDetected):
            self.credentials.update_counter_and_usage(b"key", 5)
        with self.assertRaises(ReplayDetected):
            self.credentials.update_counter_and_usage(b"key", 3)

        self.assertEqual(self.credentials.find_by_credential_id(b"key").sign_count, 5)

    def test_zero_counter_rejected_by_default(self):
        self.credentials.add("admin", _record(b"key", sign_count=0))

        with self.assertRaises(ReplayDetected):
            self.credentials.update_counter_and_usage(b"key", 0)

    def test_zero_counter_accepted_when_enabled(self):
        self.credentials.add("admin", _record(b"key", sign_count=0))

        updated = self.credentials.update_counter_and_usage(b"key", 0, accept_zero=True)

        self.assertEqual(updated.sign_count, 0)
        self.assertIsNotNone(updated.last_used_at)

    def test_accept_zero_does_not_allow_regression(self):
        self.credentials.add("admin", _record(b"key", sign_count=7))

        with self.assertRaises(ReplayDetected):
            self.credentials.update_counter_and_usage(b"key", 0, accept_zero=True)

    def test_remove_requires_ownership(self):
        self.credentials.add("admin", _record(b"key"))

        with self.assertRaises(CredentialNotFound):
            self.credentials.remove(b"key", "other")
        self.assertEqual(len(self.credentials.list_by_owner("admin")), 1)

        self.credentials.remove(b"key", "admin")

        self.assertEqual(self.credentials.list_by_owner("admin"), [])
        self.assertIsNone(self.services.store.get(credential_key(b"key")))

    def test_remove_missing_credential(self):
        with self.assertRaises(CredentialNotFound):
            self.credentials.remove(b"missing", "admin")

    def test_rename(self):
        self.credentials.add("admin", _record(b"key"))

        self.credentials.rename(b"key", "admin", "Phone")

        self.assertEqual(self.credentials.find_by_credential_id(b"key").display_name, "Phone")
        with self.assertRaises(CredentialNotFound):
            self.credentials.rename(b"key", "other", "Stolen")

    def test_dangling_index_entry_is_skipped(self):
        self.credentials.add("admin", _record(b"key"))
        self.services.store.delete(credential_key(b"key"))

        self.assertEqual(self.credentials.list_by_owner("admin"), [])

    def test_foreign_record_in_index_is_an_integrity_error(self):
        self.credentials.add("other", _record(b"key", owner_id="other"))
        self.services.store.put(
            owner_index_key("admin"),
            encode_id_list([_record(b"key").credential_id_b64]),
        )

        with self.assertRaises(DuplicateCredential):
            self.credentials.list_by_owner("admin")

    def test_user_handle_is_stable_and_opaque(self):
        handle = self.credentials.user_handle("admin")

        self.assertEqual(len(handle), 32)
        self.assertEqual(self.credentials.user_handle("admin"), handle)
        self.assertNotEqual(self.credentials.user_handle("other"), handle)
        self.assertNotIn(b"admin", handle)
