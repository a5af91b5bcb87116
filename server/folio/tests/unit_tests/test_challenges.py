import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import patch

from folio.passkeys import ChallengeStore
from folio.passkeys.challenges import challenge_key
from folio.records import ChallengeRecord, utcnow
from folio.tests.base import PasskeyTestCase
from folio.utils import ChallengeExpiredOrMissing


class ChallengeStoreTest(PasskeyTestCase):
    def setUp(self):
        super().setUp()
        self.challenges = self.services.challenges

    def test_issue_creates_random_32_byte_challenge(self):
        first = self.challenges.issue("admin", "registration")
        second = self.challenges.issue("admin", "authentication")

        self.assertEqual(len(first.challenge), 32)
        self.assertNotEqual(first.challenge, second.challenge)
        self.assertLessEqual((first.expires_at - first.created_at).total_seconds(), 300)

    def test_issue_writes_with_ttl(self):
        with patch.object(self.services.store, "put", wraps=self.services.store.put) as put:
            self.challenges.issue("admin", "registration")

        put.assert_called_once()
        self.assertEqual(put.call_args.kwargs["ttl"], 300)
        self.assertEqual(put.call_args.args[0], "challenge:admin:registration")

    def test_consume_returns_issued_challenge_once(self):
        issued = self.challenges.issue("admin", "authentication")

        consumed = self.challenges.consume("admin", "authentication")

        self.assertEqual(consumed.challenge, issued.challenge)
        with self.assertRaises(ChallengeExpiredOrMissing):
            self.challenges.consume("admin", "authentication")

    def test_reissue_replaces_previous_challenge(self):
        self.challenges.issue("admin", "authentication")
        latest = self.challenges.issue("admin", "authentication")

        self.assertEqual(self.challenges.consume("admin", "authentication").challenge, latest.challenge)

    def test_challenges_are_scoped_by_subject_and_type(self):
        self.challenges.issue("admin", "authentication")

        with self.assertRaises(ChallengeExpiredOrMissing):
            self.challenges.consume("mallory", "authentication")
        with self.assertRaises(ChallengeExpiredOrMissing):
            self.challenges.consume("admin", "registration")

    def test_expired_record_is_treated_as_missing(self):
        past = utcnow() - timedelta(minutes=10)
        record = ChallengeRecord("admin", b"c" * 32, "authentication", past, past + timedelta(minutes=5))
        self.services.store.put(challenge_key("admin", "authentication"), record.to_bytes(), ttl=60)

        with self.assertRaises(ChallengeExpiredOrMissing):
            self.challenges.consume("admin", "authentication")

    def test_unreadable_record_is_treated_as_missing(self):
        self.services.store.put(challenge_key("admin", "authentication"), b"garbage", ttl=60)

        with self.assertRaises(ChallengeExpiredOrMissing):
            self.challenges.consume("admin", "authentication")

    def test_ttl_is_clamped_to_five_minutes(self):
        store = ChallengeStore(self.services.store, ttl_seconds=3600)

        self.assertEqual(store.ttl_seconds, 300)

    def test_unknown_ceremony_type_is_refused(self):
        with self.assertRaises(ValueError):
            self.challenges.issue("admin", "recovery")

    def test_parallel_consumers_receive_the_challenge_once(self):
        issued = self.challenges.issue("admin", "authentication")
        workers = 4
        barrier = threading.Barrier(workers)

        def consume(_):
            barrier.wait()
            try:
                return self.challenges.consume("admin", "authentication")
            except ChallengeExpiredOrMissing:
                return None

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = [r for r in pool.map(consume, range(workers)) if r is not None]

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].challenge, issued.challenge)
