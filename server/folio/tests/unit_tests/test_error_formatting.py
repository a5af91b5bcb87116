from django.test import SimpleTestCase
from rest_framework.test import APIClient

from folio.utils import (
    CeremonyRejected,
    ChallengeExpiredOrMissing,
    LockTimeout,
    NoCredentialsRegistered,
    PasskeyError,
    ReplayDetected,
    StoreUnavailable,
    exception_handler,
    format_error,
)


class FormatErrorTest(SimpleTestCase):
    def test_envelope(self):
        self.assertEqual(
            format_error("replay_detected", "Replay detected"),
            {"error": {"code": "REPLAY_DETECTED", "message": "Replay detected", "details": {}}},
        )

    def test_details_are_kept(self):
        payload = format_error("validation_error", "Invalid request", {"name": ["Too long"]})

        self.assertEqual(payload["error"]["details"], {"name": ["Too long"]})


class ExceptionHandlerTest(SimpleTestCase):
    def test_store_outage_renders_503(self):
        response = exception_handler(StoreUnavailable("redis down"), {})

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data["error"]["code"], "STORE_UNAVAILABLE")
        self.assertNotIn("redis", response.data["error"]["message"])

    def test_lock_timeout_renders_503(self):
        response = exception_handler(LockTimeout("lock:credential:abc"), {})

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data["error"]["code"], "LOCK_TIMEOUT")

    def test_unhandled_exceptions_fall_through(self):
        self.assertIsNone(exception_handler(RuntimeError("boom"), {}))

    def test_unauthenticated_request_format(self):
        response = APIClient().get("/api/auth/me/")

        self.assertEqual(response.status_code, 401)
        self.assertIn("code", response.data["error"])
        self.assertIn("message", response.data["error"])
        self.assertIn("details", response.data["error"])


class ErrorHierarchyTest(SimpleTestCase):
    def test_ceremony_failures_share_a_base(self):
        self.assertTrue(issubclass(ReplayDetected, CeremonyRejected))
        self.assertTrue(issubclass(ChallengeExpiredOrMissing, CeremonyRejected))
        self.assertFalse(issubclass(NoCredentialsRegistered, CeremonyRejected))
        self.assertFalse(issubclass(StoreUnavailable, CeremonyRejected))
        self.assertTrue(issubclass(StoreUnavailable, PasskeyError))
