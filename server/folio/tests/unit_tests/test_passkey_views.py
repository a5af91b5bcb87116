from unittest.mock import patch

from rest_framework.test import APIClient

from folio.passkeys import CredentialStore
from folio.passkeys.credentials import credential_key
from folio.tests.base import ADMIN, ADMIN_PASSWORD, PasskeyTestCase
from folio.tests.softauth import SoftAuthenticator
from folio.utils import StoreUnavailable


class AuthenticatedPasskeyTestCase(PasskeyTestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.post(
            "/api/auth/login/",
            {"username": ADMIN, "password": ADMIN_PASSWORD},
            format="json",
        )


class PasskeyRegistrationViewsTest(AuthenticatedPasskeyTestCase):
    def test_begin_requires_session(self):
        response = APIClient().post("/api/auth/passkey/register/begin/")

        self.assertEqual(response.status_code, 401)

    def test_begin_returns_creation_options(self):
        response = self.client.post("/api/auth/passkey/register/begin/")

        self.assertEqual(response.status_code, 200)
        options = response.data["publicKey"]
        self.assertEqual(options["rp"]["id"], "localhost")
        self.assertEqual(options["user"]["name"], ADMIN)
        self.assertIn("challenge", options)

    def test_register_complete(self):
        options = self.client.post("/api/auth/passkey/register/begin/").data
        authenticator = SoftAuthenticator()

        response = self.client.post(
            "/api/auth/passkey/register/complete/",
            {"credential": authenticator.create(options), "name": "Laptop"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["passkey"]["id"], authenticator.credential_id_b64)
        self.assertEqual(response.data["passkey"]["name"], "Laptop")

    def test_register_complete_without_challenge(self):
        response = self.client.post(
            "/api/auth/passkey/register/complete/",
            {"credential": {"id": "abc"}},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"]["code"], "REGISTRATION_FAILED")
        self.assertEqual(response.data["error"]["details"]["reason"], "challenge_expired_or_missing")

    def test_register_complete_missing_credential(self):
        response = self.client.post("/api/auth/passkey/register/complete/", {}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"]["code"], "VALIDATION_ERROR")

    def test_register_duplicate_is_conflict(self):
        authenticator = SoftAuthenticator()
        options = self.client.post("/api/auth/passkey/register/begin/").data
        self.client.post(
            "/api/auth/passkey/register/complete/",
            {"credential": authenticator.create(options)},
            format="json",
        )
        options = self.services.registration.begin_registration(ADMIN)

        response = self.client.post(
            "/api/auth/passkey/register/complete/",
            {"credential": authenticator.create(options)},
            format="json",
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["error"]["code"], "DUPLICATE_CREDENTIAL")


class PasskeyLoginViewsTest(PasskeyTestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()

    def test_begin_without_passkeys(self):
        response = self.client.post("/api/auth/passkey/login/begin/", {}, format="json")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["error"]["code"], "NO_CREDENTIALS")

    def test_login_flow(self):
        authenticator, _ = self.register()
        options = self.client.post("/api/auth/passkey/login/begin/", {}, format="json").data

        response = self.client.post(
            "/api/auth/passkey/login/complete/",
            {"credential": authenticator.get(options)},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["success"])
        self.assertEqual(response.data["redirect"], "/admin/dashboard.html")
        session = self.services.sessions.resolve(response.cookies["admin_session"].value)
        self.assertEqual(session.login_method, "passkey")
        self.assertEqual(session.credential_id, authenticator.credential_id_b64)

    def test_failures_share_one_generic_error(self):
        authenticator, _ = self.register()

        responses = []
        options = self.client.post("/api/auth/passkey/login/begin/", {}, format="json").data
        responses.append(
            self.client.post(
                "/api/auth/passkey/login/complete/",
                {"credential": authenticator.get(options, origin="https://evil.example")},
                format="json",
            )
        )
        options = self.client.post("/api/auth/passkey/login/begin/", {}, format="json").data
        responses.append(
            self.client.post(
                "/api/auth/passkey/login/complete/",
                {"credential": SoftAuthenticator().get(options)},
                format="json",
            )
        )
        responses.append(
            self.client.post(
                "/api/auth/passkey/login/complete/",
                {"credential": authenticator.get(options)},
                format="json",
            )
        )

        for response in responses:
            self.assertEqual(response.status_code, 400)
            self.assertEqual(
                response.data,
                {
                    "error": {
                        "code": "PASSKEY_AUTH_FAILED",
                        "message": "Passkey authentication failed",
                        "details": {},
                    }
                },
            )
            self.assertNotIn("admin_session", response.cookies)

    def test_damaged_or_revoked_credential_gets_the_generic_error(self):
        authenticator, _ = self.register()
        find = CredentialStore.find_by_credential_id

        def find_then_revoke(store, credential_id):
            record = find(store, credential_id)
            store.remove(credential_id, ADMIN)
            return record

        options = self.client.post("/api/auth/passkey/login/begin/", {}, format="json").data
        with patch.object(CredentialStore, "find_by_credential_id", autospec=True, side_effect=find_then_revoke):
            revoked = self.client.post(
                "/api/auth/passkey/login/complete/",
                {"credential": authenticator.get(options)},
                format="json",
            )

        damaged_owner, _ = self.register()
        options = self.client.post("/api/auth/passkey/login/begin/", {}, format="json").data
        self.services.store.put(credential_key(damaged_owner.credential_id), b"not json")
        damaged = self.client.post(
            "/api/auth/passkey/login/complete/",
            {"credential": damaged_owner.get(options)},
            format="json",
        )

        for response in (revoked, damaged):
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.data["error"]["code"], "PASSKEY_AUTH_FAILED")
            self.assertNotIn("admin_session", response.cookies)

    def test_store_outage_is_503(self):
        with patch("folio.store.KeyValueStore.get", side_effect=StoreUnavailable("down")):
            response = self.client.post("/api/auth/passkey/login/begin/", {}, format="json")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data["error"]["code"], "STORE_UNAVAILABLE")

    def test_check_existing(self):
        response = self.client.get("/api/auth/passkey/check-existing/")
        self.assertEqual(response.data, {"hasPasskeys": False})

        self.register()

        response = self.client.get("/api/auth/passkey/check-existing/", {"username": ADMIN})
        self.assertEqual(response.data, {"hasPasskeys": True})


class PasskeyManagementViewsTest(AuthenticatedPasskeyTestCase):
    def setUp(self):
        super().setUp()
        self.authenticator, _ = self.register(name="Laptop")

    def test_list(self):
        response = self.client.get("/api/auth/passkey/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data["passkeys"]), 1)
        passkey = response.data["passkeys"][0]
        self.assertEqual(passkey["id"], self.authenticator.credential_id_b64)
        self.assertEqual(passkey["name"], "Laptop")
        self.assertNotIn("public_key", passkey)
        self.assertNotIn("sign_count", passkey)

    def test_list_requires_session(self):
        response = APIClient().get("/api/auth/passkey/")

        self.assertEqual(response.status_code, 401)

    def test_status(self):
        response = self.client.get("/api/auth/passkey/status/")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["hasPasskey"])
        self.assertEqual(response.data["count"], 1)
        self.assertIsNotNone(response.data["registeredAt"])

    def test_rename(self):
        url = f"/api/auth/passkey/{self.authenticator.credential_id_b64}/"

        response = self.client.patch(url, {"name": "Work laptop"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["name"], "Work laptop")

    def test_rename_rejects_long_names(self):
        url = f"/api/auth/passkey/{self.authenticator.credential_id_b64}/"

        response = self.client.patch(url, {"name": "x" * 51}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_rename_rejects_blank_names(self):
        url = f"/api/auth/passkey/{self.authenticator.credential_id_b64}/"

        response = self.client.patch(url, {"name": "   "}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_delete(self):
        url = f"/api/auth/passkey/{self.authenticator.credential_id_b64}/"

        response = self.client.delete(url)

        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.services.credentials.list_by_owner(ADMIN), [])

    def test_delete_unknown(self):
        response = self.client.delete(f"/api/auth/passkey/{SoftAuthenticator().credential_id_b64}/")

        self.assertEqual(response.status_code, 404)

    def test_delete_passkey_of_another_owner(self):
        editor, _ = self.register(owner="editor")

        response = self.client.delete(f"/api/auth/passkey/{editor.credential_id_b64}/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(len(self.services.credentials.list_by_owner("editor")), 1)
