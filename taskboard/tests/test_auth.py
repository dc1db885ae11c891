import unittest
from unittest.mock import MagicMock

from taskboard.auth import AuthenticationDenied, authenticate, extract_bearer_token
from taskboard.db import InMemoryDbClient
from taskboard.dependencies import Services
from taskboard.errors import CredentialRejected, IdentityProviderError
from taskboard.identity import Identity, InMemoryIdentityProvider
from taskboard.storage import InMemoryStorageClient
from taskboard.tests.support import PASSWORD, ApiHarness


class ExtractBearerTokenTests(unittest.TestCase):
    def test_returns_token(self):
        self.assertEqual(extract_bearer_token("Bearer abc.def"), "abc.def")

    def test_scheme_is_case_insensitive(self):
        self.assertEqual(extract_bearer_token("bearer abc"), "abc")

    def test_missing_header(self):
        with self.assertRaises(AuthenticationDenied):
            extract_bearer_token(None)

    def test_wrong_scheme(self):
        with self.assertRaises(AuthenticationDenied):
            extract_bearer_token("Basic dXNlcjpwYXNz")

    def test_empty_token(self):
        with self.assertRaises(AuthenticationDenied):
            extract_bearer_token("Bearer    ")


class AuthenticateTests(unittest.TestCase):
    def test_accepted_token_yields_identity(self):
        provider = MagicMock()
        provider.verify_token.return_value = Identity(id="u1", email="a@x.com")
        identity = authenticate("Bearer tok", provider)
        self.assertEqual(identity.id, "u1")
        provider.verify_token.assert_called_once_with("tok")

    def test_rejected_token_is_denied(self):
        provider = MagicMock()
        provider.verify_token.side_effect = CredentialRejected("expired")
        with self.assertRaises(AuthenticationDenied):
            authenticate("Bearer tok", provider)

    def test_provider_fault_is_not_a_denial(self):
        provider = MagicMock()
        provider.verify_token.side_effect = IdentityProviderError("unreachable")
        with self.assertRaises(IdentityProviderError):
            authenticate("Bearer tok", provider)

    def test_unexpected_exception_becomes_provider_error(self):
        provider = MagicMock()
        provider.verify_token.side_effect = RuntimeError("boom")
        with self.assertRaises(IdentityProviderError):
            authenticate("Bearer tok", provider)

    def test_malformed_header_never_reaches_provider(self):
        provider = MagicMock()
        with self.assertRaises(AuthenticationDenied):
            authenticate("Token tok", provider)
        provider.verify_token.assert_not_called()


class AuthGateApiTests(unittest.TestCase):
    def setUp(self):
        self.db = MagicMock(spec=InMemoryDbClient)
        self.provider = InMemoryIdentityProvider()
        self.harness = ApiHarness(
            Services(
                identity=self.provider,
                db=self.db,
                storage=InMemoryStorageClient(),
            )
        )
        self.client = self.harness.client

    def test_missing_header_is_401_without_data_access(self):
        for method, path in [
            ("get", "/api/tasks"),
            ("post", "/api/tasks"),
            ("get", "/api/tasks/1"),
            ("put", "/api/tasks/1"),
            ("delete", "/api/tasks/1"),
            ("get", "/api/avatar/profile"),
            ("put", "/api/avatar/profile"),
            ("post", "/api/avatar/upload"),
        ]:
            response = self.client.request(method, path, json={"title": "x"})
            self.assertEqual(response.status_code, 401, f"{method} {path}")
            self.assertEqual(response.headers.get("www-authenticate"), "Bearer")
        self.assertEqual(self.db.method_calls, [])

    def test_malformed_header_is_401(self):
        response = self.client.get(
            "/api/tasks", headers={"Authorization": "Token abc"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.db.method_calls, [])

    def test_invalid_token_is_401(self):
        response = self.client.get(
            "/api/tasks", headers={"Authorization": "Bearer not-a-real-token"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Invalid or expired token")

    def test_revoked_token_is_401(self):
        self.provider.create_user("a@x.com", PASSWORD)
        token = self.provider.sign_in("a@x.com", PASSWORD).access_token
        self.provider.revoke_token(token)
        response = self.client.get(
            "/api/tasks", headers={"Authorization": f"Bearer {token}"}
        )
        self.assertEqual(response.status_code, 401)

    def test_provider_failure_is_500(self):
        provider = MagicMock()
        provider.verify_token.side_effect = IdentityProviderError("unreachable")
        harness = ApiHarness(
            Services(identity=provider, db=self.db, storage=InMemoryStorageClient())
        )
        response = harness.client.get(
            "/api/tasks", headers={"Authorization": "Bearer tok"}
        )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["detail"], "Authentication check failed")
        self.assertEqual(self.db.method_calls, [])

    def test_valid_token_reaches_handler(self):
        self.db.list_tasks.return_value = []
        _, headers = self.harness.register("a@x.com")
        response = self.client.get("/api/tasks", headers=headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [])


class SignupLoginApiTests(unittest.TestCase):
    def setUp(self):
        self.harness = ApiHarness()
        self.client = self.harness.client

    def test_signup_then_login(self):
        response = self.client.post(
            "/api/auth/signup", json={"email": "a@x.com", "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["message"], "Signup successful")
        self.assertEqual(payload["user"]["email"], "a@x.com")
        user_id = payload["user"]["id"]

        response = self.client.post(
            "/api/auth/login", json={"email": "a@x.com", "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["message"], "Login successful")
        self.assertEqual(payload["user"]["id"], user_id)
        self.assertTrue(payload["accessToken"])
        self.assertTrue(payload["refreshToken"])

        tasks = self.client.get(
            "/api/tasks",
            headers={"Authorization": f"Bearer {payload['accessToken']}"},
        )
        self.assertEqual(tasks.status_code, 200)

    def test_signup_requires_email_and_password(self):
        for body in ({}, {"email": "a@x.com"}, {"password": PASSWORD}, {"email": "", "password": PASSWORD}):
            response = self.client.post("/api/auth/signup", json=body)
            self.assertEqual(response.status_code, 400, body)
        self.assertEqual(self.harness.services.identity.users, {})

    def test_duplicate_signup_is_400_with_provider_message(self):
        body = {"email": "a@x.com", "password": PASSWORD}
        self.client.post("/api/auth/signup", json=body)
        response = self.client.post("/api/auth/signup", json=body)
        self.assertEqual(response.status_code, 400)
        self.assertIn("already been registered", response.json()["detail"])

    def test_login_with_wrong_password_is_400(self):
        self.harness.register("a@x.com")
        response = self.client.post(
            "/api/auth/login", json={"email": "a@x.com", "password": "nope"}
        )
        self.assertEqual(response.status_code, 400)

    def test_login_requires_email_and_password(self):
        response = self.client.post("/api/auth/login", json={"email": "a@x.com"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Email and password required")

    def test_login_merges_provider_metadata(self):
        self.harness.register("a@x.com")
        self.harness.services.identity.users["a@x.com"]["metadata"] = {
            "full_name": "Ada",
            "id": "spoofed",
        }
        response = self.client.post(
            "/api/auth/login", json={"email": "a@x.com", "password": PASSWORD}
        )
        user = response.json()["user"]
        self.assertEqual(user["full_name"], "Ada")
        self.assertNotEqual(user["id"], "spoofed")

    def test_signup_provider_outage_is_500(self):
        provider = MagicMock()
        provider.create_user.side_effect = IdentityProviderError("down")
        harness = ApiHarness(
            Services(
                identity=provider,
                db=InMemoryDbClient(),
                storage=InMemoryStorageClient(),
            )
        )
        response = harness.client.post(
            "/api/auth/signup", json={"email": "a@x.com", "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["detail"], "Signup failed")


if __name__ == "__main__":
    unittest.main()
