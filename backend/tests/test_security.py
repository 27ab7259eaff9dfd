import time
import unittest

import jwt
from fastapi import Request

from app.core.errors import AuthError
from app.core.security import _get_bearer_token, decode_supabase_jwt
from app.models.profile import Profile
from tests.support import make_client, make_session_factory, make_settings, reset_overrides

JWT_SECRET = "super-secret-jwt-token-with-at-least-32-characters"


def _token(secret=JWT_SECRET, **claims):
    payload = {
        "sub": "user-9",
        "email": "buyer@example.com",
        "aud": "authenticated",
        "exp": int(time.time()) + 3600,
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def _request(headers):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
    }
    return Request(scope)


class TestDecodeSupabaseJwt(unittest.TestCase):
    def setUp(self):
        self.settings = make_settings(supabase_jwt_secret=JWT_SECRET)

    def test_valid_token(self):
        claims = decode_supabase_jwt(_token(), self.settings)
        self.assertEqual(claims["sub"], "user-9")

    def test_expired_token(self):
        with self.assertRaises(AuthError):
            decode_supabase_jwt(_token(exp=int(time.time()) - 60), self.settings)

    def test_wrong_audience(self):
        with self.assertRaises(AuthError):
            decode_supabase_jwt(_token(aud="anon-service"), self.settings)

    def test_wrong_secret(self):
        with self.assertRaises(AuthError):
            decode_supabase_jwt(_token(secret="x" * 40), self.settings)


class TestBearerToken(unittest.TestCase):
    def test_missing_header(self):
        with self.assertRaises(AuthError):
            _get_bearer_token(_request({}))

    def test_other_scheme(self):
        with self.assertRaises(AuthError):
            _get_bearer_token(_request({"Authorization": "Basic abc"}))

    def test_bearer(self):
        self.assertEqual(_get_bearer_token(_request({"Authorization": "Bearer abc.def"})), "abc.def")


class TestAuthenticatedApi(unittest.TestCase):
    def setUp(self):
        self.Session = make_session_factory()
        self.client = make_client(
            self.Session,
            settings=make_settings(supabase_jwt_secret=JWT_SECRET),
            user=None,
        )

    def tearDown(self):
        reset_overrides()

    def test_me_creates_profile_on_first_request(self):
        res = self.client.get("/api/me", headers={"Authorization": f"Bearer {_token()}"})

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["id"], "user-9")
        self.assertEqual(res.json()["balance_eur"], 0.0)
        with self.Session() as db:
            profile = db.query(Profile).filter(Profile.id == "user-9").first()
            self.assertIsNotNone(profile)
            self.assertEqual(profile.email, "buyer@example.com")

    def test_missing_token(self):
        res = self.client.get("/api/me")

        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json(), {"error": "Unauthorized"})
        self.assertEqual(res.headers.get("www-authenticate"), "Bearer")

    def test_expired_token(self):
        token = _token(exp=int(time.time()) - 60)
        res = self.client.get("/api/transactions", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(res.status_code, 401)


if __name__ == "__main__":
    unittest.main()
