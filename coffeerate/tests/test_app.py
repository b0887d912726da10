import unittest
import uuid

from fastapi.testclient import TestClient

from coffeerate.app import create_app
from coffeerate.auth import AuthProviderError, InMemoryAuthClient
from coffeerate.db import InMemoryDbClient
from coffeerate.dependencies import get_auth_client, get_db_client

PASSWORD = "correct-horse"


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app()
        self.db = InMemoryDbClient()
        self.auth = InMemoryAuthClient()
        self.app.dependency_overrides[get_db_client] = lambda: self.db
        self.app.dependency_overrides[get_auth_client] = lambda: self.auth
        self.client = TestClient(self.app)

    def register_and_login(self, email="anna@example.com"):
        response = self.client.post(
            "/api/auth/register", json={"email": email, "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 201)
        response = self.client.post(
            "/api/auth/login", json={"email": email, "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        return payload["user"]["id"], {
            "Authorization": f"Bearer {payload['session']['accessToken']}"
        }

    def create_roastery(self, headers, name="Kawa Lodz", city="Łódź"):
        response = self.client.post(
            "/api/roasteries", json={"name": name, "city": city}, headers=headers
        )
        self.assertEqual(response.status_code, 201)
        return response.json()

    def create_coffee(self, headers, roastery_id, name="Ethiopia Guji"):
        response = self.client.post(
            f"/api/roasteries/{roastery_id}/coffees", json={"name": name}, headers=headers
        )
        self.assertEqual(response.status_code, 201)
        return response.json()


class AuthApiTests(ApiTestCase):
    def test_register_login_and_me(self):
        user_id, headers = self.register_and_login()
        self.assertIsNotNone(self.db.get_profile(user_id))

        response = self.client.get("/api/auth/me", headers=headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["user"]["id"], user_id)
        self.assertEqual(response.headers["cache-control"], "no-store")

    def test_register_reports_email_confirmation(self):
        self.auth.require_email_confirmation = True
        response = self.client.post(
            "/api/auth/register", json={"email": "bob@example.com", "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()["requiresEmailConfirmation"])

        response = self.client.post(
            "/api/auth/login", json={"email": "bob@example.com", "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "email_not_confirmed")

    def test_register_duplicate_email(self):
        self.register_and_login()
        response = self.client.post(
            "/api/auth/register", json={"email": "anna@example.com", "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "email_taken")

    def test_register_rejects_short_password(self):
        response = self.client.post(
            "/api/auth/register", json={"email": "anna@example.com", "password": "short"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_failed")

    def test_register_rejects_invalid_email(self):
        response = self.client.post(
            "/api/auth/register", json={"email": "not-an-email", "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_failed")

    def test_weak_password_messages_depend_on_route(self):
        _, headers = self.register_and_login()

        def too_weak(*args):
            raise AuthProviderError(422, "Password is too weak", "weak_password")

        self.auth.sign_up = too_weak
        self.auth.update_password = too_weak

        response = self.client.post(
            "/api/auth/register", json={"email": "bob@example.com", "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(), {"code": "weak_password", "message": "Invalid registration data"}
        )

        response = self.client.post(
            "/api/auth/reset-password", json={"password": "new-password"}, headers=headers
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"code": "weak_password", "message": "Weak password"})

    def test_login_with_wrong_password(self):
        self.register_and_login()
        response = self.client.post(
            "/api/auth/login", json={"email": "anna@example.com", "password": "wrong-pass"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(
            response.json(), {"code": "invalid_credentials", "message": "Invalid credentials"}
        )

    def test_me_without_token(self):
        response = self.client.get("/api/auth/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "unauthorized")

    def test_logout_invalidates_token(self):
        _, headers = self.register_and_login()
        response = self.client.post("/api/auth/logout", headers=headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True})

        response = self.client.get("/api/auth/me", headers=headers)
        self.assertEqual(response.status_code, 401)

    def test_logout_without_session_is_ok(self):
        response = self.client.post("/api/auth/logout")
        self.assertEqual(response.status_code, 200)

    def test_forgot_password_sends_callback_link(self):
        self.register_and_login()
        response = self.client.post(
            "/api/auth/forgot-password", json={"email": "anna@example.com"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(self.auth.reset_requests), 1)
        email, redirect_to = self.auth.reset_requests[0]
        self.assertEqual(email, "anna@example.com")
        self.assertTrue(redirect_to.endswith("/auth/callback"))

    def test_forgot_password_unknown_email_is_ok(self):
        response = self.client.post(
            "/api/auth/forgot-password", json={"email": "ghost@example.com"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.auth.reset_requests, [])

    def test_reset_password(self):
        _, headers = self.register_and_login()
        response = self.client.post(
            "/api/auth/reset-password", json={"password": "new-password"}, headers=headers
        )
        self.assertEqual(response.status_code, 200)

        response = self.client.post(
            "/api/auth/login", json={"email": "anna@example.com", "password": "new-password"}
        )
        self.assertEqual(response.status_code, 200)

    def test_reset_password_requires_valid_token(self):
        response = self.client.post(
            "/api/auth/reset-password",
            json={"password": "new-password"},
            headers={"Authorization": "Bearer bogus"},
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "invalid_token")

    def test_request_id_header(self):
        response = self.client.get("/api/roasteries", headers={"X-Request-Id": "abc-123"})
        self.assertEqual(response.headers["x-request-id"], "abc-123")
        response = self.client.get("/api/roasteries")
        self.assertTrue(response.headers["x-request-id"])


class GateApiTests(ApiTestCase):
    def test_unauthenticated_redirects_to_login(self):
        response = self.client.get("/api/auth/gate", params={"returnTo": "/coffees/1"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "redirecting")
        self.assertEqual(payload["reason"], "unauthenticated")
        self.assertEqual(payload["redirectTo"], "/login?returnTo=%2Fcoffees%2F1")

    def test_missing_display_name_then_allowed(self):
        _, headers = self.register_and_login()
        response = self.client.get(
            "/api/auth/gate", params={"returnTo": "https://evil.example"}, headers=headers
        )
        payload = response.json()
        self.assertEqual(payload["status"], "redirecting")
        self.assertEqual(payload["reason"], "display_name_missing")
        self.assertEqual(payload["redirectTo"], "/account/display-name?returnTo=%2F")

        self.client.post(
            "/api/profiles/me/display-name", json={"displayName": "Anna"}, headers=headers
        )
        payload = self.client.get("/api/auth/gate", headers=headers).json()
        self.assertEqual(payload["status"], "allowed")
        self.assertEqual(payload["profile"]["displayName"], "Anna")


class ProfileApiTests(ApiTestCase):
    def test_set_display_name_once(self):
        user_id, headers = self.register_and_login()
        response = self.client.post(
            "/api/profiles/me/display-name", json={"displayName": "Zażółć"}, headers=headers
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["displayName"], "Zażółć")

        response = self.client.post(
            "/api/profiles/me/display-name", json={"displayName": "Other"}, headers=headers
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "display_name_already_set")

        response = self.client.get(f"/api/profiles/{user_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["displayName"], "Zażółć")
        self.assertIn("public", response.headers["cache-control"])

    def test_display_name_conflict_ignores_case_and_diacritics(self):
        _, first = self.register_and_login("a@example.com")
        _, second = self.register_and_login("b@example.com")
        self.client.post(
            "/api/profiles/me/display-name", json={"displayName": "Łukasz"}, headers=first
        )
        response = self.client.post(
            "/api/profiles/me/display-name", json={"displayName": "lukasz"}, headers=second
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "display_name_conflict")

    def test_display_name_validation(self):
        _, headers = self.register_and_login()
        for name in ["", "x" * 33, "bad<name>"]:
            response = self.client.post(
                "/api/profiles/me/display-name", json={"displayName": name}, headers=headers
            )
            self.assertEqual(response.status_code, 400, name)

    def test_display_name_requires_auth(self):
        response = self.client.post(
            "/api/profiles/me/display-name", json={"displayName": "Anna"}
        )
        self.assertEqual(response.status_code, 401)

    def test_unknown_profile(self):
        response = self.client.get(f"/api/profiles/{uuid.uuid4()}")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "profile_not_found")

    def test_invalid_profile_id(self):
        response = self.client.get("/api/profiles/not-a-uuid")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_failed")

    def test_delete_account_removes_profile_and_ratings(self):
        user_id, headers = self.register_and_login()
        roastery = self.create_roastery(headers)
        coffee = self.create_coffee(headers, roastery["id"])
        self.client.put(
            f"/api/coffees/{coffee['id']}/my-rating",
            json={"main": 4, "strength": 3, "acidity": 2.5, "aftertaste": 4.5},
            headers=headers,
        )

        response = self.client.delete("/api/account", headers=headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True})
        self.assertIsNone(self.db.get_profile(user_id))
        self.assertNotIn(user_id, self.auth.users)

        coffee_payload = self.client.get(f"/api/coffees/{coffee['id']}").json()
        self.assertEqual(coffee_payload["ratingsCount"], 0)
        self.assertIsNone(coffee_payload["avgMain"])

    def test_delete_account_reports_auth_failure(self):
        _, headers = self.register_and_login()

        def failing_delete(_user_id):
            raise AuthProviderError(500, "boom")

        self.auth.delete_user = failing_delete
        response = self.client.delete("/api/account", headers=headers)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["code"], "delete_auth_user_failed")


class RoasteryApiTests(ApiTestCase):
    def test_create_and_get_roastery(self):
        _, headers = self.register_and_login()
        response = self.client.post(
            "/api/roasteries", json={"name": "  Kawa Lodz ", "city": "Łódź"}, headers=headers
        )
        self.assertEqual(response.status_code, 201)
        roastery = response.json()
        self.assertEqual(roastery["name"], "Kawa Lodz")
        self.assertEqual(response.headers["location"], f"/api/roasteries/{roastery['id']}")

        response = self.client.get(f"/api/roasteries/{roastery['id']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["city"], "Łódź")
        self.assertEqual(
            response.headers["cache-control"], "public, max-age=60, stale-while-revalidate=120"
        )

    def test_create_roastery_requires_auth(self):
        response = self.client.post(
            "/api/roasteries", json={"name": "Kawa", "city": "Lodz"}
        )
        self.assertEqual(response.status_code, 401)

    def test_duplicate_roastery(self):
        _, headers = self.register_and_login()
        self.create_roastery(headers, name="Kawa Łódź", city="Łódź")
        response = self.client.post(
            "/api/roasteries", json={"name": "KAWA lodz", "city": "lodz"}, headers=headers
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "roastery_duplicate")

    def test_roastery_validation(self):
        _, headers = self.register_and_login()
        response = self.client.post(
            "/api/roasteries", json={"name": "   ", "city": "Lodz"}, headers=headers
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_failed")

    def test_list_roasteries_filters_and_paginates(self):
        _, headers = self.register_and_login()
        self.create_roastery(headers, name="Bracia Ziółkowscy", city="Kraków")
        self.create_roastery(headers, name="Audun", city="Wrocław")
        self.create_roastery(headers, name="Coffeelab", city="Kraków")

        response = self.client.get("/api/roasteries", params={"city": "krakow"})
        payload = response.json()
        self.assertEqual(payload["total"], 2)
        self.assertEqual(
            [r["name"] for r in payload["items"]], ["Bracia Ziółkowscy", "Coffeelab"]
        )

        payload = self.client.get("/api/roasteries", params={"q": "ziolk"}).json()
        self.assertEqual([r["name"] for r in payload["items"]], ["Bracia Ziółkowscy"])

        payload = self.client.get(
            "/api/roasteries", params={"page": "2", "pageSize": "2"}
        ).json()
        self.assertEqual(payload["page"], 2)
        self.assertEqual(payload["pageSize"], 2)
        self.assertEqual(payload["total"], 3)
        self.assertEqual([r["name"] for r in payload["items"]], ["Coffeelab"])

    def test_list_roasteries_lenient_pagination(self):
        payload = self.client.get(
            "/api/roasteries", params={"page": "0", "pageSize": "1000"}
        ).json()
        self.assertEqual(payload["page"], 1)
        self.assertEqual(payload["pageSize"], 100)

        payload = self.client.get("/api/roasteries", params={"page": "abc"}).json()
        self.assertEqual(payload["page"], 1)
        self.assertEqual(payload["pageSize"], 20)

    def test_list_roasteries_rejects_long_query(self):
        response = self.client.get("/api/roasteries", params={"q": "x" * 65})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_failed")

    def test_search_terms_are_trimmed_and_required(self):
        _, headers = self.register_and_login()
        self.create_roastery(headers, name="Audun", city="Wrocław")

        payload = self.client.get(
            "/api/roasteries", params={"q": "  aud  ", "city": " wroclaw "}
        ).json()
        self.assertEqual([r["name"] for r in payload["items"]], ["Audun"])

        for params in [{"q": "   "}, {"city": ""}]:
            response = self.client.get("/api/roasteries", params=params)
            self.assertEqual(response.status_code, 400, params)
            self.assertEqual(response.json()["code"], "validation_failed")
        response = self.client.get("/api/coffees", params={"q": " "})
        self.assertEqual(response.status_code, 400)

    def test_huge_page_returns_empty_page(self):
        _, headers = self.register_and_login()
        roastery = self.create_roastery(headers)
        self.create_coffee(headers, roastery["id"])
        huge = "99999999999999999999"

        for url in [
            "/api/roasteries",
            "/api/coffees",
            f"/api/roasteries/{roastery['id']}/coffees",
        ]:
            response = self.client.get(url, params={"page": huge})
            self.assertEqual(response.status_code, 200, url)
            payload = response.json()
            self.assertEqual(payload["items"], [])
            self.assertEqual(payload["total"], 1)

    def test_error_body_documented_in_openapi(self):
        schema = self.client.get("/openapi.json").json()
        self.assertIn("ErrorResponse", schema["components"]["schemas"])
        responses = schema["paths"]["/api/roasteries"]["get"]["responses"]
        self.assertEqual(
            responses["400"]["content"]["application/json"]["schema"]["$ref"],
            "#/components/schemas/ErrorResponse",
        )

    def test_unknown_roastery(self):
        response = self.client.get(f"/api/roasteries/{uuid.uuid4()}")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "roastery_not_found")

        response = self.client.get(f"/api/roasteries/{uuid.uuid4()}/coffees")
        self.assertEqual(response.status_code, 404)


class CoffeeApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.user_id, self.headers = self.register_and_login()
        self.roastery = self.create_roastery(self.headers)

    def test_create_coffee(self):
        coffee = self.create_coffee(self.headers, self.roastery["id"])
        self.assertEqual(coffee["roasteryId"], self.roastery["id"])
        self.assertEqual(coffee["ratingsCount"], 0)
        self.assertTrue(coffee["smallSample"])
        self.assertIsNone(coffee["avgMain"])

    def test_duplicate_coffee_in_roastery(self):
        self.create_coffee(self.headers, self.roastery["id"], name="Kenia AA")
        response = self.client.post(
            f"/api/roasteries/{self.roastery['id']}/coffees",
            json={"name": "kenia aa"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "coffee_duplicate")

    def test_same_coffee_name_in_other_roastery(self):
        other = self.create_roastery(self.headers, name="Audun", city="Wrocław")
        self.create_coffee(self.headers, self.roastery["id"], name="Kenia AA")
        self.create_coffee(self.headers, other["id"], name="Kenia AA")

    def test_create_coffee_for_unknown_roastery(self):
        response = self.client.post(
            f"/api/roasteries/{uuid.uuid4()}/coffees",
            json={"name": "Kenia"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "roastery_not_found")

    def test_rating_lifecycle(self):
        coffee = self.create_coffee(self.headers, self.roastery["id"])
        url = f"/api/coffees/{coffee['id']}/my-rating"

        response = self.client.get(url, headers=self.headers)
        self.assertEqual(response.status_code, 204)

        body = {"main": 4.5, "strength": 3, "acidity": 2.5, "aftertaste": 4}
        response = self.client.put(url, json=body, headers=self.headers)
        self.assertEqual(response.status_code, 201)
        created = response.json()
        self.assertEqual(created["main"], 4.5)
        self.assertEqual(created["userId"], self.user_id)
        self.assertEqual(created["createdAt"], created["updatedAt"])
        self.assertEqual(response.headers["cache-control"], "no-store")

        body["main"] = 2
        response = self.client.put(url, json=body, headers=self.headers)
        self.assertEqual(response.status_code, 200)
        updated = response.json()
        self.assertEqual(updated["id"], created["id"])
        self.assertEqual(updated["main"], 2.0)
        self.assertEqual(updated["createdAt"], created["createdAt"])

        response = self.client.get(url, headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["main"], 2.0)

        coffee_payload = self.client.get(f"/api/coffees/{coffee['id']}").json()
        self.assertEqual(coffee_payload["avgMain"], 2.0)
        self.assertEqual(coffee_payload["ratingsCount"], 1)

    def test_rating_validation(self):
        coffee = self.create_coffee(self.headers, self.roastery["id"])
        url = f"/api/coffees/{coffee['id']}/my-rating"
        base = {"main": 4, "strength": 3, "acidity": 2.5, "aftertaste": 4}
        invalid = [
            {**base, "main": 4.3},
            {**base, "main": 0.5},
            {**base, "main": 5.5},
            {**base, "main": "4"},
            {**base, "extra": 1},
            {"main": 4, "strength": 3, "acidity": 2.5},
        ]
        for body in invalid:
            response = self.client.put(url, json=body, headers=self.headers)
            self.assertEqual(response.status_code, 400, body)
            self.assertEqual(response.json()["code"], "validation_failed")

    def test_rating_unknown_coffee(self):
        url = f"/api/coffees/{uuid.uuid4()}/my-rating"
        body = {"main": 4, "strength": 3, "acidity": 2.5, "aftertaste": 4}
        response = self.client.put(url, json=body, headers=self.headers)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "coffee_not_found")

        response = self.client.get(url, headers=self.headers)
        self.assertEqual(response.status_code, 404)

    def test_rating_requires_auth(self):
        coffee = self.create_coffee(self.headers, self.roastery["id"])
        response = self.client.get(f"/api/coffees/{coffee['id']}/my-rating")
        self.assertEqual(response.status_code, 401)

    def test_my_rating_is_scoped_to_caller(self):
        coffee = self.create_coffee(self.headers, self.roastery["id"])
        url = f"/api/coffees/{coffee['id']}/my-rating"
        body = {"main": 4, "strength": 3, "acidity": 2.5, "aftertaste": 4}
        self.client.put(url, json=body, headers=self.headers)

        _, other = self.register_and_login("other@example.com")
        response = self.client.get(url, headers=other)
        self.assertEqual(response.status_code, 204)

    def test_list_coffees_sorted_by_rating(self):
        low = self.create_coffee(self.headers, self.roastery["id"], name="Low")
        high = self.create_coffee(self.headers, self.roastery["id"], name="High")
        unrated = self.create_coffee(self.headers, self.roastery["id"], name="Unrated")
        body = {"strength": 3, "acidity": 3, "aftertaste": 3}
        self.client.put(
            f"/api/coffees/{low['id']}/my-rating", json={**body, "main": 2}, headers=self.headers
        )
        self.client.put(
            f"/api/coffees/{high['id']}/my-rating", json={**body, "main": 5}, headers=self.headers
        )

        response = self.client.get("/api/coffees", params={"sort": "rating_desc"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["pageSize"], 100)
        self.assertEqual(
            [c["id"] for c in payload["items"]], [high["id"], low["id"], unrated["id"]]
        )

        payload = self.client.get(
            f"/api/roasteries/{self.roastery['id']}/coffees"
        ).json()
        self.assertEqual(payload["pageSize"], 30)
        self.assertEqual(payload["items"][0]["name"], "High")
        self.assertNotIn("roasteryId", payload["items"][0])

    def test_list_coffees_filters(self):
        other = self.create_roastery(self.headers, name="Audun", city="Wrocław")
        self.create_coffee(self.headers, self.roastery["id"], name="Kolumbia Huila")
        self.create_coffee(self.headers, other["id"], name="Kenia Nyeri")

        payload = self.client.get(
            "/api/coffees", params={"roasteryId": other["id"]}
        ).json()
        self.assertEqual([c["name"] for c in payload["items"]], ["Kenia Nyeri"])

        payload = self.client.get("/api/coffees", params={"q": "HUILA"}).json()
        self.assertEqual([c["name"] for c in payload["items"]], ["Kolumbia Huila"])

    def test_list_coffees_rejects_unknown_sort(self):
        response = self.client.get("/api/coffees", params={"sort": "name_asc"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_failed")

    def test_list_coffees_rejects_bad_roastery_id(self):
        response = self.client.get("/api/coffees", params={"roasteryId": "nope"})
        self.assertEqual(response.status_code, 400)

    def test_small_sample_flag(self):
        coffee = self.create_coffee(self.headers, self.roastery["id"])
        url = f"/api/coffees/{coffee['id']}/my-rating"
        body = {"main": 4, "strength": 3, "acidity": 3, "aftertaste": 3}
        for index in range(3):
            _, headers = self.register_and_login(f"rater{index}@example.com")
            self.client.put(url, json=body, headers=headers)
            payload = self.client.get(f"/api/coffees/{coffee['id']}").json()
            self.assertEqual(payload["ratingsCount"], index + 1)
            self.assertEqual(payload["smallSample"], index + 1 < 3)


class ErrorHandlingTests(ApiTestCase):
    def test_unexpected_errors_are_wrapped(self):
        client = TestClient(self.app, raise_server_exceptions=False)

        def broken_list(**kwargs):
            raise RuntimeError("db down")

        self.db.list_roasteries = broken_list
        response = client.get("/api/roasteries")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            response.json(), {"code": "internal_error", "message": "Unexpected server error"}
        )

    def test_unknown_route(self):
        response = self.client.get("/api/nothing-here")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")


if __name__ == "__main__":
    unittest.main()
