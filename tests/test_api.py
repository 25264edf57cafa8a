"""
HTTP API tests through the FastAPI TestClient.

Background tasks run before TestClient returns, so statistics are already
updated when a redirect call comes back.
"""
from fastapi.testclient import TestClient

from shortlink_app.config import settings

OWNER = {settings.identity_header: "alice"}
INTRUDER = {settings.identity_header: "bob"}


def create(client: TestClient, headers=None, **payload):
    body = {"originalUrl": "https://www.github.com/"}
    body.update(payload)
    response = client.post("/api/v1/urls/", json=body, headers=headers or {})
    assert response.status_code == 201, response.text
    return response.json()


class TestURLEndpoints:
    """Test the URL management endpoints"""

    def test_create_short_url(self, client: TestClient):
        data = create(client)

        assert data["originalUrl"] == "https://www.github.com/"
        assert data["clickCount"] == 0
        assert data["active"] is True
        assert len(data["shortCode"]) == 6
        assert "expiresAt" in data
        assert "qrImage" not in data

    def test_create_accepts_snake_case(self, client: TestClient):
        response = client.post("/api/v1/urls/", json={"original_url": "https://www.python.org/", "expiration_days": 2})

        assert response.status_code == 201

    def test_create_with_custom_slug(self, client: TestClient):
        data = create(client, customSlug="gh")

        assert data["shortCode"] == "gh"

    def test_custom_slug_conflict(self, client: TestClient):
        create(client, customSlug="gh")

        response = client.post("/api/v1/urls/", json={"originalUrl": "https://gitlab.com/", "customSlug": "gh"})

        assert response.status_code == 409
        assert response.json()["kind"] == "slug_taken"

    def test_invalid_url(self, client: TestClient):
        response = client.post("/api/v1/urls/", json={"originalUrl": "not-a-valid-url"})

        assert response.status_code == 422

    def test_overlong_url(self, client: TestClient):
        response = client.post("/api/v1/urls/", json={"originalUrl": "https://a.com/" + "p" * 2100})

        assert response.status_code == 422

    def test_invalid_slug_characters(self, client: TestClient):
        response = client.post("/api/v1/urls/", json={"originalUrl": "https://a.com/", "customSlug": "no spaces"})

        assert response.status_code == 422

    def test_custom_domain_requires_identity(self, client: TestClient):
        response = client.post("/api/v1/urls/", json={"originalUrl": "https://a.com/", "domain": "go.example.com"})

        assert response.status_code == 401
        assert response.json()["kind"] == "authentication_required"

    def test_owner_reshorten_is_idempotent(self, client: TestClient):
        first = create(client, headers=OWNER)
        second = create(client, headers=OWNER)

        assert first["shortCode"] == second["shortCode"]
        assert second["ownerId"] == "alice"

    def test_get_url_info(self, client: TestClient):
        short_code = create(client)["shortCode"]

        response = client.get(f"/api/v1/urls/{short_code}")

        assert response.status_code == 200
        assert response.json()["shortCode"] == short_code

    def test_get_nonexistent_url(self, client: TestClient):
        response = client.get("/api/v1/urls/nonexistent")

        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"
        assert response.json()["detail"]

    def test_qr_code(self, client: TestClient):
        short_code = create(client)["shortCode"]

        response = client.get(f"/api/v1/urls/{short_code}/qr")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content.startswith(b"\x89PNG")

    def test_update_expiration(self, client: TestClient):
        short_code = create(client)["shortCode"]

        response = client.patch(f"/api/v1/urls/{short_code}/expiration", json={"expirationDays": 30})

        assert response.status_code == 200
        assert response.json()["expiresAt"].startswith("2025-02-14")

    def test_rename(self, client: TestClient):
        short_code = create(client)["shortCode"]

        response = client.patch(f"/api/v1/urls/{short_code}", json={"customSlug": "renamed"})

        assert response.status_code == 200
        assert response.json()["shortCode"] == "renamed"
        assert client.get(f"/{short_code}", follow_redirects=False).status_code == 404
        assert client.get("/renamed", follow_redirects=False).status_code == 302

    def test_update_without_fields(self, client: TestClient):
        short_code = create(client)["shortCode"]

        response = client.patch(f"/api/v1/urls/{short_code}", json={})

        assert response.status_code == 400
        assert response.json()["kind"] == "no_fields_provided"

    def test_update_with_bad_date(self, client: TestClient):
        short_code = create(client)["shortCode"]

        response = client.patch(f"/api/v1/urls/{short_code}", json={"expiresAt": "soon"})

        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_date"

    def test_update_by_non_owner(self, client: TestClient):
        short_code = create(client, headers=OWNER)["shortCode"]

        response = client.patch(f"/api/v1/urls/{short_code}", json={"description": "mine now"}, headers=INTRUDER)

        assert response.status_code == 403
        assert response.json()["kind"] == "forbidden"

    def test_delete_url(self, client: TestClient):
        short_code = create(client)["shortCode"]

        response = client.delete(f"/api/v1/urls/{short_code}")
        assert response.status_code == 204

        response = client.get(f"/{short_code}", follow_redirects=False)
        assert response.status_code == 404


class TestRedirect:
    """Test redirects and click accounting"""

    def test_redirect_url(self, client: TestClient):
        short_code = create(client)["shortCode"]

        response = client.get(f"/{short_code}", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://www.github.com/"

    def test_redirect_nonexistent_url(self, client: TestClient):
        response = client.get("/nonexistent", follow_redirects=False)

        assert response.status_code == 404

    def test_redirect_expired_url(self, client: TestClient, clock):
        short_code = create(client, expirationDays=1)["shortCode"]
        clock.advance(days=1)

        response = client.get(f"/{short_code}", follow_redirects=False)

        assert response.status_code == 404

    def test_stats_after_redirects(self, client: TestClient):
        short_code = create(client)["shortCode"]

        client.get(f"/{short_code}", follow_redirects=False)
        client.get(f"/{short_code}", follow_redirects=False)
        client.get(
            f"/{short_code}",
            follow_redirects=False,
            headers={"Referer": "https://x.com/status/1", settings.country_header: "NL"},
        )

        response = client.get(f"/api/v1/urls/{short_code}/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["shortCode"] == short_code
        assert data["totalClicks"] == 3
        assert {r["label"]: r["count"] for r in data["referrers"]} == {"Direct": 2, "x.com": 1}
        assert {c["label"]: c["count"] for c in data["countries"]} == {"Unknown": 2, "NL": 1}
        assert data["clicksByDay"] == [{"date": "2025-01-15", "count": 3}]
        assert "version" not in data

        assert client.get(f"/api/v1/urls/{short_code}").json()["clickCount"] == 3

    def test_browser_from_user_agent(self, client: TestClient):
        short_code = create(client)["shortCode"]
        firefox = "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0"

        client.get(f"/{short_code}", follow_redirects=False, headers={"User-Agent": firefox})

        browsers = client.get(f"/api/v1/urls/{short_code}/stats").json()["browsers"]
        assert browsers == [{"label": "Firefox", "count": 1}]

    def test_owned_stats_require_owner(self, client: TestClient):
        short_code = create(client, headers=OWNER)["shortCode"]

        assert client.get(f"/api/v1/urls/{short_code}/stats", headers=INTRUDER).status_code == 403
        assert client.get(f"/api/v1/urls/{short_code}/stats").status_code == 401
        assert client.get(f"/api/v1/urls/{short_code}/stats", headers=OWNER).status_code == 200


class TestOwnerEndpoints:

    def test_requires_identity(self, client: TestClient):
        response = client.get("/api/v1/me/urls")

        assert response.status_code == 401
        assert response.json()["kind"] == "authentication_required"

    def test_list_my_urls(self, client: TestClient):
        mine = create(client, headers=OWNER)["shortCode"]
        create(client, headers=INTRUDER, originalUrl="https://gitlab.com/")

        response = client.get("/api/v1/me/urls", headers=OWNER)

        assert response.status_code == 200
        assert [u["shortCode"] for u in response.json()] == [mine]

    def test_my_stats(self, client: TestClient):
        short_code = create(client, headers=OWNER)["shortCode"]
        client.get(f"/{short_code}", follow_redirects=False)

        response = client.get("/api/v1/me/stats", headers=OWNER)

        assert response.status_code == 200
        assert [(s["shortCode"], s["totalClicks"]) for s in response.json()] == [(short_code, 1)]


class TestServiceEndpoints:

    def test_root(self, client: TestClient):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["version"] == settings.app_version

    def test_health(self, client: TestClient):
        assert client.get("/health").json()["status"] == "healthy"
