"""
Tests for the public endpoints used by the popup runtime.
"""

import asyncio
import time
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from newsletter_popup.middleware.rate_limit import RateLimitMiddleware, _fallback_requests
from newsletter_popup.services.shopify_client import NEWSLETTER_TAG, ShopifyAPIError
from newsletter_popup.services.subscription_service import send_subscription_emails

from conftest import SHOPIFY_URL

STORE_ORIGIN = "https://foxx-test.myshopify.com"
FOREIGN_ORIGIN = "https://copycat.example.net"


def subscribe(client, store_id, email="jane@acme-labs.com", origin=STORE_ORIGIN, **fields):
    body = {"email": email, "sessionId": "session_1_abc"}
    body.update(fields)
    headers = {"Origin": origin} if origin else {}
    return client.post(f"/api/subscribe/{store_id}", json=body, headers=headers)


def connect(client, admin_headers, store):
    response = client.post(
        f"/api/stores/{store['id']}/shopify/connect",
        json={"accessToken": "shpat_test_token_1234"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def quiet_side_effects():
    """Replace the subscription side effects with mocks."""
    with patch("newsletter_popup.routes.public.send_subscription_emails", new_callable=AsyncMock) as emails, \
            patch("newsletter_popup.routes.public.tag_shopify_customer", new_callable=AsyncMock) as tagging:
        yield {"emails": emails, "tagging": tagging}


class TestRuntimeScript:
    """Tests for GET /js/newsletter-popup.js."""

    def test_serves_javascript(self, client):
        response = client.get("/js/newsletter-popup.js")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/javascript")
        assert response.headers["cache-control"] == "public, max-age=30"
        assert 'var API_BASE = "http://testserver";' in response.text

    def test_query_string_ignored(self, client):
        """Cache-busting parameters from the snippet are accepted."""
        response = client.get("/js/newsletter-popup.js?v=2026-01-02T03:04:05.678Z&id=abc_1_xyz12")
        assert response.status_code == 200

    def test_malformed_forwarded_host(self, client):
        response = client.get("/js/newsletter-popup.js", headers={"X-Forwarded-Host": "evil'host"})

        assert response.status_code == 400
        assert response.headers["access-control-allow-origin"] == "*"


class TestPopupConfig:
    """Tests for GET /api/popup-config/{store_id}."""

    def test_config_without_origin(self, client, create_store):
        store = create_store()
        response = client.get(f"/api/popup-config/{store['id']}")

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        data = response.json()
        assert data["storeId"] == store["id"]
        assert data["discountCode"] == "WELCOME15"
        assert data["discountPercentage"] == 15
        assert data["displayTrigger"] == "immediate"
        assert data["fields"]["email"] is True
        assert data["emailValidation"]["companyEmailsOnly"] is True
        assert data["isActive"] is True
        assert data["isVerified"] is False
        assert data["hasActiveScript"] is False

    def test_config_excludes_internal_fields(self, client, create_store):
        store = create_store()
        data = client.get(f"/api/popup-config/{store['id']}").json()

        assert "id" not in data
        assert "shopifyAccessToken" not in data
        assert "userId" not in data

    def test_matching_origin_is_echoed(self, client, create_store):
        store = create_store()
        response = client.get(f"/api/popup-config/{store['id']}", headers={"Origin": STORE_ORIGIN})

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == STORE_ORIGIN

    def test_referer_used_without_origin(self, client, create_store):
        store = create_store(customDomain="shop.foxx-example.com")
        response = client.get(
            f"/api/popup-config/{store['id']}",
            headers={"Referer": "https://www.shop.foxx-example.com/products/flask?variant=2"},
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://www.shop.foxx-example.com"

    def test_foreign_origin_rejected(self, client, create_store):
        store = create_store()
        response = client.get(f"/api/popup-config/{store['id']}", headers={"Origin": FOREIGN_ORIGIN})
        assert response.status_code == 403

    def test_unknown_store(self, client):
        response = client.get("/api/popup-config/unknown-store")
        assert response.status_code == 404

    def test_reflects_installation_state(self, client, admin_headers, create_store):
        store = create_store()
        client.get(f"/api/stores/{store['id']}/integration-script", headers=admin_headers)

        data = client.get(f"/api/popup-config/{store['id']}").json()

        assert data["hasActiveScript"] is True
        assert data["isVerified"] is False


class TestSubscribe:
    """Tests for POST /api/subscribe/{store_id}."""

    def test_preflight(self, client, create_store):
        store = create_store()
        response = client.options(
            f"/api/subscribe/{store['id']}",
            headers={"Origin": STORE_ORIGIN, "Access-Control-Request-Method": "POST"},
        )

        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == STORE_ORIGIN
        assert "POST" in response.headers["access-control-allow-methods"]
        assert "Content-Type" in response.headers["access-control-allow-headers"]

    def test_preflight_foreign_origin(self, client, create_store):
        store = create_store()
        response = client.options(f"/api/subscribe/{store['id']}", headers={"Origin": FOREIGN_ORIGIN})
        assert response.status_code == 403

    def test_successful_subscription(self, client, admin_headers, create_store, quiet_side_effects):
        store = create_store()
        response = subscribe(client, store["id"], name="Jane Doe", company="Acme Labs")

        assert response.status_code == 200
        data = response.json()
        assert data["discountCode"] == "WELCOME15"
        assert data["discountPercentage"] == 15
        assert data["reactivated"] is False
        assert response.headers["access-control-allow-origin"] == STORE_ORIGIN

        subscribers = client.get(f"/api/stores/{store['id']}/subscribers", headers=admin_headers).json()
        assert len(subscribers) == 1
        assert subscribers[0]["email"] == "jane@acme-labs.com"
        assert subscribers[0]["company"] == "Acme Labs"
        assert subscribers[0]["sessionId"] == "session_1_abc"
        assert subscribers[0]["discountCodeSent"] == "WELCOME15"

    def test_side_effects_scheduled(self, client, create_store, quiet_side_effects):
        store = create_store()
        subscribe(client, store["id"])

        quiet_side_effects["emails"].assert_awaited_once()
        args = quiet_side_effects["emails"].await_args.args
        assert args[1] == "jane@acme-labs.com"
        assert args[2] == "WELCOME15"
        # Not connected to Shopify
        quiet_side_effects["tagging"].assert_not_awaited()

    def test_connected_store_tags_customer(self, client, admin_headers, create_store, mock_shopify_client, quiet_side_effects):
        store = create_store()
        client.post(
            f"/api/stores/{store['id']}/shopify/connect",
            json={"accessToken": "shpat_test_token_1234"},
            headers=admin_headers,
        )

        subscribe(client, store["id"])

        quiet_side_effects["tagging"].assert_awaited_once()
        assert quiet_side_effects["tagging"].await_args.args[2] == "jane@acme-labs.com"

    def test_side_effect_failure_does_not_fail_signup(self, client, create_store):
        store = create_store()
        with patch(
            "newsletter_popup.services.subscription_service.EmailNotifier.send_welcome_email",
            new_callable=AsyncMock,
            side_effect=RuntimeError("smtp down"),
        ):
            response = subscribe(client, store["id"])

        assert response.status_code == 200

    def test_admin_notified_when_welcome_email_fails(self):
        with patch(
            "newsletter_popup.services.subscription_service.EmailNotifier.send_welcome_email",
            new_callable=AsyncMock,
            side_effect=RuntimeError("smtp down"),
        ), patch(
            "newsletter_popup.services.subscription_service.EmailNotifier.send_admin_notification",
            new_callable=AsyncMock,
        ) as admin:
            asyncio.run(send_subscription_emails("Foxx", "jane@acme-labs.com", "WELCOME15", 15, {"name": "Jane"}))

        admin.assert_awaited_once_with("Foxx", "jane@acme-labs.com", {"name": "Jane"})

    @pytest.mark.parametrize("error", [ShopifyAPIError("Forbidden", 403), RuntimeError("unexpected")])
    def test_tagging_failure_does_not_fail_signup(self, client, admin_headers, create_store, mock_shopify_client, error):
        store = create_store()
        connect(client, admin_headers, store)

        with patch("newsletter_popup.routes.public.send_subscription_emails", new_callable=AsyncMock), \
                patch("newsletter_popup.services.subscription_service.ShopifyClient") as tagging_client:
            shopify = AsyncMock()
            shopify.tag_newsletter_subscriber.side_effect = error
            tagging_client.return_value.__aenter__.return_value = shopify

            response = subscribe(client, store["id"], name="Jane Doe")

        assert response.status_code == 200
        tagging_client.assert_called_once_with(SHOPIFY_URL, "shpat_test_token_1234")
        shopify.tag_newsletter_subscriber.assert_awaited_once()

    def test_connected_store_creates_tagged_customer(self, client, admin_headers, create_store, mock_shopify_client):
        store = create_store()
        connect(client, admin_headers, store)

        with patch("newsletter_popup.routes.public.send_subscription_emails", new_callable=AsyncMock), \
                patch("newsletter_popup.services.shopify_client.httpx.AsyncClient") as http_factory:
            http = AsyncMock()
            http.request.side_effect = [
                httpx.Response(200, json={"customers": []}),
                httpx.Response(201, json={"customer": {"id": 9}}),
            ]
            http_factory.return_value = http

            response = subscribe(client, store["id"], name="Jane Doe", company="Acme Labs")

        assert response.status_code == 200
        assert http_factory.call_args.kwargs["headers"]["X-Shopify-Access-Token"] == "shpat_test_token_1234"
        created = http.request.call_args_list[1].kwargs
        assert created["method"] == "POST"
        assert created["json"]["customer"]["tags"] == NEWSLETTER_TAG
        assert created["json"]["customer"]["last_name"] == "Doe"

    def test_temporary_email_rejected(self, client, admin_headers, create_store, quiet_side_effects):
        store = create_store()
        response = subscribe(client, store["id"], email="user@mailinator.com")

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert "Temporary email" in detail["message"]
        assert detail["field"] == "email"
        assert response.headers["access-control-allow-origin"] == STORE_ORIGIN

        subscribers = client.get(f"/api/stores/{store['id']}/subscribers", headers=admin_headers).json()
        assert subscribers == []
        quiet_side_effects["emails"].assert_not_awaited()

    def test_temporary_subdomain_rejected(self, client, create_store, quiet_side_effects):
        store = create_store()
        response = subscribe(client, store["id"], email="user@inbox.guerrillamail.com")
        assert response.status_code == 400

    def test_missing_email(self, client, create_store, quiet_side_effects):
        store = create_store()
        response = client.post(
            f"/api/subscribe/{store['id']}",
            json={"name": "No Email"},
            headers={"Origin": STORE_ORIGIN},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == {"message": "Email is required", "field": "email"}

    def test_invalid_format(self, client, create_store, quiet_side_effects):
        store = create_store()
        response = subscribe(client, store["id"], email="not-an-email")
        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Please enter a valid email address."

    def test_free_mail_blocked_for_company_only(self, client, create_store, quiet_side_effects):
        store = create_store()
        response = subscribe(client, store["id"], email="jane@gmail.com")

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Please use your company email address."

    def test_allowed_domains_enforced(self, client, admin_headers, create_store, quiet_side_effects):
        store = create_store()
        client.put(
            f"/api/stores/{store['id']}/popup",
            json={"emailValidation": {"companyEmailsOnly": True, "allowedDomains": ["foxxlifesciences.com"]}},
            headers=admin_headers,
        )

        rejected = subscribe(client, store["id"], email="jane@acme-labs.com")
        accepted = subscribe(client, store["id"], email="jane@FoxxLifeSciences.com")

        assert rejected.status_code == 400
        assert rejected.json()["detail"]["message"] == "Please use an approved company email domain."
        assert accepted.status_code == 200

    def test_free_mail_allowed_when_rule_disabled(self, client, admin_headers, create_store, quiet_side_effects):
        store = create_store()
        client.put(
            f"/api/stores/{store['id']}/popup",
            json={"emailValidation": {"companyEmailsOnly": False}},
            headers=admin_headers,
        )

        response = subscribe(client, store["id"], email="jane@gmail.com")

        assert response.status_code == 200

    def test_duplicate_rejected(self, client, create_store, quiet_side_effects):
        store = create_store()
        assert subscribe(client, store["id"]).status_code == 200

        response = subscribe(client, store["id"], email="Jane@Acme-Labs.com")

        assert response.status_code == 400
        assert "already subscribed" in response.json()["detail"]["message"]

    def test_resubscribe_after_unsubscribe(self, client, admin_headers, create_store, quiet_side_effects):
        store = create_store()
        subscribe(client, store["id"])
        subscriber = client.get(f"/api/stores/{store['id']}/subscribers", headers=admin_headers).json()[0]

        removed = client.delete(
            f"/api/stores/{store['id']}/subscribers/{subscriber['id']}",
            headers=admin_headers,
        )
        assert removed.status_code == 200
        assert removed.json()["unsubscribedAt"] is not None
        assert removed.json()["isActive"] is False

        response = subscribe(client, store["id"])

        assert response.status_code == 200
        assert response.json()["reactivated"] is True
        subscribers = client.get(f"/api/stores/{store['id']}/subscribers", headers=admin_headers).json()
        assert len(subscribers) == 1
        assert subscribers[0]["id"] == subscriber["id"]
        assert subscribers[0]["unsubscribedAt"] is None
        assert subscribers[0]["isActive"] is True

    def test_foreign_origin_rejected(self, client, admin_headers, create_store, quiet_side_effects):
        store = create_store()
        response = subscribe(client, store["id"], origin=FOREIGN_ORIGIN)

        assert response.status_code == 403
        assert client.get(f"/api/stores/{store['id']}/subscribers", headers=admin_headers).json() == []

    def test_unknown_store(self, client, quiet_side_effects):
        response = subscribe(client, "unknown-store")
        assert response.status_code == 404

    def test_rate_limit_headers(self, client, create_store, quiet_side_effects):
        store = create_store()
        response = subscribe(client, store["id"])
        assert response.headers["X-RateLimit-Limit"] == "60"


class TestCheckSubscription:
    """Tests for GET /api/stores/{store_id}/check-subscription/{email}."""

    def url(self, store_id, email):
        return f"/api/stores/{store_id}/check-subscription/{email}"

    def test_active_subscriber(self, client, create_store, quiet_side_effects):
        store = create_store()
        subscribe(client, store["id"])

        response = client.get(self.url(store["id"], "jane@acme-labs.com"))

        assert response.status_code == 200
        assert response.json() == {"isSubscribed": True}
        assert response.headers["access-control-allow-origin"] == "*"

    def test_unknown_email(self, client, create_store):
        store = create_store()
        assert client.get(self.url(store["id"], "nobody@acme-labs.com")).json() == {"isSubscribed": False}

    def test_unsubscribed_email(self, client, admin_headers, create_store, quiet_side_effects):
        store = create_store()
        subscribe(client, store["id"])
        subscriber = client.get(f"/api/stores/{store['id']}/subscribers", headers=admin_headers).json()[0]
        client.delete(f"/api/stores/{store['id']}/subscribers/{subscriber['id']}", headers=admin_headers)

        assert client.get(self.url(store["id"], "jane@acme-labs.com")).json() == {"isSubscribed": False}

    def test_internal_error_answers_false(self, client, create_store):
        store = create_store()
        with patch(
            "newsletter_popup.routes.public.SubscriptionService.is_subscribed",
            new_callable=AsyncMock,
            side_effect=RuntimeError("database unavailable"),
        ):
            response = client.get(self.url(store["id"], "jane@acme-labs.com"))

        assert response.status_code == 200
        assert response.json() == {"isSubscribed": False}

    def test_store_origin_is_echoed(self, client, create_store, quiet_side_effects):
        store = create_store()
        subscribe(client, store["id"])

        response = client.get(self.url(store["id"], "jane@acme-labs.com"), headers={"Origin": STORE_ORIGIN})

        assert response.json() == {"isSubscribed": True}
        assert response.headers["access-control-allow-origin"] == STORE_ORIGIN

    def test_foreign_origin_rejected(self, client, create_store, quiet_side_effects):
        store = create_store()
        subscribe(client, store["id"])

        response = client.get(self.url(store["id"], "jane@acme-labs.com"), headers={"Origin": FOREIGN_ORIGIN})

        assert response.status_code == 403
        assert "isSubscribed" not in response.json()

    def test_unknown_store(self, client):
        response = client.get(self.url("unknown-store", "jane@acme-labs.com"))
        assert response.status_code == 404


class TestFallbackRateLimit:
    """Tests for the in-memory rate limit window."""

    def test_expired_clients_are_forgotten(self):
        limiter = RateLimitMiddleware(app=None, requests_per_minute=5)
        _fallback_requests["203.0.113.7"] = [time.time() - 120]

        limited, remaining = limiter._check_memory_limit("198.51.100.2")

        assert limited is False
        assert remaining == 4
        assert "203.0.113.7" not in _fallback_requests
        assert len(_fallback_requests["198.51.100.2"]) == 1

    def test_limit_reached(self):
        limiter = RateLimitMiddleware(app=None, requests_per_minute=2)
        results = [limiter._check_memory_limit("198.51.100.2") for _ in range(3)]
        assert [limited for limited, _ in results] == [False, False, True]


def test_store_url_constant_matches_origin():
    assert SHOPIFY_URL == STORE_ORIGIN
