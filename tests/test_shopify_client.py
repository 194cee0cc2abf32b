"""
Unit tests for the Shopify client and the customer tagging side effects.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from newsletter_popup.services.shopify_client import NEWSLETTER_TAG, ShopifyAPIError, ShopifyClient
from newsletter_popup.services.subscription_service import tag_shopify_customer, untag_shopify_customer
from newsletter_popup.utils.encryption import encrypt_token

from conftest import SHOPIFY_URL

EMAIL = "jane@acme-labs.com"


@pytest.fixture
def shopify_http():
    """Replace the HTTP client used by ShopifyClient."""
    with patch("newsletter_popup.services.shopify_client.httpx.AsyncClient") as mock:
        http = AsyncMock()
        mock.return_value = http
        http.factory = mock
        yield http


def sent(http, index):
    return http.request.call_args_list[index].kwargs


async def tag(**kwargs):
    async with ShopifyClient("foxx-test", "shpat_plain_token") as client:
        return await client.tag_newsletter_subscriber(EMAIL, **kwargs)


async def untag():
    async with ShopifyClient(SHOPIFY_URL, "shpat_plain_token") as client:
        return await client.remove_newsletter_subscriber_tag(EMAIL)


class TestShopifyClientRequests:
    """Tests for request building and error mapping."""

    def test_admin_api_url_and_headers(self, shopify_http):
        shopify_http.request.return_value = httpx.Response(200, json={"shop": {"name": "Foxx"}})

        async def run():
            async with ShopifyClient("https://Foxx-Test.myshopify.com/", "shpat_plain_token") as client:
                return await client.get_shop()

        shop = asyncio.run(run())

        assert shop == {"name": "Foxx"}
        headers = shopify_http.factory.call_args.kwargs["headers"]
        assert headers["X-Shopify-Access-Token"] == "shpat_plain_token"
        assert sent(shopify_http, 0)["url"] == "https://foxx-test.myshopify.com/admin/api/2023-10/shop.json"
        shopify_http.aclose.assert_awaited_once()

    @pytest.mark.parametrize(
        "outcome,status_code",
        [
            (httpx.Response(429, headers={"Retry-After": "4"}), 429),
            (httpx.Response(422, json={"errors": {"email": ["is invalid"]}}), 422),
            (httpx.ConnectTimeout("timed out"), 504),
            (httpx.ConnectError("refused"), 503),
        ],
    )
    def test_errors_become_api_errors(self, shopify_http, outcome, status_code):
        if isinstance(outcome, Exception):
            shopify_http.request.side_effect = outcome
        else:
            shopify_http.request.return_value = outcome

        with pytest.raises(ShopifyAPIError) as exc_info:
            asyncio.run(tag())

        assert exc_info.value.status_code == status_code

    def test_missing_discount_code(self, shopify_http):
        shopify_http.request.return_value = httpx.Response(404, json={"errors": "Not Found"})

        async def run():
            async with ShopifyClient(SHOPIFY_URL, "shpat_plain_token") as client:
                return await client.lookup_discount_code("NOPE")

        assert asyncio.run(run()) is None


class TestNewsletterTagging:
    """Tests for tagging and untagging customers."""

    def test_new_customer_created_with_tag(self, shopify_http):
        shopify_http.request.side_effect = [
            httpx.Response(200, json={"customers": []}),
            httpx.Response(201, json={"customer": {"id": 9, "tags": NEWSLETTER_TAG}}),
        ]

        customer = asyncio.run(tag(first_name="Jane", last_name="Doe", company="Acme Labs"))

        assert customer["id"] == 9
        search = sent(shopify_http, 0)
        assert search["method"] == "GET"
        assert search["params"] == {"query": f"email:{EMAIL}"}
        create = sent(shopify_http, 1)
        assert create["method"] == "POST"
        assert create["url"].endswith("/customers.json")
        body = create["json"]["customer"]
        assert body["email"] == EMAIL
        assert body["tags"] == NEWSLETTER_TAG
        assert body["first_name"] == "Jane"
        assert body["note"] == "Company: Acme Labs"
        assert body["send_email_welcome"] is False

    def test_existing_customer_gets_tag_appended(self, shopify_http):
        shopify_http.request.side_effect = [
            httpx.Response(200, json={"customers": [{"id": 5, "tags": "vip, wholesale", "note": "Net 30"}]}),
            httpx.Response(200, json={"customer": {"id": 5}}),
        ]

        asyncio.run(tag(company="Acme Labs"))

        update = sent(shopify_http, 1)
        assert update["method"] == "PUT"
        assert update["url"].endswith("/customers/5.json")
        assert update["json"]["customer"]["tags"] == f"vip, wholesale, {NEWSLETTER_TAG}"
        assert update["json"]["customer"]["note"] == "Company: Acme Labs\nNet 30"

    def test_existing_tag_not_duplicated(self, shopify_http):
        shopify_http.request.side_effect = [
            httpx.Response(200, json={"customers": [{"id": 5, "tags": f"vip, {NEWSLETTER_TAG}"}]}),
            httpx.Response(200, json={"customer": {"id": 5}}),
        ]

        asyncio.run(tag())

        assert sent(shopify_http, 1)["json"]["customer"]["tags"] == f"vip, {NEWSLETTER_TAG}"

    def test_remove_tag(self, shopify_http):
        shopify_http.request.side_effect = [
            httpx.Response(200, json={"customers": [{"id": 5, "tags": f"vip, {NEWSLETTER_TAG}"}]}),
            httpx.Response(200, json={"customer": {"id": 5}}),
        ]

        assert asyncio.run(untag()) is True
        assert sent(shopify_http, 1)["json"]["customer"] == {"id": 5, "tags": "vip"}

    def test_remove_tag_unknown_customer(self, shopify_http):
        shopify_http.request.return_value = httpx.Response(200, json={"customers": []})

        assert asyncio.run(untag()) is False
        assert shopify_http.request.await_count == 1


class TestTaggingSideEffects:
    """Tests for the background tasks wrapping the client."""

    def test_decrypts_token_and_splits_name(self):
        with patch("newsletter_popup.services.subscription_service.ShopifyClient") as mock:
            client = AsyncMock()
            mock.return_value.__aenter__.return_value = client

            asyncio.run(tag_shopify_customer(
                SHOPIFY_URL,
                encrypt_token("shpat_plain_token"),
                EMAIL,
                {"name": "Jane Van Doe", "phone": "+15550100", "company": None},
            ))

        mock.assert_called_once_with(SHOPIFY_URL, "shpat_plain_token")
        client.tag_newsletter_subscriber.assert_awaited_once_with(
            EMAIL,
            first_name="Jane",
            last_name="Van Doe",
            phone="+15550100",
            company=None,
        )

    @pytest.mark.parametrize("error", [ShopifyAPIError("Forbidden", 403), RuntimeError("unexpected")])
    def test_tagging_failures_are_swallowed(self, error):
        with patch("newsletter_popup.services.subscription_service.ShopifyClient") as mock:
            client = AsyncMock()
            client.tag_newsletter_subscriber.side_effect = error
            mock.return_value.__aenter__.return_value = client

            asyncio.run(tag_shopify_customer(SHOPIFY_URL, encrypt_token("shpat_plain_token"), EMAIL, {}))

        client.tag_newsletter_subscriber.assert_awaited_once()

    def test_undecryptable_token_is_swallowed(self):
        with patch("newsletter_popup.services.subscription_service.ShopifyClient") as mock:
            asyncio.run(tag_shopify_customer(SHOPIFY_URL, "not-encrypted", EMAIL, {}))
        mock.assert_not_called()

    def test_untag_failure_is_swallowed(self):
        with patch("newsletter_popup.services.subscription_service.ShopifyClient") as mock:
            client = AsyncMock()
            client.remove_newsletter_subscriber_tag.side_effect = ShopifyAPIError("Service unavailable", 503)
            mock.return_value.__aenter__.return_value = client

            asyncio.run(untag_shopify_customer(SHOPIFY_URL, encrypt_token("shpat_plain_token"), EMAIL))

        client.remove_newsletter_subscriber_tag.assert_awaited_once_with(EMAIL)
