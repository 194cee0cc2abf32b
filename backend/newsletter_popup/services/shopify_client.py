"""
Shopify API Client
Handles Admin API calls for credential checks, discount lookups and
newsletter customer tagging
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from newsletter_popup.config import settings

logger = logging.getLogger(__name__)

NEWSLETTER_TAG = "newsletter-subscriber"


class ShopifyAPIError(Exception):
    """Error from Shopify API."""

    def __init__(self, message: str, status_code: int = None, response: dict = None):
        self.message = message
        self.status_code = status_code
        self.response = response or {}
        super().__init__(message)


def normalize_shop_host(shop_url: str) -> str:
    """
    Reduce a shop URL to its Admin API host.

    "my-shop" and "https://my-shop.myshopify.com/" both become
    "my-shop.myshopify.com".
    """
    host = shop_url.strip()
    for prefix in ("https://", "http://"):
        if host.startswith(prefix):
            host = host[len(prefix):]
    host = host.split("/")[0]
    if "." not in host:
        host = f"{host}.myshopify.com"
    return host.lower()


def _split_tags(tags: Optional[str]) -> List[str]:
    return [tag.strip() for tag in (tags or "").split(",") if tag.strip()]


class ShopifyClient:
    """
    Client for Shopify Admin REST API interactions.

    API URL format: https://{shop}.myshopify.com/admin/api/{version}/{endpoint}
    """

    def __init__(self, shop_url: str, access_token: str):
        """
        Initialize Shopify client.

        Args:
            shop_url: Shop URL or myshopify subdomain
            access_token: Admin API access token (plain text)
        """
        self.shop_host = normalize_shop_host(shop_url)
        self.access_token = access_token
        self.base_url = f"https://{self.shop_host}/admin/api/{settings.shopify_api_version}"
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            headers=self._get_headers(),
            timeout=30.0,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_headers(self) -> Dict[str, str]:
        """Get default request headers."""
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict[str, Any]:
        """
        Make an authenticated request to the Shopify Admin API.

        Args:
            method: HTTP method
            endpoint: API endpoint path, e.g. "shop.json"
            json: JSON body data
            params: Query parameters

        Returns:
            Response JSON data

        Raises:
            ShopifyAPIError: On API error
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        if self._client is None:
            raise RuntimeError("Client not initialized. Use async context manager.")

        try:
            response = await self._client.request(
                method=method,
                url=url,
                json=json,
                params=params,
            )

            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After", "2")
                raise ShopifyAPIError(
                    f"Rate limited. Retry after {retry_after}s",
                    status_code=429,
                )

            if response.status_code >= 400:
                error_data = {}
                try:
                    error_data = response.json()
                except ValueError:
                    pass
                raise ShopifyAPIError(
                    message=str(error_data.get("errors", f"API error: {response.status_code}")),
                    status_code=response.status_code,
                    response=error_data,
                )

            if response.status_code == 204 or not response.content:
                return {}

            return response.json()

        except httpx.TimeoutException:
            raise ShopifyAPIError("Request timeout", status_code=504)
        except httpx.RequestError as e:
            raise ShopifyAPIError(f"Request failed: {str(e)}", status_code=503)

    # ============== Shop ==============

    async def get_shop(self) -> Dict[str, Any]:
        """Get shop information."""
        response = await self._request("GET", "shop.json")
        return response.get("shop", {})

    async def verify_connection(self) -> bool:
        """Check that the access token works for this shop."""
        try:
            await self.get_shop()
            return True
        except ShopifyAPIError as e:
            logger.warning(f"Shopify connection check failed for {self.shop_host}: {e.message}")
            return False

    # ============== Discounts ==============

    async def lookup_discount_code(self, code: str) -> Optional[Dict[str, Any]]:
        """
        Find a discount code by its code string.

        Returns:
            Discount code data, or None if the code does not exist
        """
        try:
            response = await self._request("GET", "discount_codes/lookup.json", params={"code": code})
        except ShopifyAPIError as e:
            if e.status_code == 404:
                return None
            raise
        return response.get("discount_code") or None

    # ============== Customers ==============

    async def get_customer_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Search for a customer by email address."""
        response = await self._request(
            "GET",
            "customers/search.json",
            params={"query": f"email:{email}"},
        )
        customers = response.get("customers", [])
        return customers[0] if customers else None

    async def tag_newsletter_subscriber(
        self,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
        company: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Tag a customer as a newsletter subscriber, creating the customer
        when they do not exist yet.

        Returns:
            Customer data returned by Shopify
        """
        customer = await self.get_customer_by_email(email)

        if customer:
            tags = _split_tags(customer.get("tags"))
            if NEWSLETTER_TAG not in tags:
                tags.append(NEWSLETTER_TAG)
            update: Dict[str, Any] = {"id": customer["id"], "tags": ", ".join(tags)}
            if first_name:
                update["first_name"] = first_name
            if last_name:
                update["last_name"] = last_name
            if phone:
                update["phone"] = phone
            if company:
                note = customer.get("note")
                update["note"] = f"Company: {company}" + (f"\n{note}" if note else "")

            response = await self._request(
                "PUT",
                f"customers/{customer['id']}.json",
                json={"customer": update},
            )
            logger.info(f"Tagged existing Shopify customer {customer['id']} as {NEWSLETTER_TAG}")
            return response.get("customer", update)

        response = await self._request(
            "POST",
            "customers.json",
            json={
                "customer": {
                    "email": email,
                    "first_name": first_name or "",
                    "last_name": last_name or "",
                    "phone": phone or "",
                    "tags": NEWSLETTER_TAG,
                    "note": f"Company: {company}" if company else "",
                    "verified_email": True,
                    "send_email_welcome": False,
                }
            },
        )
        logger.info(f"Created Shopify customer for newsletter subscriber on {self.shop_host}")
        return response.get("customer", {})

    async def remove_newsletter_subscriber_tag(self, email: str) -> bool:
        """
        Remove the newsletter tag from a customer.

        Returns:
            True if a customer was found and updated
        """
        customer = await self.get_customer_by_email(email)
        if not customer:
            return False

        tags = [tag for tag in _split_tags(customer.get("tags")) if tag != NEWSLETTER_TAG]
        await self._request(
            "PUT",
            f"customers/{customer['id']}.json",
            json={"customer": {"id": customer["id"], "tags": ", ".join(tags)}},
        )
        logger.info(f"Removed {NEWSLETTER_TAG} tag from Shopify customer {customer['id']}")
        return True
