import logging
from dataclasses import dataclass
from typing import Optional

import requests

from app.config import Settings
from app.errors import UpstreamProviderFailure

logger = logging.getLogger(__name__)


@dataclass
class CheckoutSession:
    checkout_id: str
    checkout_url: str


class DodoClient:
    """Thin client for the Dodo Payments checkout API."""

    def __init__(
        self,
        api_base: str,
        api_key: str,
        business_id: str,
        site_url: str,
        timeout: int = 10,
    ):
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.business_id = business_id
        self.site_url = site_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "DodoClient":
        return cls(
            api_base=settings.DODO_API_BASE,
            api_key=settings.DODO_API_KEY,
            business_id=settings.DODO_BUSINESS_ID,
            site_url=settings.SITE_URL,
        )

    def create_checkout(
        self,
        product_external_id: str,
        referral_code: Optional[str] = None,
    ) -> CheckoutSession:
        if not self.api_key or not self.business_id:
            logger.error("Dodo API key or business id is not configured")
            raise UpstreamProviderFailure()

        payload = {
            "business_id": self.business_id,
            "product_id": product_external_id,
            "success_url": f"{self.site_url}/thank-you",
            "cancel_url": f"{self.site_url}/",
        }
        if referral_code:
            payload["metadata"] = {"referral_code": referral_code}

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = requests.post(
                f"{self.api_base}/checkouts",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException:
            logger.exception("Dodo checkout request failed")
            raise UpstreamProviderFailure()

        try:
            data = response.json()
        except ValueError:
            data = {}

        checkout_url = data.get("checkout_url")
        checkout_id = (
            data.get("session_id") or data.get("checkout_id") or data.get("id")
        )

        if response.status_code >= 400 or not checkout_url or not checkout_id:
            logger.error(
                f"Dodo API error ({response.status_code}): {response.text[:500]}"
            )
            raise UpstreamProviderFailure()

        logger.info(f"Created Dodo checkout {checkout_id}")
        return CheckoutSession(checkout_id=checkout_id, checkout_url=checkout_url)
