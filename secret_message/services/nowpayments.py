# -*- coding: utf-8 -*-
"""
NOWPayments payout client.

Thin pass-through used by the admin crypto payout endpoints: create, verify
and query payouts, and read the custodial balance. Any non-2xx answer or
transport failure is raised as UpstreamError.
"""
import os
from typing import Any, Dict, Optional

import requests

from secret_message.errors import UpstreamError
from secret_message.infra.log import get_logger

logger = get_logger(__name__)

NOWPAYMENTS_API_URL = "https://api.nowpayments.io/v1"


class NowPaymentsClient:
    def __init__(self, api_key: Optional[str] = None, base_url: str = NOWPAYMENTS_API_URL,
                 timeout: int = 15):
        self.api_key = api_key or os.getenv("NOWPAYMENTS_API_KEY", "").strip()
        if not self.api_key:
            raise UpstreamError("NOWPayments API key is not configured", status_code=503)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {"x-api-key": self.api_key}
        if payload is not None:
            headers["Content-Type"] = "application/json"

        try:
            resp = requests.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("NOWPayments request failed", path=path, error=str(e))
            raise UpstreamError(f"NOWPayments request failed: {e}") from e

        if not resp.ok:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            logger.error("NOWPayments API error", path=path, status_code=resp.status_code)
            raise UpstreamError(
                f"NOWPayments API error: {resp.status_code}",
                details={"provider_status": resp.status_code, "provider_body": body},
            )

        if not resp.content:
            return {}
        return resp.json()

    def create_payout(self, address: str, currency: str, amount, ipn_callback_url: str = None,
                      extra_id: str = None) -> Dict[str, Any]:
        payload = {"address": address, "currency": currency, "amount": float(amount)}
        if ipn_callback_url:
            payload["ipn_callback_url"] = ipn_callback_url
        if extra_id:
            payload["extra_id"] = extra_id

        logger.info("Creating NOWPayments payout", currency=currency, amount=str(amount))
        return self._request("POST", "/payout", payload)

    def verify_payout(self, payout_id: str, verification_code: str) -> Dict[str, Any]:
        logger.info("Verifying NOWPayments payout", payout_id=payout_id)
        self._request("POST", "/payout/verify", {"id": payout_id, "verification_code": verification_code})
        return {"id": payout_id, "verified": True}

    def get_payout_status(self, payout_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/payout/{payout_id}")

    def get_balance(self) -> Dict[str, Any]:
        return self._request("GET", "/balance")
