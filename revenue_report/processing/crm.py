"""Minimal CRM client used to look up deal values for status enrichment."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests

from revenue_report.core.settings import ensure_env_loaded
from revenue_report.core.utils import get_config_value, to_number

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


@dataclass
class Deal:
    id: str
    value: Optional[float] = None
    currency: str = "PLN"
    title: Optional[str] = None
    status: Optional[str] = None


class CrmClient(Protocol):
    def get_deal(self, deal_id: str) -> Optional[Deal]: ...


class HttpCrmClient:
    """Fetch deals from the CRM REST API.

    HTTP errors propagate to the caller; an envelope without ``success``
    yields ``None``.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> Optional["HttpCrmClient"]:
        ensure_env_loaded()
        base_url = get_config_value("CRM_API_URL")
        api_token = get_config_value("CRM_API_TOKEN")
        if not base_url or not api_token:
            logger.info("CRM_API_URL or CRM_API_TOKEN not set; deal value lookups disabled")
            return None
        return cls(base_url, api_token)

    def get_deal(self, deal_id: str) -> Optional[Deal]:
        response = self.session.get(
            f"{self.base_url}/deals/{deal_id}",
            params={"api_token": self.api_token},
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload: Any = response.json()
        if not isinstance(payload, dict) or not payload.get("success") or not payload.get("data"):
            logger.warning("CRM returned no deal for id %s", deal_id)
            return None
        data = payload["data"]
        return Deal(
            id=str(data.get("id", deal_id)),
            value=to_number(data.get("value")),
            currency=(data.get("currency") or "PLN").upper(),
            title=data.get("title"),
            status=data.get("status"),
        )
