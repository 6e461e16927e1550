"""Runtime settings for report generation, read from secrets or the environment."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from revenue_report.core.utils import get_config_value, load_env_file, to_number

DEFAULT_ENV_FILE = Path("secrets/report.env")
DEFAULT_AMOUNT_TOLERANCE = 5.0
DEFAULT_REFUNDS_PATTERN = r"refund|zwrot|возврат"
DEFAULT_REFUND_REASONS = ("deal_lost", "stripe_refund")
STATUS_SCOPES = ("approved", "all")
_ENV_LOADED = False


def ensure_env_loaded() -> None:
    """Populate settings from the local env file once per process."""

    global _ENV_LOADED
    if _ENV_LOADED:
        return
    _ENV_LOADED = True
    load_env_file(Path(os.getenv("REVENUE_REPORT_ENV_FILE", DEFAULT_ENV_FILE)))


@dataclass(frozen=True)
class ReportSettings:
    base_currency: str = "PLN"
    # Absolute band; whether it should scale with invoice size is still open.
    amount_tolerance: float = DEFAULT_AMOUNT_TOLERANCE
    default_status_scope: str = "approved"
    crm_deal_base_url: str = ""
    refunds_category_pattern: str = DEFAULT_REFUNDS_PATTERN
    gateway_refund_reasons: Tuple[str, ...] = field(default=DEFAULT_REFUND_REASONS)

    @classmethod
    def from_env(cls) -> "ReportSettings":
        ensure_env_loaded()
        tolerance = to_number(get_config_value("REPORT_AMOUNT_TOLERANCE"))
        scope = get_config_value("REPORT_DEFAULT_STATUS", "approved").strip().lower()
        reasons = tuple(
            reason.strip()
            for reason in get_config_value("GATEWAY_REFUND_REASONS", ",".join(DEFAULT_REFUND_REASONS)).split(",")
            if reason.strip()
        )
        return cls(
            base_currency=(get_config_value("REPORT_BASE_CURRENCY", "PLN") or "PLN").upper(),
            amount_tolerance=tolerance if tolerance is not None and tolerance >= 0 else DEFAULT_AMOUNT_TOLERANCE,
            default_status_scope=scope if scope in STATUS_SCOPES else "approved",
            crm_deal_base_url=get_config_value("CRM_DEAL_BASE_URL", ""),
            refunds_category_pattern=get_config_value("REFUNDS_CATEGORY_PATTERN", DEFAULT_REFUNDS_PATTERN),
            gateway_refund_reasons=reasons or DEFAULT_REFUND_REASONS,
        )

    def is_refunds_category(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return re.search(self.refunds_category_pattern, name, re.IGNORECASE) is not None
