"""Merchant credential resolution.

Credentials come from the environment (single merchant) or from a JSON file
holding a list of merchant objects:

    [{"CLOVER_MERCHANT_ID": "...", "CLOVER_MERCHANT_NAME": "...",
      "CLOVER_API_TOKEN": "..."}]

`CLOVER_ACTUAL_API_TOKEN` (a static token) is preferred over the OAuth
`CLOVER_API_TOKEN` when both are present.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

import structlog

from core.config import Settings

logger = structlog.get_logger()

_MIN_TOKEN_LENGTH = 10


@dataclass(frozen=True)
class MerchantCredentials:
    merchant_id: str
    api_token: str
    name: str = ""
    environment: str = ""


def _read_merchants_file(path: Path) -> list[dict]:
    if not path.exists():
        return []
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.warning("merchants.file_unparseable", path=str(path), error=str(exc))
        return []
    if not isinstance(payload, list):
        logger.warning("merchants.file_not_a_list", path=str(path))
        return []
    return [entry for entry in payload if isinstance(entry, dict)]


def _credentials_from_entry(entry: dict, settings: Settings) -> MerchantCredentials | None:
    merchant_id = str(entry.get("CLOVER_MERCHANT_ID") or "").strip()
    if not merchant_id:
        return None
    token = ""
    for key in ("CLOVER_ACTUAL_API_TOKEN", "CLOVER_API_TOKEN"):
        candidate = str(entry.get(key) or "")
        if len(candidate) > _MIN_TOKEN_LENGTH:
            token = candidate
            break
    return MerchantCredentials(
        merchant_id=merchant_id,
        api_token=token or settings.clover_api_token,
        name=str(entry.get("CLOVER_MERCHANT_NAME") or ""),
        environment=settings.clover_environment,
    )


def load_merchants(settings: Settings) -> list[MerchantCredentials]:
    """Every configured merchant: the env merchant first, then the file entries."""
    merchants: list[MerchantCredentials] = []
    if settings.clover_merchant_id:
        merchants.append(
            MerchantCredentials(
                merchant_id=settings.clover_merchant_id,
                api_token=settings.clover_api_token,
                name=settings.clover_merchant_name,
                environment=settings.clover_environment,
            )
        )

    seen = {m.merchant_id for m in merchants}
    for entry in _read_merchants_file(Path(settings.merchants_file)):
        creds = _credentials_from_entry(entry, settings)
        if creds is None or creds.merchant_id in seen:
            continue
        merchants.append(creds)
        seen.add(creds.merchant_id)
    return merchants


def resolve_merchant(settings: Settings, merchant_id: str | None = None) -> MerchantCredentials:
    """Pick one merchant by id, or the first configured one."""
    merchants = load_merchants(settings)
    if not merchants:
        raise ValueError("No merchant configured: set CLOVER_MERCHANT_ID or provide a merchants file")
    if merchant_id is None:
        return merchants[0]
    for merchant in merchants:
        if merchant.merchant_id == merchant_id:
            return merchant
    raise ValueError(f"Merchant not found: {merchant_id}")
