"""監査ログ用のグローバル IP アドレス解決"""
from __future__ import annotations

from typing import Optional

import requests

from core.settings import settings
from features.totp.domain.exceptions import EnrichmentFailure


class PublicAddressResolver:
    """外部サービス (既定: ipify) に問い合わせて呼び出し元のアドレスを得る"""

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = url or settings.totp_audit_ip_lookup_url
        self.timeout = timeout if timeout is not None else settings.totp_audit_enrichment_timeout
        self._session = session

    def resolve(self) -> str:
        getter = self._session.get if self._session is not None else requests.get
        try:
            response = getter(self.url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise EnrichmentFailure(f"public address lookup failed: {exc}") from exc

        address = payload.get("ip") if isinstance(payload, dict) else None
        if not address:
            raise EnrichmentFailure("public address lookup returned no address")
        return str(address)
