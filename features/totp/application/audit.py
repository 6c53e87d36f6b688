"""コード閲覧・コピーの監査ログ記録

記録はバックグラウンドのワーカーで行い、呼び出し元 (コードの表示・コピー) を
待たせない。付加情報の取得に失敗した項目は ``None`` とし、書き込み自体の失敗は
運用ログへ出力するだけで呼び出し元には伝えない。
"""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Optional

from core.logging_config import log_error
from core.settings import settings
from core.time import utc_now
from features.totp.application.interfaces import AccessLogStore, AddressResolver
from features.totp.domain.audit_context import build_location_hint, classify_device, generalize_address
from features.totp.domain.entities import AccessLogEntry, AccessType

logger = logging.getLogger(__name__)


class AccessAuditLogger:
    def __init__(
        self,
        repository: AccessLogStore | None = None,
        address_resolver: AddressResolver | None = None,
        *,
        executor: ThreadPoolExecutor | None = None,
        max_workers: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        if repository is None:
            from features.totp.infrastructure.repositories import TOTPAccessLogRepository

            repository = TOTPAccessLogRepository()
        if address_resolver is None and settings.totp_audit_ip_lookup_enabled:
            from features.totp.infrastructure.network import PublicAddressResolver

            address_resolver = PublicAddressResolver()
        self.repository = repository
        self.address_resolver = address_resolver
        self._clock = clock or utc_now
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers or settings.totp_audit_max_workers,
            thread_name_prefix="totp-audit",
        )

    def record(
        self,
        credential_id: int,
        owner_id: int,
        access_type: AccessType | str,
        user_agent: Optional[str] = None,
    ) -> Optional[Future]:
        """監査ログの書き込みを予約して即座に戻る"""

        try:
            access_type = AccessType(access_type)
        except ValueError:
            logger.warning(
                "Unknown TOTP access type: %r",
                access_type,
                extra={"event": "totp.audit.invalid_access_type", "credential_id": credential_id},
            )
            return None

        occurred_at = self._clock()
        try:
            return self._executor.submit(
                self._write, credential_id, owner_id, access_type, occurred_at, user_agent
            )
        except RuntimeError:
            logger.warning(
                "TOTP audit logger is shut down; access not recorded",
                extra={"event": "totp.audit.rejected", "credential_id": credential_id},
            )
            return None

    def _resolve_network(self) -> tuple[Optional[str], Optional[dict]]:
        if self.address_resolver is None:
            return None, None
        try:
            address = self.address_resolver.resolve()
            return generalize_address(address), build_location_hint(address)
        except Exception as exc:  # noqa: BLE001
            logger.info(
                "TOTP audit network lookup failed: %s",
                exc,
                extra={"event": "totp.audit.enrichment_failed", "step": "network"},
            )
            return None, None

    def _resolve_device(self, user_agent: Optional[str]) -> Optional[str]:
        try:
            return classify_device(user_agent)
        except Exception as exc:  # noqa: BLE001
            logger.info(
                "TOTP audit device classification failed: %s",
                exc,
                extra={"event": "totp.audit.enrichment_failed", "step": "device"},
            )
            return None

    def _write(
        self,
        credential_id: int,
        owner_id: int,
        access_type: AccessType,
        occurred_at: datetime,
        user_agent: Optional[str],
    ) -> Optional[AccessLogEntry]:
        source_ip, location_hint = self._resolve_network()
        entry = AccessLogEntry(
            id=None,
            credential_id=credential_id,
            owner_id=owner_id,
            access_type=access_type,
            occurred_at=occurred_at,
            source_ip=source_ip,
            user_agent=user_agent,
            device_label=self._resolve_device(user_agent),
            location_hint=location_hint,
        )
        try:
            return self.repository.append(entry)
        except Exception:  # noqa: BLE001
            log_error(
                logger,
                "Failed to write TOTP access log",
                event="totp.audit.write_failed",
                credential_id=credential_id,
                owner_id=owner_id,
                access_type=access_type.value,
            )
            return None

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
