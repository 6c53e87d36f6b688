"""サインイン中ユーザーの TOTP 認証情報レジストリ

メモリ上の認証情報一覧と、ティックごとに差し替えるコードのスナップショットを
保持する。追加・更新・削除は必ずストアへ反映してからメモリへ確定させ、
ティックによる再計算とは同じロックで排他する。
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Callable, List, Mapping, Optional

from core.logging_config import log_info
from core.settings import settings
from core.time import epoch_seconds, to_epoch_seconds
from features.totp.application.dto import CredentialInput, CredentialUpdate, SortKey
from features.totp.application.interfaces import CredentialStore
from features.totp.domain.entities import CodeSnapshot, Credential, TickSnapshot
from features.totp.domain.exceptions import (
    InvalidParameters,
    InvalidSecretFormat,
    NotFound,
    PersistenceError,
    TOTPError,
    Unauthorized,
)
from features.totp.domain.generator import generate_for_secret, remaining_seconds, time_counter
from features.totp.domain.validators import (
    ensure_non_empty,
    validate_algorithm,
    validate_digits,
    validate_period,
    validate_secret,
)

logger = logging.getLogger(__name__)

CODE_ERROR_INVALID_SECRET = "invalid_secret"
CODE_ERROR_INVALID_PARAMETERS = "invalid_parameters"


def compute_code(credential: Credential, now: float) -> CodeSnapshot:
    """1 件分のコードを計算する。シークレット不正時はエラー状態を返す"""

    try:
        code = generate_for_secret(
            credential.secret,
            algorithm=credential.algorithm,
            digits=credential.digits,
            period=credential.period,
            at_time=now,
        )
    except InvalidSecretFormat:
        return CodeSnapshot(credential.id, None, None, error=CODE_ERROR_INVALID_SECRET)
    except InvalidParameters:
        return CodeSnapshot(credential.id, None, None, error=CODE_ERROR_INVALID_PARAMETERS)
    counter = time_counter(credential.period, now)
    remaining = remaining_seconds(credential.period, now)
    return CodeSnapshot(credential.id, code, remaining, counter=counter)


def _sort_key_func(key: SortKey) -> Callable[[Credential], tuple]:
    if key is SortKey.ISSUER:
        return lambda c: (c.issuer.casefold(), c.id)
    if key is SortKey.CREATED_AT:
        # 新しいものが先頭
        return lambda c: (-to_epoch_seconds(c.created_at), c.id)
    return lambda c: (c.display_name.casefold(), c.id)


class CredentialRegistry:
    """サインイン中ユーザーの認証情報と現在のコードを保持する"""

    def __init__(
        self,
        owner_id: Optional[int],
        repository: CredentialStore | None = None,
        *,
        clock: Callable[[], float] | None = None,
        parallel_threshold: int | None = None,
    ):
        if repository is None:
            from features.totp.infrastructure.repositories import TOTPCredentialRepository

            repository = TOTPCredentialRepository()
        self.owner_id = owner_id
        self.repository = repository
        self._clock = clock or epoch_seconds
        self._parallel_threshold = (
            settings.totp_parallel_recompute_threshold if parallel_threshold is None else parallel_threshold
        )
        self._lock = threading.RLock()
        self._credentials: dict[int, Credential] = {}
        self._sort_key = SortKey.NAME
        self._snapshot = TickSnapshot(at_time=0.0)
        self._executor: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # 参照系
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        with self._lock:
            return len(self._credentials)

    def __contains__(self, credential_id: object) -> bool:
        with self._lock:
            return credential_id in self._credentials

    @property
    def sort_key(self) -> SortKey:
        return self._sort_key

    @property
    def snapshot(self) -> TickSnapshot:
        return self._snapshot

    def credentials(self) -> List[Credential]:
        """現在の並び順で、同一ティックのコードを付けた一覧を返す"""

        with self._lock:
            ordered = self._ordered()
            codes = self._snapshot.as_dict()
        return [credential.with_code(codes.get(credential.id)) for credential in ordered]

    def get(self, credential_id: int) -> Credential:
        with self._lock:
            credential = self._credentials.get(credential_id)
            if credential is None:
                raise NotFound(credential_id)
            snapshot = self._snapshot.get(credential_id)
        return credential.with_code(snapshot)

    def sort_by(self, key: SortKey | str) -> List[Credential]:
        sort_key = SortKey.parse(key)
        with self._lock:
            self._sort_key = sort_key
            ordered_ids = [credential.id for credential in self._ordered()]
            codes = self._snapshot.as_dict()
            self._snapshot = TickSnapshot(
                at_time=self._snapshot.at_time,
                entries=tuple(codes[cid] for cid in ordered_ids if cid in codes),
            )
        return self.credentials()

    def filter(self, query: str | None) -> List[Credential]:
        """表示名・発行者に対する大文字小文字を区別しない部分一致"""

        items = self.credentials()
        term = (query or "").strip().casefold()
        if not term:
            return items
        return [
            credential
            for credential in items
            if term in credential.display_name.casefold() or term in credential.issuer.casefold()
        ]

    # ------------------------------------------------------------------
    # 再計算
    # ------------------------------------------------------------------
    def refresh(self, at_time=None) -> TickSnapshot:
        """全件のコードを再計算し、スナップショットをまとめて差し替える"""

        with self._lock:
            now = self._clock() if at_time is None else to_epoch_seconds(at_time)
            return self._refresh_locked(now)

    def _refresh_locked(self, now: float) -> TickSnapshot:
        ordered = self._ordered()
        if self._parallel_threshold > 0 and len(ordered) >= self._parallel_threshold:
            executor = self._get_executor()
            entries = tuple(executor.map(lambda credential: compute_code(credential, now), ordered))
        else:
            entries = tuple(compute_code(credential, now) for credential in ordered)
        snapshot = TickSnapshot(at_time=now, entries=entries)
        self._snapshot = snapshot
        return snapshot

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(thread_name_prefix="totp-recompute")
        return self._executor

    def _ordered(self) -> List[Credential]:
        return sorted(self._credentials.values(), key=_sort_key_func(self._sort_key))

    # ------------------------------------------------------------------
    # 更新系
    # ------------------------------------------------------------------
    def _require_owner(self) -> int:
        if self.owner_id is None:
            raise Unauthorized()
        return self.owner_id

    def _call_store(self, operation: str, func: Callable[..., Any], *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PersistenceError:
            logger.warning(
                "TOTP store %s failed",
                operation,
                exc_info=True,
                extra={"event": f"totp.registry.{operation}_failed", "owner_id": self.owner_id},
            )
            raise
        except TOTPError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "TOTP store %s failed",
                operation,
                exc_info=True,
                extra={"event": f"totp.registry.{operation}_failed", "owner_id": self.owner_id},
            )
            raise PersistenceError(f"TOTP store {operation} failed", operation=operation) from exc

    def load(self) -> List[Credential]:
        """ストアの内容でメモリ上の一覧を置き換える"""

        owner_id = self._require_owner()
        with self._lock:
            loaded = self._call_store(
                "list", self.repository.list_for_owner, owner_id, order_by=self._sort_key.value
            )
            self._credentials = {credential.id: replace(credential, current_code=None) for credential in loaded}
            self._refresh_locked(self._clock())
        log_info(
            logger,
            f"Loaded {len(self._credentials)} TOTP credentials",
            event="totp.registry.loaded",
            owner_id=owner_id,
        )
        return self.credentials()

    def add(self, payload: CredentialInput) -> Credential:
        owner_id = self._require_owner()
        display_name = ensure_non_empty(payload.display_name, "display_name")
        issuer = ensure_non_empty(payload.issuer, "issuer")
        secret = validate_secret(payload.secret)
        algorithm = validate_algorithm(payload.algorithm)
        digits = validate_digits(payload.digits)
        period = validate_period(payload.period)

        with self._lock:
            created = self._call_store(
                "create",
                self.repository.create,
                owner_id=owner_id,
                display_name=display_name,
                issuer=issuer,
                secret=secret,
                algorithm=algorithm,
                digits=digits,
                period=period,
            )
            self._credentials[created.id] = created
            snapshot = self._refresh_locked(self._clock())
            result = created.with_code(snapshot.get(created.id))

        log_info(
            logger,
            "TOTP credential added",
            event="totp.registry.added",
            owner_id=owner_id,
            credential_id=created.id,
        )
        return result

    def _changed_fields(self, current: Credential, changes: CredentialUpdate | Mapping[str, Any]) -> dict[str, Any]:
        if isinstance(changes, CredentialUpdate):
            provided = changes.provided()
        else:
            provided = {key: value for key, value in dict(changes).items() if value is not None}
            unknown = set(provided) - set(CredentialUpdate.__dataclass_fields__)
            if unknown:
                raise InvalidParameters(f"更新できない項目です: {', '.join(sorted(unknown))}")

        validators: dict[str, Callable[[Any], Any]] = {
            "display_name": lambda value: ensure_non_empty(value, "display_name"),
            "issuer": lambda value: ensure_non_empty(value, "issuer"),
            "secret": validate_secret,
            "algorithm": validate_algorithm,
            "digits": validate_digits,
            "period": validate_period,
        }
        changed: dict[str, Any] = {}
        for name, value in provided.items():
            normalized = validators[name](value)
            if normalized != getattr(current, name):
                changed[name] = normalized
        return changed

    def update(self, credential_id: int, changes: CredentialUpdate | Mapping[str, Any]) -> Credential:
        owner_id = self._require_owner()
        with self._lock:
            current = self._credentials.get(credential_id)
            if current is None:
                raise NotFound(credential_id)
            changed = self._changed_fields(current, changes)
            if changed:
                self._call_store(
                    "update", self.repository.update, credential_id, owner_id=owner_id, fields=changed
                )
                self._credentials[credential_id] = replace(current, **changed)
                self._refresh_locked(self._clock())
            result = self._credentials[credential_id].with_code(self._snapshot.get(credential_id))

        if changed:
            log_info(
                logger,
                "TOTP credential updated",
                event="totp.registry.updated",
                owner_id=owner_id,
                credential_id=credential_id,
                fields=sorted(changed),
            )
        return result

    def remove(self, credential_id: int) -> None:
        owner_id = self._require_owner()
        with self._lock:
            if credential_id not in self._credentials:
                raise NotFound(credential_id)
            self._call_store("delete", self.repository.delete, credential_id, owner_id=owner_id)
            del self._credentials[credential_id]
            self._refresh_locked(self._clock())

        log_info(
            logger,
            "TOTP credential removed",
            event="totp.registry.removed",
            owner_id=owner_id,
            credential_id=credential_id,
        )

    def clear(self) -> None:
        """サインアウト時にメモリ上の一覧を破棄する (ストアには触れない)"""

        with self._lock:
            self._credentials = {}
            self._snapshot = TickSnapshot(at_time=self._snapshot.at_time)

    def close(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

