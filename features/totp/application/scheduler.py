"""全認証情報で共有する 1 秒周期のカウントダウン"""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from core.settings import settings
from core.time import epoch_seconds
from features.totp.application.registry import CredentialRegistry
from features.totp.domain.entities import TickSnapshot

logger = logging.getLogger(__name__)

TickCallback = Callable[[TickSnapshot], None]

# 秒の境界より僅かに後で起床させ、境界直前の計算で古いコードを掴まないようにする
_ALIGNMENT_SLACK = 0.005


class CountdownScheduler:
    """レジストリ全体を 1 本のタイマーで再計算する。

    認証情報ごとのタイマーは持たない。各ティックで
    :meth:`CredentialRegistry.refresh` を呼び、得られたスナップショットを
    購読者へ 1 回ずつ通知する。
    """

    def __init__(
        self,
        registry: CredentialRegistry,
        *,
        interval: float | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.registry = registry
        self.interval = interval if interval and interval > 0 else settings.totp_tick_interval
        self._clock = clock or epoch_seconds
        self._subscribers: List[TickCallback] = []
        self._subscribers_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.tick_count = 0

    # ------------------------------------------------------------------
    # 購読
    # ------------------------------------------------------------------
    def subscribe(self, callback: TickCallback) -> TickCallback:
        with self._subscribers_lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback: TickCallback) -> None:
        with self._subscribers_lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def _notify(self, snapshot: TickSnapshot) -> None:
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "TOTP tick subscriber failed",
                    extra={"event": "totp.scheduler.subscriber_failed"},
                )

    # ------------------------------------------------------------------
    # ティック
    # ------------------------------------------------------------------
    def tick(self, at_time=None) -> TickSnapshot:
        """1 ティック分の再計算と通知を行う"""

        snapshot = self.registry.refresh(at_time)
        self.tick_count += 1
        self._notify(snapshot)
        return snapshot

    def _next_delay(self) -> float:
        remainder = self._clock() % self.interval
        return (self.interval - remainder) + _ALIGNMENT_SLACK

    def _run(self, stop: threading.Event) -> None:
        logger.debug("TOTP countdown started", extra={"event": "totp.scheduler.started"})
        while not stop.wait(self._next_delay()):
            try:
                self.tick()
            except Exception:  # noqa: BLE001
                logger.exception("TOTP tick failed", extra={"event": "totp.scheduler.tick_failed"})
        logger.debug("TOTP countdown stopped", extra={"event": "totp.scheduler.stopped"})

    # ------------------------------------------------------------------
    # ライフサイクル
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        with self._state_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(self._stop,),
                name="totp-countdown",
                daemon=True,
            )
            self._thread = thread
            thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._state_lock:
            thread, self._thread = self._thread, None
            self._stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(
                    "TOTP countdown thread did not stop in time",
                    extra={"event": "totp.scheduler.stop_timeout"},
                )

    def __enter__(self) -> "CountdownScheduler":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
