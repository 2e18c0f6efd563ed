"""Scheduler Coordinator - 公開ファサード

他のサブシステムが触るのはこのクラスだけ。
trigger_type に応じて Time / Geofence エンジンに振り分け、Hybrid の整合を保つ。

- エンジンの失敗は例外のまま外に出さず、ActivationOutcome にまとめて返す
- 同じ reminder_id への操作は KeyedLock で直列化、異なる ID は並行に進む
- delete はエンジン解除 → ストア削除の順（ストアが知らない ID で発火させない）
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from reminder_scheduler.domain.errors import (
    EngineError,
    InvalidDefinitionError,
    NothingToScheduleError,
    PlatformError,
    ReminderNotFoundError,
    StoreError,
    StoreUnavailableError,
    UpdateRejectedError,
)
from reminder_scheduler.domain.models import (
    ActivationOutcome,
    ActivationStatus,
    EngineKind,
    FiredEvent,
    RehydrationReport,
    Reminder,
    ReminderDefinition,
    ScheduledTask,
    ScheduleResult,
    TriggerType,
)
from reminder_scheduler.domain.ports import ReminderStore
from reminder_scheduler.domain.validation import validate_definition
from reminder_scheduler.services.event_stream import FiredEventStream
from reminder_scheduler.services.geofence_engine import GeofenceTriggerEngine
from reminder_scheduler.services.keyed_lock import KeyedLock
from reminder_scheduler.services.time_engine import TimeTriggerEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class SchedulerCoordinator:
    """
    リマインダーの作成・更新・有効/無効・削除・再構築を統合する。

    処理フロー（create）:
    1. 定義を検証（違反をすべて列挙）
    2. ストアに保存（一時障害は指数バックオフでリトライ）
    3. enabled なら trigger_type に応じたエンジンを起動（Hybrid は両方を独立に）
    """

    def __init__(
        self,
        store: ReminderStore,
        time_engine: TimeTriggerEngine,
        geofence_engine: GeofenceTriggerEngine,
        max_radius_meters: float | None = None,
        store_retry_attempts: int = 3,
        store_retry_base_delay: float = 0.5,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            store: リマインダーの永続化
            time_engine: 時刻トリガーエンジン
            geofence_engine: ジオフェンストリガーエンジン
            max_radius_meters: ジオフェンス半径の上限（None なら無制限）
            store_retry_attempts: ストア一時障害時の最大試行回数
            store_retry_base_delay: リトライ初回の待機秒数（以降倍々）
            clock: 現在時刻（aware datetime）を返す関数
            id_factory: リマインダー ID の生成関数
            sleep: バックオフ待機に使う関数
        """
        if store_retry_attempts < 1:
            raise ValueError("store_retry_attempts must be at least 1")
        self._store = store
        self._engines: dict[EngineKind, TimeTriggerEngine | GeofenceTriggerEngine] = {
            EngineKind.TIME: time_engine,
            EngineKind.LOCATION: geofence_engine,
        }
        self._max_radius_meters = max_radius_meters
        self._retry_attempts = store_retry_attempts
        self._retry_base_delay = store_retry_base_delay
        self._clock = clock
        self._id_factory = id_factory
        self._sleep = sleep
        self._locks = KeyedLock()
        self._tombstones: set[str] = set()
        self.fired = FiredEventStream()

        time_engine.set_listener(self._on_engine_fired)
        geofence_engine.set_listener(self._on_engine_fired)

    # ── 公開 API ─────────────────────────────────────────────────────────────

    async def create(self, definition: ReminderDefinition) -> ScheduleResult:
        """
        リマインダーを作成する。

        Hybrid で片方のエンジンだけ失敗した場合もロールバックせず、
        部分的に有効な状態として保存し、失敗内容を outcomes で返す。

        Raises:
            InvalidDefinitionError: 定義が不変条件に違反
            StoreError: 保存に失敗
        """
        self._validate(definition)
        reminder = Reminder(
            id=self._id_factory(),
            owner_id=definition.owner_id,
            title=definition.title.strip(),
            trigger_type=definition.trigger_type,
            schedule=definition.schedule,
            location=definition.location,
            enabled=definition.enabled,
            created_at=self._clock(),
        )

        async with self._locks.hold(reminder.id):
            await self._save(reminder)
            outcomes = await self._activate_all(reminder)

        result = ScheduleResult(reminder=reminder, outcomes=outcomes)
        self._log_result("Created", result)
        return result

    async def update(self, reminder_id: str, definition: ReminderDefinition) -> ScheduleResult:
        """
        リマインダーを更新する（全部適用されるか、何も変わらないかのどちらか）。

        旧タスクを解除 → 保存 → 新タスクを起動。保存または必要なエンジンの起動に
        失敗した場合は新タスクを取り消し、旧レコードと旧タスクを復元する。

        Raises:
            ReminderNotFoundError: 対象が存在しない
            InvalidDefinitionError: 定義が不正、または trigger_type / owner_id の変更
            UpdateRejectedError: エンジンの起動に失敗し、変更前に戻した
            StoreError: 保存に失敗し、変更前に戻した
        """
        async with self._locks.hold(reminder_id):
            current = await self._load(reminder_id)

            violations = validate_definition(definition, self._max_radius_meters)
            if definition.trigger_type is not current.trigger_type:
                violations.append(
                    "trigger_type cannot be changed; delete and recreate the reminder"
                )
            if definition.owner_id != current.owner_id:
                violations.append("owner_id cannot be changed")
            if violations:
                raise InvalidDefinitionError(violations)

            updated = Reminder(
                id=current.id,
                owner_id=current.owner_id,
                title=definition.title.strip(),
                trigger_type=current.trigger_type,
                schedule=definition.schedule,
                location=definition.location,
                enabled=definition.enabled,
                created_at=current.created_at,
            )

            previous = await self._deactivate_all(reminder_id)
            try:
                await self._save(updated)
            except StoreError:
                logger.warning("Update failed to persist, restoring: reminder_id=%s", reminder_id)
                await self._restore(current, previous)
                raise

            outcomes = await self._activate_all(updated)
            if any(not o.ok for o in outcomes.values()):
                logger.warning("Update activation failed, rolling back: reminder_id=%s", reminder_id)
                await self._deactivate_all(reminder_id)
                try:
                    await self._save(current)
                finally:
                    await self._restore(current, previous)
                raise UpdateRejectedError(reminder_id, list(outcomes.values()))

        result = ScheduleResult(reminder=updated, outcomes=outcomes)
        self._log_result("Updated", result)
        return result

    async def toggle(self, reminder_id: str, enabled: bool) -> ScheduleResult:
        """
        有効/無効を切り替える。既に同じ状態なら何もしない（冪等）。

        Raises:
            ReminderNotFoundError: 対象が存在しない
            StoreError: 保存に失敗
        """
        async with self._locks.hold(reminder_id):
            current = await self._load(reminder_id)
            if current.enabled == enabled:
                logger.debug(
                    "Toggle is a no-op: reminder_id=%s, enabled=%s", reminder_id, enabled
                )
                return ScheduleResult(reminder=current, outcomes=self._current_outcomes(current))

            updated = current.with_enabled(enabled)
            if enabled:
                await self._save(updated)
                outcomes = await self._activate_all(updated)
            else:
                previous = await self._deactivate_all(reminder_id)
                try:
                    await self._save(updated)
                except StoreError:
                    await self._restore(current, previous)
                    raise
                outcomes = await self._activate_all(updated)

        result = ScheduleResult(reminder=updated, outcomes=outcomes)
        self._log_result("Enabled" if enabled else "Disabled", result)
        return result

    async def delete(self, reminder_id: str) -> None:
        """
        エンジンをすべて解除してからストアから削除する。存在しなくてもエラーにしない。

        Raises:
            StoreError: 削除に失敗（エンジンは元の状態に戻す）
        """
        async with self._locks.hold(reminder_id):
            current = await self._store_get_or_none(reminder_id)
            self._tombstones.add(reminder_id)
            previous = await self._deactivate_all(reminder_id)
            try:
                await self._with_store_retry(
                    "delete", lambda: self._store.delete(reminder_id)
                )
            except StoreError:
                logger.warning("Delete failed, restoring: reminder_id=%s", reminder_id)
                self._tombstones.discard(reminder_id)
                if current is not None:
                    await self._restore(current, previous)
                raise
        logger.info("Deleted reminder: reminder_id=%s", reminder_id)

    async def rehydrate(self, owner_id: str) -> RehydrationReport:
        """
        起動時にストアから有効なリマインダーをすべて再登録する。

        個々の失敗（権限の取り消し等）では中断せず、レポートにまとめて返す。

        Raises:
            StoreError: 一覧の読み込みに失敗
        """
        tombstoned = set(self._tombstones)
        reminders = await self._with_store_retry(
            "load_all", lambda: self._store.load_all(owner_id)
        )
        logger.info("Rehydrating %d reminders: owner_id=%s", len(reminders), owner_id)

        stale = self._geofence.reconcile()
        if stale:
            logger.info("Released %d stale regions", len(stale))

        results: dict[str, ScheduleResult] = {}
        skipped: list[str] = []
        for reminder in reminders:
            if not reminder.enabled:
                skipped.append(reminder.id)
                continue
            async with self._locks.hold(reminder.id):
                # 読み込み後に delete / toggle / update された場合は最新のレコードに従う
                if reminder.id in self._tombstones:
                    continue
                try:
                    current = await self._store_get_or_none(reminder.id)
                except StoreError as e:
                    current = reminder
                    outcomes = {
                        kind: ActivationOutcome(kind, ActivationStatus.FAILED, e)
                        for kind in self._engine_kinds(reminder.trigger_type)
                    }
                else:
                    if current is None:
                        continue
                    if not current.enabled:
                        skipped.append(current.id)
                        continue
                    outcomes = await self._activate_all(current)
                reminder = current
            result = ScheduleResult(reminder=reminder, outcomes=outcomes)
            results[reminder.id] = result
            for failure in result.failures:
                logger.warning(
                    "Could not reactivate reminder: reminder_id=%s, engine=%s, error=%s",
                    reminder.id,
                    failure.engine.value,
                    failure.error,
                    extra={"reminder_id": reminder.id},
                )

        report = RehydrationReport(owner_id=owner_id, results=results, skipped_disabled=skipped)
        logger.info(
            "Rehydration complete: owner_id=%s, reactivated=%d, failed=%d, disabled=%d",
            owner_id,
            len(report.reactivated),
            len(report.failures),
            len(skipped),
        )
        # この時点より前の delete は、以降の再登録で復活しない
        self._tombstones -= tombstoned
        return report

    async def get(self, reminder_id: str) -> Reminder | None:
        return await self._store_get_or_none(reminder_id)

    async def list_reminders(self, owner_id: str) -> list[Reminder]:
        """ユーザーのリマインダー一覧（作成日時順）"""
        reminders = await self._with_store_retry(
            "load_all", lambda: self._store.load_all(owner_id)
        )
        return sorted(reminders, key=lambda r: r.created_at)

    async def shutdown(self) -> None:
        """両エンジンの登録をすべて解除する"""
        for engine in self._engines.values():
            await engine.shutdown()
        logger.info("Scheduler coordinator shut down")

    # ── internal ─────────────────────────────────────────────────────────────

    @property
    def _geofence(self) -> GeofenceTriggerEngine:
        return self._engines[EngineKind.LOCATION]

    @staticmethod
    def _engine_kinds(trigger_type: TriggerType) -> list[EngineKind]:
        kinds = []
        if trigger_type.uses_time:
            kinds.append(EngineKind.TIME)
        if trigger_type.uses_location:
            kinds.append(EngineKind.LOCATION)
        return kinds

    def _validate(self, definition: ReminderDefinition) -> None:
        violations = validate_definition(definition, self._max_radius_meters)
        if violations:
            logger.info("Rejected reminder definition: %s", "; ".join(violations))
            raise InvalidDefinitionError(violations)

    async def _activate_all(self, reminder: Reminder) -> dict[EngineKind, ActivationOutcome]:
        outcomes: dict[EngineKind, ActivationOutcome] = {}
        for kind in self._engine_kinds(reminder.trigger_type):
            if not reminder.enabled:
                outcomes[kind] = ActivationOutcome(kind, ActivationStatus.SKIPPED)
                continue
            outcomes[kind] = await self._activate_one(kind, reminder)
        return outcomes

    async def _activate_one(self, kind: EngineKind, reminder: Reminder) -> ActivationOutcome:
        """エンジン1つを起動。PlatformError は1回だけリトライする"""
        engine = self._engines[kind]
        try:
            try:
                await engine.activate(reminder)
            except PlatformError as e:
                logger.warning(
                    "Activation failed, retrying once: reminder_id=%s, engine=%s, error=%s",
                    reminder.id,
                    kind.value,
                    e,
                )
                await engine.activate(reminder)
        except NothingToScheduleError as e:
            logger.info(
                "Nothing to schedule: reminder_id=%s, engine=%s", reminder.id, kind.value
            )
            return ActivationOutcome(kind, ActivationStatus.NOTHING_TO_SCHEDULE, e)
        except EngineError as e:
            logger.warning(
                "Activation failed: reminder_id=%s, engine=%s, error=%s",
                reminder.id,
                kind.value,
                e,
            )
            return ActivationOutcome(kind, ActivationStatus.FAILED, e)
        return ActivationOutcome(kind, ActivationStatus.ACTIVE)

    async def _deactivate_all(self, reminder_id: str) -> dict[EngineKind, ScheduledTask | None]:
        return {
            kind: await engine.deactivate(reminder_id)
            for kind, engine in self._engines.items()
        }

    async def _restore(
        self, reminder: Reminder, previous: dict[EngineKind, ScheduledTask | None]
    ) -> None:
        """旧タスクがあったエンジンだけ、旧リマインダーで再起動する"""
        for kind, task in previous.items():
            if task is None:
                continue
            outcome = await self._activate_one(kind, reminder)
            if not outcome.ok:
                logger.error(
                    "Could not restore previous task: reminder_id=%s, engine=%s, error=%s",
                    reminder.id,
                    kind.value,
                    outcome.error,
                )

    def _current_outcomes(self, reminder: Reminder) -> dict[EngineKind, ActivationOutcome]:
        outcomes = {}
        for kind in self._engine_kinds(reminder.trigger_type):
            if not reminder.enabled:
                status = ActivationStatus.SKIPPED
            elif self._engines[kind].task_for(reminder.id) is not None:
                status = ActivationStatus.ACTIVE
            else:
                status = ActivationStatus.NOTHING_TO_SCHEDULE
            outcomes[kind] = ActivationOutcome(kind, status)
        return outcomes

    async def _load(self, reminder_id: str) -> Reminder:
        reminder = await self._store_get_or_none(reminder_id)
        if reminder is None:
            raise ReminderNotFoundError(reminder_id)
        return reminder

    async def _store_get_or_none(self, reminder_id: str) -> Reminder | None:
        return await self._with_store_retry("get", lambda: self._store.get(reminder_id))

    async def _save(self, reminder: Reminder) -> None:
        await self._with_store_retry("save", lambda: self._store.save(reminder))

    async def _with_store_retry(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """StoreUnavailableError のみ指数バックオフでリトライ。認証エラー等は即座に送出"""
        delay = self._retry_base_delay
        for attempt in range(1, self._retry_attempts):
            try:
                return await call()
            except StoreUnavailableError as e:
                logger.warning(
                    "Store %s failed (attempt %d/%d): %s; retrying in %.1fs",
                    operation,
                    attempt,
                    self._retry_attempts,
                    e,
                    delay,
                )
                await self._sleep(delay)
                delay *= 2
        return await call()

    def _on_engine_fired(self, event: FiredEvent) -> None:
        if event.reminder_id in self._tombstones:
            logger.debug("Dropping fire for deleted reminder: reminder_id=%s", event.reminder_id)
            return
        self.fired.publish(event)

    @staticmethod
    def _log_result(action: str, result: ScheduleResult) -> None:
        logger.info(
            "%s reminder: reminder_id=%s, type=%s, enabled=%s, outcomes=%s",
            action,
            result.reminder.id,
            result.reminder.trigger_type.value,
            result.reminder.enabled,
            {k.value: o.status.value for k, o in result.outcomes.items()},
            extra={"reminder_id": result.reminder.id},
        )
