"""ドメイン固有の例外クラス"""

from __future__ import annotations


class ReminderSchedulerError(Exception):
    """Reminder Scheduler の基底例外"""

    pass


class InvalidDefinitionError(ReminderSchedulerError):
    """リマインダー定義の不変条件違反（リトライ不可）"""

    def __init__(self, violations: list[str] | str) -> None:
        if isinstance(violations, str):
            violations = [violations]
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))


class ReminderNotFoundError(ReminderSchedulerError):
    """指定IDのリマインダーが存在しない"""

    def __init__(self, reminder_id: str) -> None:
        self.reminder_id = reminder_id
        super().__init__(f"Reminder not found: {reminder_id}")


# ─── Store ────────────────────────────────────────────────────────────────────


class StoreError(ReminderSchedulerError):
    """永続化ストアのエラー"""

    pass


class StoreUnavailableError(StoreError):
    """一時的なストア障害（ネットワーク等）。呼び出し側でリトライ可能"""

    pass


class StoreNotAuthenticatedError(StoreError):
    """未サインイン。操作自体が失敗扱いでリトライしない"""

    pass


class ReminderDataError(StoreError):
    """永続化されたレコードをデコードできない"""

    pass


# ─── Engine ───────────────────────────────────────────────────────────────────


class EngineError(ReminderSchedulerError):
    """トリガーエンジンのエラー（Coordinator で ActivationOutcome に変換される）"""

    pass


class PermissionDeniedError(EngineError):
    """通知・位置情報の権限がない。ユーザーが許可すれば回復可能"""

    def __init__(self, permission: str) -> None:
        self.permission = permission
        super().__init__(f"{permission} permission is not granted")


class CapacityExceededError(EngineError):
    """ジオフェンス監視数の上限に到達"""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(
            f"Region monitoring limit reached ({limit}). "
            "Disable another location reminder and try again."
        )


class NothingToScheduleError(EngineError):
    """スケジュールする発火時刻がない（過去の Once 等）。失敗ではない"""

    pass


class PlatformError(EngineError):
    """プラットフォームのプリミティブ呼び出しが失敗（1回だけリトライ対象）"""

    pass


class RegionCapacityError(ReminderSchedulerError):
    """RegionMonitor 実装がプラットフォーム側の上限で登録を拒否した"""

    pass


class UpdateRejectedError(ReminderSchedulerError):
    """update を適用できず、変更前の状態に戻した"""

    def __init__(self, reminder_id: str, outcomes: list) -> None:
        self.reminder_id = reminder_id
        self.outcomes = list(outcomes)
        reasons = ", ".join(
            f"{o.engine.value}: {o.error}" for o in self.outcomes if o.error
        )
        super().__init__(f"Update rejected for {reminder_id} ({reasons})")
