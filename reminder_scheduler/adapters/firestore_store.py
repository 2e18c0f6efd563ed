"""Firestore Reminder Store Adapter

ReminderStore の Firestore 実装。

Firestore コレクション構造:
  reminders/{reminderId}    ← リマインダー1件（owner_id フィールドでユーザーを区別）

Firestore クライアントは同期 API なので、asyncio.to_thread で
イベントループをブロックしないように呼び出す。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TypeVar

from google.api_core import exceptions as gexc
from google.cloud import firestore

from reminder_scheduler.adapters.reminder_codec import reminder_from_dict, reminder_to_dict
from reminder_scheduler.domain.errors import (
    ReminderDataError,
    StoreError,
    StoreNotAuthenticatedError,
    StoreUnavailableError,
)
from reminder_scheduler.domain.models import Reminder
from reminder_scheduler.domain.ports import ReminderStore

logger = logging.getLogger(__name__)

_DEFAULT_COLLECTION = "reminders"

# 一時的な障害（リトライ対象）
_TRANSIENT_ERRORS = (
    gexc.ServiceUnavailable,
    gexc.DeadlineExceeded,
    gexc.InternalServerError,
    gexc.TooManyRequests,
)
# 認証エラー（リトライしない）
_AUTH_ERRORS = (gexc.Unauthenticated, gexc.PermissionDenied)

T = TypeVar("T")


class FirestoreReminderStore(ReminderStore):
    """
    Firestore を使った ReminderStore 実装。

    google-api-core の例外をドメインの StoreError に変換する。
    """

    def __init__(self, db: firestore.Client, collection: str = _DEFAULT_COLLECTION) -> None:
        """
        Args:
            db: 初期化済みの Firestore クライアント
            collection: リマインダーを保存するコレクション名
        """
        self._db = db
        self._collection = collection

    async def save(self, reminder: Reminder) -> None:
        """id をドキュメント ID として upsert"""
        if not reminder.owner_id:
            raise StoreNotAuthenticatedError("owner_id is required to save a reminder")
        data = reminder_to_dict(reminder)
        await self._call(lambda: self._ref(reminder.id).set(data))
        logger.info("Saved reminder: id=%s, owner_id=%s", reminder.id, reminder.owner_id)

    async def delete(self, reminder_id: str) -> None:
        """ドキュメントを削除（存在しなくてもエラーにならない）"""
        await self._call(lambda: self._ref(reminder_id).delete())
        logger.info("Deleted reminder: id=%s", reminder_id)

    async def load_all(self, owner_id: str) -> list[Reminder]:
        """ユーザーの全リマインダーを取得。デコードできないレコードはスキップ"""
        if not owner_id:
            raise StoreNotAuthenticatedError("owner_id is required to load reminders")

        def _query() -> list[tuple[str, dict]]:
            snaps = (
                self._db.collection(self._collection)
                .where("owner_id", "==", owner_id)
                .stream()
            )
            return [(snap.id, snap.to_dict() or {}) for snap in snaps]

        rows = await self._call(_query)

        reminders: list[Reminder] = []
        for doc_id, data in rows:
            data.setdefault("id", doc_id)
            try:
                reminders.append(reminder_from_dict(data))
            except ReminderDataError as e:
                logger.warning("Skipping unreadable reminder: id=%s, error=%s", doc_id, e)
        logger.info("Loaded %d reminders: owner_id=%s", len(reminders), owner_id)
        return reminders

    async def get(self, reminder_id: str) -> Reminder | None:
        """1件取得。存在しない場合は None"""
        snap = await self._call(lambda: self._ref(reminder_id).get())
        if not snap.exists:
            return None
        data = snap.to_dict() or {}
        data.setdefault("id", reminder_id)
        return reminder_from_dict(data)

    def _ref(self, reminder_id: str) -> Any:
        return self._db.collection(self._collection).document(reminder_id)

    async def _call(self, fn: Callable[[], T]) -> T:
        """同期クライアント呼び出しをスレッドで実行し、例外をドメイン例外に変換"""
        try:
            return await asyncio.to_thread(fn)
        except _AUTH_ERRORS as e:
            raise StoreNotAuthenticatedError(str(e)) from e
        except _TRANSIENT_ERRORS as e:
            raise StoreUnavailableError(str(e)) from e
        except gexc.GoogleAPICallError as e:
            raise StoreError(str(e)) from e
