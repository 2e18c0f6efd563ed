"""E2E テスト用フィクスチャ

Firestore Emulator に接続し、実際の FirestoreReminderStore を使ってテストする。

前提: FIRESTORE_EMULATOR_HOST 環境変数が設定されていること
  例: FIRESTORE_EMULATOR_HOST=localhost:8080 pytest tests/e2e/ -m e2e -v
"""

from __future__ import annotations

import os

import pytest
from google.cloud import firestore
from reminder_scheduler.adapters.firestore_store import FirestoreReminderStore

TEST_COLLECTION = "reminders_e2e"


@pytest.fixture(scope="session")
def firestore_client():
    """Firestore Emulator に接続するクライアント（セッション共有）。

    FIRESTORE_EMULATOR_HOST が未設定の場合は localhost:8080 をデフォルトとして使用する。
    エミュレーターが起動していない場合はテストが接続エラーで失敗する。
    """
    host = os.environ.get("FIRESTORE_EMULATOR_HOST", "localhost:8080")
    os.environ["FIRESTORE_EMULATOR_HOST"] = host
    return firestore.Client(project="test-project")


@pytest.fixture(autouse=True)
def _cleanup_firestore(request, firestore_client):
    """各テスト後に Emulator のデータをクリーンアップ（e2e マーク付きのみ）"""
    yield
    if not request.node.get_closest_marker("e2e"):
        return
    for doc in firestore_client.collection(TEST_COLLECTION).stream():
        doc.reference.delete()


@pytest.fixture
def firestore_store(firestore_client) -> FirestoreReminderStore:
    return FirestoreReminderStore(firestore_client, collection=TEST_COLLECTION)
