"""Smart Reminder Scheduling Engine

時刻・位置情報・ハイブリッドのリマインダーを発火イベントに変換するスケジューリングエンジン。
"""

__version__ = "0.1.0"
