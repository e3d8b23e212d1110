"""
Airline API - 日付・所要時間ユーティリティ

対象フォーマット:
  - 日付:     YYYY-MM-DD
  - 所要時間: HH:MM（例: "02:15"）
"""
import re
from datetime import date, datetime, timedelta

_DURATION_PATTERN = re.compile(r'^(\d{1,3}):([0-5]\d)$')


def format_date(value: date) -> str:
    """日付を YYYY-MM-DD 形式の文字列にする。"""
    return value.strftime('%Y-%m-%d')


def parse_date(text: str) -> date:
    """YYYY-MM-DD 形式の文字列を date に変換する。不正値は ValueError。"""
    return datetime.strptime(text.strip(), '%Y-%m-%d').date()


def calculate_duration(start: datetime, end: datetime) -> str:
    """
    2時刻間の所要時間を HH:MM 形式で返す。
    24時間を超える場合も時間数はそのまま積み上げる（例: "26:05"）。
    """
    total_minutes = int((end - start).total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def parse_duration(text: str) -> timedelta:
    """HH:MM 形式の所要時間を timedelta に変換する。"""
    match = _DURATION_PATTERN.match((text or '').strip())
    if not match:
        raise ValueError(f"Invalid duration format '{text}'. Expected HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    return timedelta(hours=hours, minutes=minutes)
