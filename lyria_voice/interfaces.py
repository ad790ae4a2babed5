"""
外部コラボレーターのインターフェース

SessionClientはプラットフォーム（マイク、スピーカー、音声合成）に直接依存せず、
ここで定義するプロトコルにのみ依存します。
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Protocol


@dataclass
class CaptureHandle:
    """
    録音中のハンドル

    Attributes:
        stream: 入力ストリーム（実装依存、フェイク実装ではNone）
        frames: 読み取ったPCMチャンク
        level: 直近チャンクのピークレベル（0.0〜1.0、GUIのメーター用）
        task: 録音ループのタスク
        running: 録音ループの継続フラグ
    """
    stream: Optional[object] = None
    frames: List[bytes] = field(default_factory=list)
    level: float = 0.0
    task: Optional[asyncio.Task] = None
    running: bool = True


class CaptureSource(Protocol):
    """マイク録音の機能"""

    async def request_access(self) -> bool:
        """マイクの利用可否を確認する（拒否ならFalse、またはCapturePermissionDenied）"""

    async def start_capture(self) -> CaptureHandle:
        """録音を開始する（失敗時はCaptureError）"""

    async def stop(self, handle: CaptureHandle) -> bytes:
        """録音を停止して録音データ全体を返す"""


class PlaybackSink(Protocol):
    """応答の出力先"""

    async def play_audio(self, data: bytes, content_type: str) -> None:
        """音声データを再生する（失敗時はPlaybackError）"""

    async def speak(self, text: str) -> None:
        """テキストを音声合成で読み上げる（失敗時はPlaybackError）"""
