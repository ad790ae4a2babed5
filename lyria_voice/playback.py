"""
応答再生ハンドラー

サーバー応答の出力先（Playback Sink）を提供します。

- 音声応答: pygame.mixer.musicでメモリ上のデータを直接再生（MP3等の圧縮音声に対応）
- テキスト応答: pyttsx3でローカル音声合成して読み上げ

どちらもブロッキング処理のため、デフォルトのexecutorで実行してイベントループを止めません。
"""

import asyncio
import io
import logging
import threading
import time

import pygame
import pyttsx3

from .errors import PlaybackError

logger = logging.getLogger(__name__)

# コンテンツタイプ → SDL_mixerのデコーダーヒント
NAMEHINTS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/ogg": "ogg",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/webm": "webm",
}


def namehint_for(content_type: str) -> str:
    """
    コンテンツタイプからデコーダーヒントを取得

    パラメータ付き（"audio/webm;codecs=opus"など）でも主タイプで判定します。
    未知のタイプは"mp3"として扱います。
    """
    main_type = content_type.split(";", 1)[0].strip().lower()
    return NAMEHINTS.get(main_type, "mp3")


class ReplyPlayer:
    """
    pygame + pyttsx3 による応答プレイヤー

    Attributes:
        poll_interval (float): 再生終了の監視間隔（秒）
        _lock (threading.Lock): mixer/音声合成エンジンの同時利用を防ぐロック
    """

    def __init__(self, poll_interval: float = 0.05):
        self.poll_interval = poll_interval
        self._engine = None
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def _ensure_mixer(self):
        if not pygame.mixer.get_init():
            pygame.mixer.init()

    def _play_blocking(self, data: bytes, content_type: str):
        with self._lock:
            self._ensure_mixer()
            pygame.mixer.music.load(io.BytesIO(data), namehint_for(content_type))
            pygame.mixer.music.play()
            while pygame.mixer.music.get_busy():
                time.sleep(self.poll_interval)
            pygame.mixer.music.unload()

    def _speak_blocking(self, text: str):
        with self._lock:
            if self._engine is None:
                self._engine = pyttsx3.init()
            self._engine.say(text)
            self._engine.runAndWait()

    async def play_audio(self, data: bytes, content_type: str) -> None:
        """
        音声応答を再生（再生終了まで待機）

        Raises:
            PlaybackError: デコードまたは再生に失敗した場合
        """
        self.logger.info(f"Playing audio reply ({len(data)} bytes, {content_type})")
        try:
            await asyncio.get_running_loop().run_in_executor(None, self._play_blocking, data, content_type)
        except pygame.error as e:
            raise PlaybackError(f"Could not play audio reply: {e}") from e

    async def speak(self, text: str) -> None:
        """
        テキスト応答を音声合成で読み上げ

        Raises:
            PlaybackError: 音声合成エンジンが利用できない場合
        """
        self.logger.info(f"Speaking text reply ({len(text)} chars)")
        try:
            await asyncio.get_running_loop().run_in_executor(None, self._speak_blocking, text)
        except (RuntimeError, OSError, ImportError) as e:
            raise PlaybackError(f"Could not synthesize text reply: {e}") from e

    def stop(self):
        """再生中の音声を停止（中断時）"""
        if pygame.mixer.get_init():
            pygame.mixer.music.stop()
        if self._engine is not None:
            self._engine.stop()

    def close(self):
        """mixerを終了"""
        if pygame.mixer.get_init():
            pygame.mixer.quit()
