"""
マイク録音ハンドラー

PyAudioを使用したマイク録音を、SessionClientから見たキャプチャ機能
（アクセス要求・録音開始・停止）として提供します。

SessionClientはこのモジュールの具体実装に依存せず、CaptureSourceプロトコルにのみ依存します。
録音データはWAVコンテナに包んだバイト列として返し、フォーマットの検証は行いません。

並行処理の責務:
    録音ループはasyncioタスクとして動作し、入力ストリームに十分なデータが溜まるまで
    asyncio.sleepで制御を返します（PyAudioのブロッキング読み取りでイベントループを止めない）。
"""

import asyncio
import io
import logging
import wave
from typing import List, Optional

import numpy as np
import pyaudio

from .config_models import AudioConfig
from .errors import CaptureError
from .interfaces import CaptureHandle

logger = logging.getLogger(__name__)


def peak_level(chunk: bytes) -> float:
    """
    PCM16チャンクのピークレベルを0.0〜1.0で返す

    Args:
        chunk: PCM16（リトルエンディアン）のバイト列

    Returns:
        float: ピークレベル（空のチャンクは0.0）
    """
    samples = np.frombuffer(chunk[:len(chunk) - len(chunk) % 2], dtype=np.int16)
    if samples.size == 0:
        return 0.0
    return float(np.abs(samples.astype(np.int32)).max()) / 32768.0


def to_wav(frames: List[bytes], sample_rate: int, channels: int, sample_width: int = 2) -> bytes:
    """
    PCMチャンクをWAVコンテナのバイト列にまとめる

    フレームが空の場合は空のバイト列を返します（最小長ゲートで「短すぎる」と判定させるため）。
    """
    if not frames:
        return b""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(sample_rate)
        wav.writeframes(b"".join(frames))
    return buffer.getvalue()


class PyAudioCapture:
    """
    PyAudioベースの録音ソース

    Attributes:
        config (AudioConfig): 録音設定
        p (pyaudio.PyAudio): PyAudioインスタンス（初回利用時に生成）
    """

    def __init__(self, config: Optional[AudioConfig] = None):
        self.config = config or AudioConfig()
        self.p = None
        self.logger = logging.getLogger(__name__)

    def _pyaudio(self):
        if self.p is None:
            self.p = pyaudio.PyAudio()
        return self.p

    def _list_audio_devices(self):
        """
        利用可能な入力デバイスを列挙（デバイス診断用）
        """
        p = self._pyaudio()
        try:
            self.logger.info("Available input devices:")
            for i in range(p.get_device_count()):
                info = p.get_device_info_by_index(i)
                if info.get('maxInputChannels', 0) > 0:
                    self.logger.info(
                        f"  [{i}] {info.get('name')} - Input({info.get('maxInputChannels')}ch) "
                        f"@ {info.get('defaultSampleRate')}Hz"
                    )
        except Exception as e:
            self.logger.error(f"Failed to enumerate audio devices: {e}")

    async def request_access(self) -> bool:
        """
        マイクが利用可能か確認

        デスクトップ環境には許可ダイアログがないため、入力デバイスを
        解決できることを「アクセス許可」とみなします。

        Returns:
            bool: 利用可能ならTrue
        """
        p = self._pyaudio()
        try:
            if self.config.input_device_index is not None:
                info = p.get_device_info_by_index(self.config.input_device_index)
            else:
                info = p.get_default_input_device_info()
        except (OSError, IOError) as e:
            self.logger.warning(f"No microphone available: {e}")
            self._list_audio_devices()
            return False

        if info.get('maxInputChannels', 0) < self.config.channels:
            self.logger.warning(f"Device {info.get('name')} has no usable input channels")
            return False
        return True

    async def start_capture(self) -> CaptureHandle:
        """
        入力ストリームを開いて録音ループを開始

        Returns:
            CaptureHandle: 録音ハンドル

        Raises:
            CaptureError: 入力ストリームを開けなかった場合
        """
        p = self._pyaudio()
        try:
            stream = p.open(
                format=pyaudio.paInt16,
                channels=self.config.channels,
                rate=self.config.sample_rate,
                input=True,
                frames_per_buffer=self.config.chunk_size,
                input_device_index=self.config.input_device_index
            )
        except OSError as e:
            self.logger.error(f"Failed to open input stream (device={self.config.input_device_index}): {e}")
            self._list_audio_devices()
            raise CaptureError(f"Audio input device not available (device={self.config.input_device_index})") from e

        handle = CaptureHandle(stream=stream)
        handle.task = asyncio.create_task(self._record_loop(handle))
        self.logger.info(
            f"Recording started (device={self.config.input_device_index}, "
            f"rate={self.config.sample_rate}Hz, ch={self.config.channels})"
        )
        return handle

    async def _record_loop(self, handle: CaptureHandle):
        """
        入力ストリームからチャンクを読み取り続けるループ

        読み取り可能なフレームがchunk_sizeに満たない間はイベントループに制御を返します。
        """
        chunk = self.config.chunk_size
        while handle.running:
            if handle.stream.get_read_available() >= chunk:
                data = handle.stream.read(chunk, exception_on_overflow=False)
                handle.frames.append(data)
                handle.level = peak_level(data)
            else:
                await asyncio.sleep(0.01)

    async def stop(self, handle: CaptureHandle) -> bytes:
        """
        録音を停止し、WAVコンテナのバイト列を返す

        Raises:
            CaptureError: ストリームの停止に失敗した場合
        """
        handle.running = False
        try:
            if handle.task is not None:
                await handle.task
            handle.stream.stop_stream()
            handle.stream.close()
        except OSError as e:
            raise CaptureError(f"Failed to stop input stream: {e}") from e

        data = to_wav(handle.frames, self.config.sample_rate, self.config.channels,
                      self._pyaudio().get_sample_size(pyaudio.paInt16))
        handle.frames = []
        self.logger.info(f"Recording stopped ({len(data)} bytes)")
        return data

    def terminate(self):
        """PyAudioインスタンスを終了"""
        if self.p is not None:
            self.p.terminate()
            self.p = None
