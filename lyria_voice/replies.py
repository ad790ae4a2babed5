"""
応答メッセージの分類

サーバーからの応答はフレーム種別で判別します。
バイナリフレームは再生用の音声、テキストフレームは音声合成で読み上げる文字列です。
"""

from dataclasses import dataclass
from typing import Union

DEFAULT_AUDIO_CONTENT_TYPE = "audio/mpeg"


@dataclass(frozen=True)
class AudioReply:
    """
    音声応答

    Attributes:
        data: 音声データ（サーバーから受信したバイト列そのまま）
        content_type: 再生時のコンテンツタイプ
    """
    data: bytes
    content_type: str = DEFAULT_AUDIO_CONTENT_TYPE


@dataclass(frozen=True)
class TextReply:
    """
    テキスト応答

    Attributes:
        text: 読み上げる文字列（UTF-8でデコード済み）
    """
    text: str


Reply = Union[AudioReply, TextReply]


def classify_message(message, content_type: str = DEFAULT_AUDIO_CONTENT_TYPE) -> Reply:
    """
    WebSocketメッセージを応答に変換

    websocketsはバイナリフレームをbytes、テキストフレームをstrとして返すため、
    型で判別します。

    Args:
        message: 受信メッセージ（bytes / bytearray / memoryview / str）
        content_type: 音声応答に付与するコンテンツタイプ

    Returns:
        Reply: AudioReply または TextReply

    Raises:
        TypeError: 想定外の型の場合
    """
    if isinstance(message, str):
        return TextReply(text=message)
    if isinstance(message, (bytes, bytearray, memoryview)):
        return AudioReply(data=bytes(message), content_type=content_type)
    raise TypeError(f"Unsupported message type: {type(message).__name__}")
