"""
エラー定義

音声セッションの各段階で発生しうる失敗を表す例外クラス群です。
いずれもSessionClientの境界で捕捉され、IDLEへの遷移とステータス通知に変換されます。
"""


class VoiceClientError(Exception):
    """Lyria Voiceクライアントの基底例外"""


class CapturePermissionDenied(VoiceClientError):
    """マイクへのアクセスが拒否された"""


class CaptureError(VoiceClientError):
    """録音の開始・停止に失敗した"""


class UtteranceTooShort(VoiceClientError):
    """
    録音データが最小長に満たない

    Attributes:
        length: 録音データのバイト数
        threshold: 最小バイト数
    """

    def __init__(self, length: int, threshold: int):
        super().__init__(f"Utterance too short: {length} bytes (minimum {threshold})")
        self.length = length
        self.threshold = threshold


class SessionConnectionError(VoiceClientError):
    """WebSocketの接続失敗、または応答前の切断"""


class PlaybackError(VoiceClientError):
    """応答を受信したが再生・読み上げできなかった"""
