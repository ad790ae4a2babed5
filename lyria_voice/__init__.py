"""
lyria_voice - Lyria音声対話クライアント

プッシュ・トゥ・トークで録音した発話を、発話ごとに開くWebSocketで推論サービスへ送り、
応答（音声またはテキスト）を再生するクライアントです。
仮想ジョイスティックによるロボット（Otto）操作も含みます。

主要モジュール:
- session_client: 録音→送信→応答待ち→再生のライフサイクルを管理するセッションクライアント
- capture: PyAudioベースのマイク録音
- playback: pygame / pyttsx3ベースの応答再生
- throttle: ジョイスティック入力のクランプ・正規化・スロットル
- robot_client: aiohttpによるロボットへのHTTPコマンド送信
- gui: Pygameベースのステータス表示と入力処理
"""

from .gate import GateDecision, check_utterance_length
from .replies import AudioReply, TextReply, classify_message
from .session_client import Session, SessionClient, SessionResult
from .state_machine import LifecycleState, SessionStatus
from .throttle import DirectionCommand, DirectionalThrottle

__all__ = [
    'AudioReply',
    'DirectionCommand',
    'DirectionalThrottle',
    'GateDecision',
    'LifecycleState',
    'Session',
    'SessionClient',
    'SessionResult',
    'SessionStatus',
    'TextReply',
    'check_utterance_length',
    'classify_message',
]

__version__ = '1.0.0'
