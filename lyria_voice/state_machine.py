"""セッション状態管理

このモジュールは、音声セッションのライフサイクル状態遷移を明示的に管理します。
状態そのものが排他制御の役割を担い、同時に2つの録音・セッションが存在しないことを保証します。
"""

from enum import Enum, auto
import logging

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    """
    ライフサイクル状態定義

    Attributes:
        IDLE: 待機中（ユーザーの開始操作待ち）
        RECORDING: 録音中
        SENDING: 接続・送信中
        AWAITING_REPLY: 応答待ち（応答の再生を含む）
    """
    IDLE = auto()
    RECORDING = auto()
    SENDING = auto()
    AWAITING_REPLY = auto()


class SessionStatus(Enum):
    """
    ステータス通知用の状態

    UIレイヤー（Status Reporter）に通知される値です。
    表示文言はUI側の責務のため、ここでは識別子のみ定義します。
    """
    RECORDING = "recording"
    PERMISSION_DENIED = "permission-denied"
    CAPTURE_ERROR = "capture-error"
    TOO_SHORT = "too-short"
    SENDING = "sending"
    AWAITING_REPLY = "awaiting-reply"
    CONNECTION_ERROR = "connection-error"
    PLAYBACK_ERROR = "playback-error"
    DONE = "done"
    ABORTED = "aborted"


class StateTransition:
    """
    状態遷移管理

    セッションの状態遷移ルールを定義し、
    不正な状態遷移を検出します。
    """

    # どの状態からでもIDLEへ戻れる（エラー・中断時）
    ALLOWED_TRANSITIONS = {
        LifecycleState.IDLE: {LifecycleState.RECORDING},
        LifecycleState.RECORDING: {LifecycleState.SENDING, LifecycleState.IDLE},
        LifecycleState.SENDING: {LifecycleState.AWAITING_REPLY, LifecycleState.IDLE},
        LifecycleState.AWAITING_REPLY: {LifecycleState.IDLE},
    }

    @classmethod
    def is_valid_transition(cls, from_state: LifecycleState, to_state: LifecycleState) -> bool:
        """
        状態遷移の妥当性チェック

        Args:
            from_state: 現在の状態
            to_state: 遷移先の状態

        Returns:
            True: 遷移可能, False: 遷移不可

        Examples:
            >>> StateTransition.is_valid_transition(LifecycleState.IDLE, LifecycleState.RECORDING)
            True
            >>> StateTransition.is_valid_transition(LifecycleState.IDLE, LifecycleState.AWAITING_REPLY)
            False
        """
        return to_state in cls.ALLOWED_TRANSITIONS.get(from_state, set())

    @classmethod
    def get_allowed_transitions(cls, from_state: LifecycleState) -> set:
        """
        指定した状態から遷移可能な状態の一覧を取得

        Args:
            from_state: 現在の状態

        Returns:
            遷移可能な状態のセット
        """
        return cls.ALLOWED_TRANSITIONS.get(from_state, set())
