"""
音声セッションクライアント

1回の発話ごとにWebSocket接続を1本開き、録音データを1つのバイナリフレームで送信して、
最初の1メッセージだけを応答として受け取るプッシュ・トゥ・トークのクライアントです。

ライフサイクル:
    IDLE → RECORDING → SENDING → AWAITING_REPLY → IDLE

    - begin(): マイクのアクセス確認と録音開始
    - end(): 録音停止、最小長ゲート、接続・送信・応答受信・再生
    - abort(): 録音中・送信中・応答待ちのいずれでも中断してIDLEに戻る

エラー処理:
    すべての失敗はこのクラスの境界で捕捉され、IDLEへの遷移とステータス通知に変換されます。
    自動再接続・再試行は行いません（ユーザーが再度開始する）。
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import websockets

from .config_models import SessionConfig
from .errors import CaptureError, CapturePermissionDenied, PlaybackError, SessionConnectionError, UtteranceTooShort
from .gate import GateDecision, check_utterance_length
from .interfaces import CaptureHandle, CaptureSource, PlaybackSink
from .replies import AudioReply, Reply, TextReply, classify_message
from .state_machine import LifecycleState, SessionStatus, StateTransition

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """
    1回の発話に対応するセッション

    Attributes:
        attempt_id: 診断用の通し番号（再試行には使わない）
        utterance: 送信する録音データ（セッション終了時に破棄）
        connection: WebSocket接続
        task: 送受信を実行しているタスク
        aborted: abort()で中断されたか
    """
    attempt_id: int
    utterance: Optional[bytes]
    connection: Optional[object] = None
    task: Optional[asyncio.Task] = None
    aborted: bool = False


@dataclass(frozen=True)
class SessionResult:
    """
    end()の結果

    Attributes:
        status: 最終ステータス
        reply: 受信した応答（エラー時はNone）
        attempt_id: セッションの通し番号（接続前に終了した場合はNone）
    """
    status: SessionStatus
    reply: Optional[Reply] = None
    attempt_id: Optional[int] = None


class SessionClient:
    """
    プッシュ・トゥ・トーク音声セッションクライアント

    ライフサイクル状態そのものがロックの役割を担います。IDLE以外でのbegin()は拒否され、
    同時に存在するセッションは常に最大1つです。

    Attributes:
        config (SessionConfig): 接続先と最小長などの設定
        capture (CaptureSource): 録音ソース
        playback (PlaybackSink): 応答の出力先
        on_status (callable): ステータス通知コールバック（SessionStatusを受け取る）
        on_state_change (callable): 状態遷移コールバック（旧状態, 新状態を受け取る）
        state (LifecycleState): 現在の状態
        session (Session): 進行中のセッション（なければNone）
        capture_handle (CaptureHandle): 録音中のハンドル（なければNone）
    """

    def __init__(
        self,
        capture: CaptureSource,
        playback: PlaybackSink,
        config: Optional[SessionConfig] = None,
        on_status: Optional[Callable[[SessionStatus], None]] = None,
        on_state_change: Optional[Callable[[LifecycleState, LifecycleState], None]] = None,
    ):
        self.config = config or SessionConfig()
        self.capture = capture
        self.playback = playback
        self.on_status = on_status
        self.on_state_change = on_state_change
        self.state = LifecycleState.IDLE
        self.session: Optional[Session] = None
        self.capture_handle: Optional[CaptureHandle] = None
        self._attempts = itertools.count(1)
        # begin()の待機中にabort()された場合を検出するための世代番号
        self._recording_epoch = 0
        self.logger = logging.getLogger(__name__)

    # ================================================================================
    # 状態遷移とステータス通知
    # ================================================================================

    def _set_state(self, new_state: LifecycleState) -> bool:
        """
        状態遷移（検証付き）

        Returns:
            bool: 遷移した場合True。不正な遷移は警告ログを出力して行わない
        """
        if not StateTransition.is_valid_transition(self.state, new_state):
            allowed = [s.name for s in StateTransition.get_allowed_transitions(self.state)]
            self.logger.warning(
                f"Invalid state transition: {self.state.name} → {new_state.name} "
                f"(allowed: {allowed})"
            )
            return False

        old_state = self.state
        self.state = new_state
        self.logger.info(f"State transition: {old_state.name} → {new_state.name}")
        if self.on_state_change:
            try:
                self.on_state_change(old_state, new_state)
            except Exception as e:
                self.logger.error(f"State change callback error: {e}", exc_info=True)
        return True

    def _report(self, status: SessionStatus):
        self.logger.debug(f"Status: {status.value}")
        if self.on_status:
            try:
                self.on_status(status)
            except Exception as e:
                self.logger.error(f"Status callback error: {e}", exc_info=True)

    def _finish(self, status: SessionStatus, session: Optional[Session] = None,
                reply: Optional[Reply] = None) -> SessionResult:
        """セッションを破棄してIDLEに戻し、結果を返す"""
        if session is not None:
            session.utterance = None
            session.connection = None
            if self.session is session:
                self.session = None
        if self.state is not LifecycleState.IDLE:
            self._set_state(LifecycleState.IDLE)
        self._report(status)
        return SessionResult(
            status=status,
            reply=reply,
            attempt_id=session.attempt_id if session is not None else None,
        )

    # ================================================================================
    # 録音
    # ================================================================================

    async def begin(self) -> bool:
        """
        録音を開始（IDLE → RECORDING）

        先にRECORDINGへ遷移してからマイクのアクセスを確認します。
        アクセス待ちの間に2回目のbegin()が来ても拒否されます。

        Returns:
            bool: 録音を開始できた場合True
        """
        if self.state is not LifecycleState.IDLE:
            self.logger.warning(f"begin() ignored: a session is already active ({self.state.name})")
            return False

        self._set_state(LifecycleState.RECORDING)
        self._recording_epoch += 1
        epoch = self._recording_epoch

        try:
            granted = await self.capture.request_access()
        except CapturePermissionDenied:
            granted = False
        except Exception as e:
            self.logger.error(f"Microphone access request failed: {e}", exc_info=True)
            granted = False

        if epoch != self._recording_epoch:
            self.logger.info("Recording aborted while waiting for microphone access")
            return False
        if not granted:
            self.logger.warning("Microphone access denied")
            self._finish(SessionStatus.PERMISSION_DENIED)
            return False

        try:
            handle = await self.capture.start_capture()
        except CaptureError as e:
            self.logger.error(f"Failed to start capture: {e}")
            self._finish(SessionStatus.CAPTURE_ERROR)
            return False
        except Exception as e:
            self.logger.error(f"Unexpected error while starting capture: {e}", exc_info=True)
            self._finish(SessionStatus.CAPTURE_ERROR)
            return False

        if epoch != self._recording_epoch:
            self.logger.info("Recording aborted while starting capture")
            await self._discard_capture(handle)
            return False

        self.capture_handle = handle
        self._report(SessionStatus.RECORDING)
        return True

    async def _discard_capture(self, handle: CaptureHandle):
        try:
            await self.capture.stop(handle)
        except Exception as e:
            self.logger.warning(f"Error while discarding capture: {e}")

    async def _take_utterance(self) -> bytes:
        """
        録音を停止して最小長ゲートを通す

        Raises:
            CaptureError: 録音の停止に失敗した場合
            UtteranceTooShort: 最小長に満たない場合
        """
        handle, self.capture_handle = self.capture_handle, None
        utterance = await self.capture.stop(handle)
        threshold = self.config.min_utterance_bytes
        if check_utterance_length(len(utterance), threshold) is GateDecision.REJECT_TOO_SHORT:
            raise UtteranceTooShort(len(utterance), threshold)
        return utterance

    # ================================================================================
    # 送信と応答
    # ================================================================================

    async def end(self) -> Optional[SessionResult]:
        """
        録音を終了して送信し、応答を再生する（RECORDING → ... → IDLE）

        Returns:
            SessionResult: セッションの結果。RECORDING以外で呼ばれた場合はNone
        """
        if self.state is not LifecycleState.RECORDING or self.capture_handle is None:
            self.logger.warning(f"end() ignored: not recording ({self.state.name})")
            return None

        epoch = self._recording_epoch
        try:
            utterance = await self._take_utterance()
        except UtteranceTooShort as e:
            self.logger.info(str(e))
            return self._finish(SessionStatus.TOO_SHORT)
        except CaptureError as e:
            self.logger.error(f"Failed to stop capture: {e}")
            return self._finish(SessionStatus.CAPTURE_ERROR)
        except Exception as e:
            self.logger.error(f"Unexpected error while stopping capture: {e}", exc_info=True)
            return self._finish(SessionStatus.CAPTURE_ERROR)

        if epoch != self._recording_epoch:
            # 録音停止の待機中にabort()済み（IDLEへの遷移と通知はabort側で実施）
            return SessionResult(status=SessionStatus.ABORTED)

        session = Session(attempt_id=next(self._attempts), utterance=utterance)
        self.session = session
        self._set_state(LifecycleState.SENDING)
        self._report(SessionStatus.SENDING)
        self.logger.info(f"Session #{session.attempt_id}: sending {len(utterance)} bytes")

        session.task = asyncio.create_task(self._exchange(session))
        try:
            await asyncio.wait({session.task})
        except asyncio.CancelledError:
            session.task.cancel()
            raise
        if session.task.cancelled():
            # _exchangeが開始する前にキャンセルされた
            self.logger.info(f"Session #{session.attempt_id} aborted")
            return self._finish(SessionStatus.ABORTED, session)
        return session.task.result()

    async def _exchange(self, session: Session) -> SessionResult:
        """
        接続・送信・応答受信・再生を順に実行

        abort()によるキャンセルはここで捕捉し、ABORTEDとして終了します。
        """
        try:
            reply = await self._transmit(session)
        except asyncio.CancelledError:
            reason = "aborted" if session.aborted else "cancelled"
            self.logger.info(f"Session #{session.attempt_id} {reason}")
            await self._close_connection(session)
            return self._finish(SessionStatus.ABORTED, session)
        except SessionConnectionError as e:
            self.logger.error(f"Session #{session.attempt_id} connection error: {e}")
            await self._close_connection(session)
            return self._finish(SessionStatus.CONNECTION_ERROR, session)
        except Exception as e:
            self.logger.error(f"Session #{session.attempt_id} unexpected transport error: {e}", exc_info=True)
            await self._close_connection(session)
            return self._finish(SessionStatus.CONNECTION_ERROR, session)

        try:
            await self._dispatch(reply)
        except asyncio.CancelledError:
            self.logger.info(f"Session #{session.attempt_id} aborted during playback")
            return self._finish(SessionStatus.ABORTED, session, reply)
        except PlaybackError as e:
            self.logger.error(f"Session #{session.attempt_id} playback error: {e}")
            return self._finish(SessionStatus.PLAYBACK_ERROR, session, reply)
        except Exception as e:
            self.logger.error(f"Session #{session.attempt_id} unexpected playback error: {e}", exc_info=True)
            return self._finish(SessionStatus.PLAYBACK_ERROR, session, reply)

        self.logger.info(f"Session #{session.attempt_id} completed")
        return self._finish(SessionStatus.DONE, session, reply)

    async def _transmit(self, session: Session) -> Reply:
        """
        接続して録音データを送信し、最初の1メッセージを応答として返す

        応答を受け取った直後に接続を閉じるため、2つ目以降のメッセージが
        このセッションや別のセッションに配送されることはありません。

        Raises:
            SessionConnectionError: 接続失敗、送信失敗、応答前の切断、応答タイムアウト
        """
        try:
            session.connection = await websockets.connect(
                self.config.url,
                open_timeout=self.config.open_timeout,
                close_timeout=self.config.close_timeout,
                max_size=None,
            )
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            raise SessionConnectionError(f"Could not connect to {self.config.url}: {e}") from e
        self.logger.debug(f"Session #{session.attempt_id}: WebSocket connection established")

        try:
            # bytesを渡すとバイナリフレームで送信される
            await session.connection.send(session.utterance)
        except websockets.exceptions.ConnectionClosed as e:
            raise SessionConnectionError(f"Connection closed while sending: {e}") from e
        session.utterance = None

        self._set_state(LifecycleState.AWAITING_REPLY)
        self._report(SessionStatus.AWAITING_REPLY)

        try:
            message = await asyncio.wait_for(session.connection.recv(), self.config.reply_timeout)
        except asyncio.TimeoutError as e:
            raise SessionConnectionError(f"No reply within {self.config.reply_timeout}s") from e
        except websockets.exceptions.ConnectionClosed as e:
            raise SessionConnectionError(f"Connection closed before a reply was received: {e}") from e

        reply = classify_message(message, self.config.reply_content_type)
        await self._close_connection(session)
        return reply

    async def _close_connection(self, session: Session):
        connection, session.connection = session.connection, None
        if connection is None:
            return
        try:
            await connection.close()
        except (OSError, websockets.exceptions.WebSocketException) as e:
            self.logger.debug(f"Error while closing connection: {e}")
        self.logger.debug(f"Session #{session.attempt_id}: WebSocket connection closed")

    async def _dispatch(self, reply: Reply):
        """応答を種別に応じて再生または読み上げ"""
        if isinstance(reply, AudioReply):
            self.logger.info(f"Audio reply received ({len(reply.data)} bytes)")
            await self.playback.play_audio(reply.data, reply.content_type)
        elif isinstance(reply, TextReply):
            self.logger.info(f"Text reply received: {reply.text!r}")
            await self.playback.speak(reply.text)

    # ================================================================================
    # 中断
    # ================================================================================

    async def abort(self) -> bool:
        """
        進行中の録音またはセッションを中断してIDLEに戻す

        録音中なら録音データを破棄し、送信中・応答待ちなら接続を閉じます。

        Returns:
            bool: 中断した場合True（IDLEでは何もしない）
        """
        if self.state is LifecycleState.IDLE:
            return False

        if self.state is LifecycleState.RECORDING:
            self._recording_epoch += 1
            handle, self.capture_handle = self.capture_handle, None
            if handle is not None:
                await self._discard_capture(handle)
            self.logger.info("Recording aborted")
            self._finish(SessionStatus.ABORTED)
            return True

        session = self.session
        if session is None or session.task is None:
            return False
        session.aborted = True
        if session.task.done():
            # 送受信タスクが終了済みなのにIDLEへ戻っていない
            self.logger.warning(f"Session #{session.attempt_id} task already finished, forcing IDLE")
            self._finish(SessionStatus.ABORTED, session)
            return True
        session.task.cancel()
        await asyncio.wait({session.task})
        return True
