#!/usr/bin/env python3
"""
Lyria Voice アプリケーション

プッシュ・トゥ・トークで録音した発話をLyriaの推論サービスへ送信し、
応答を再生（音声）または読み上げ（テキスト）します。
手動モードでは仮想ジョイスティックでロボット（Otto）を操作します。

動作フロー:
1. SPACE押下で録音開始（SessionClient.begin）
2. SPACE解放で録音終了・送信（SessionClient.end、バックグラウンドタスク）
3. 応答を再生してIDLEに戻る
4. ESCで進行中のセッションを中断（SessionClient.abort）
"""

import asyncio
import logging
from typing import Optional

from .capture import PyAudioCapture
from .config_models import AppConfig, load_config
from .gui import GUIHandler
from .logging_config import setup_logging
from .playback import ReplyPlayer
from .robot_client import RobotClient, RobotMode
from .session_client import SessionClient
from .state_machine import LifecycleState, SessionStatus
from .throttle import DirectionCommand, DirectionalThrottle

logger = logging.getLogger(__name__)


class VoiceApp:
    """
    アプリケーション管理クラス

    セッションクライアント、GUI、ロボット操作を一元的に管理します。
    GUIのコールバックは同期関数のため、非同期処理はタスクとしてスケジュールします。

    Attributes:
        config (AppConfig): 設定
        gui (GUIHandler): 表示と入力
        capture (PyAudioCapture): 録音ソース
        player (ReplyPlayer): 応答の再生
        client (SessionClient): 音声セッションクライアント
        robot (RobotClient): ロボット用HTTPクライアント
        throttle (DirectionalThrottle): ジョイスティック入力のスロットル
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or load_config()
        self.logger = logging.getLogger(__name__)

        self.capture = PyAudioCapture(self.config.audio)
        self.player = ReplyPlayer()
        self.client = SessionClient(
            capture=self.capture,
            playback=self.player,
            config=self.config.session,
            on_status=self.on_status,
            on_state_change=self.on_state_change,
        )

        controller = self.config.controller
        self.robot = RobotClient(
            base_url=controller.base_url,
            timeout=controller.request_timeout,
            invert_y=controller.invert_y,
            on_connection_status=self.on_robot_status,
        )
        self.throttle = DirectionalThrottle(
            send=self.send_robot_command,
            radius=controller.joystick_radius,
            output_range=controller.output_range,
            interval=controller.throttle_interval,
        )

        self.gui = GUIHandler(
            joystick_radius=controller.joystick_radius,
            on_talk_start=self.start_talking,
            on_talk_end=self.stop_talking,
            on_abort=self.abort,
            on_joystick_move=self.throttle.submit,
            on_joystick_release=self.throttle.release,
            on_mode_select=lambda mode: self._spawn(self.robot.set_mode(RobotMode(mode))),
        )
        self._tasks = set()
        self._begin_task = None

    def _spawn(self, coro):
        """コルーチンをタスクとして実行し、完了まで参照を保持"""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ================================================================================
    # コールバック
    # ================================================================================

    def on_status(self, status: SessionStatus):
        self.logger.info(f"Status: {status.value}")
        self.gui.set_status(status)

    def on_state_change(self, old_state: LifecycleState, new_state: LifecycleState):
        if new_state is LifecycleState.IDLE:
            self.gui.set_level(0.0)

    def on_robot_status(self, status: str):
        self.gui.set_robot_status(status)

    def send_robot_command(self, command: DirectionCommand):
        self._spawn(self.robot.send(command))

    def start_talking(self):
        self._begin_task = self._spawn(self.client.begin())

    def stop_talking(self):
        self._spawn(self._end_after_begin(self._begin_task))

    async def _end_after_begin(self, begin_task):
        # キーを素早く離した場合、録音開始の完了を待ってから終了する
        if begin_task is not None:
            await asyncio.wait({begin_task})
        await self.client.end()

    def abort(self):
        self.player.stop()
        self._spawn(self.client.abort())

    # ================================================================================
    # メインループ
    # ================================================================================

    async def run(self):
        """
        アプリケーションのメインループ

        GUI更新の合間にイベントループへ制御を返し、セッション処理を進めます。
        """
        self.logger.info("Lyria Voice started")
        try:
            while self.gui.running:
                self.gui.update()
                handle = self.client.capture_handle
                if handle is not None:
                    self.gui.set_level(handle.level)
                await asyncio.sleep(0.001)
        finally:
            await self.cleanup()

    async def cleanup(self):
        """
        進行中のセッションを中断し、リソースを解放
        """
        self.logger.info("Cleaning up...")
        await self.client.abort()
        if self.gui.dragging:
            self.throttle.release()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.robot.close()
        self.capture.terminate()
        self.player.close()
        self.gui.quit()
        self.logger.info("Lyria Voice exited")


def main():
    config = load_config()
    setup_logging(config.log_dir, config.log_level)
    app = VoiceApp(config)
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)


if __name__ == "__main__":
    main()
