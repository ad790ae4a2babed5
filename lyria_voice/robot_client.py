"""
ロボット（Otto）HTTPクライアント

ローカルネットワーク上のロボット（ESP32アクセスポイント）に、
方向コマンドとモード切り替えを単純なGETリクエストで送信します。

送りっぱなし（fire-and-forget）方式で、レスポンスボディは読みません。
方向コマンドは1本ずつ順番に送信します。送信待ちの間に新しいコマンドが来た場合、
古いコマンドは送信しません。停止コマンド（0, 0）は常に最後に届きます。
観測するのは接続の成否のみで、on_connection_statusコールバックに通知します。
"""

import asyncio
import logging
from enum import IntEnum
from typing import Callable, Optional

import aiohttp

from .throttle import DirectionCommand

logger = logging.getLogger(__name__)

STATUS_CONNECTED = "connected"
STATUS_CONNECTION_ERROR = "connection-error"


class RobotMode(IntEnum):
    """ロボットの走行モード"""
    WALK = 0
    ROLL = 1


class RobotClient:
    """
    ロボット用HTTPクライアント

    Attributes:
        base_url (str): ロボットのベースURL
        timeout (float): リクエストタイムアウト（秒）
        invert_y (bool): 画面座標（下が正）からロボット座標（前進が正）へY軸を反転するか
        on_connection_status (callable): 接続状態（"connected" / "connection-error"）を受け取るコールバック
    """

    def __init__(
        self,
        base_url: str = "http://192.168.4.1",
        timeout: float = 2.0,
        invert_y: bool = True,
        on_connection_status: Optional[Callable[[str], None]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.invert_y = invert_y
        self.on_connection_status = on_connection_status
        self._session: Optional[aiohttp.ClientSession] = None
        self._command_lock = asyncio.Lock()
        self._command_seq = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _report(self, status: str):
        if self.on_connection_status:
            self.on_connection_status(status)

    async def _get(self, path: str, params: dict) -> bool:
        """
        GETリクエストを送信し、接続の成否だけを返す

        HTTPステータスにかかわらず応答があれば成功とみなします。
        """
        try:
            session = await self._get_session()
            async with session.get(f"{self.base_url}{path}", params=params) as resp:
                logger.debug(f"GET {path} {params} -> {resp.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Robot request failed (GET {path}): {e}")
            self._report(STATUS_CONNECTION_ERROR)
            return False
        self._report(STATUS_CONNECTED)
        return True

    async def send_command(self, x: int, y: int) -> bool:
        """
        方向コマンドを送信（GET /cmd?x=&y=）

        Args:
            x: 横方向（-100〜100）
            y: 縦方向（画面座標系、下が正）

        Returns:
            bool: 送信して応答を得た場合True。新しいコマンドに置き換えられた場合はFalse
        """
        robot_y = -y if self.invert_y else y
        self._command_seq += 1
        seq = self._command_seq
        async with self._command_lock:
            if seq != self._command_seq:
                logger.debug(f"Command x={x} y={y} superseded before sending")
                return False
            return await self._get("/cmd", {"x": str(int(x)), "y": str(int(robot_y))})

    async def send(self, command: DirectionCommand) -> bool:
        """DirectionCommandを送信"""
        return await self.send_command(command.x, command.y)

    async def set_mode(self, mode: RobotMode) -> bool:
        """
        走行モードを切り替え（GET /setMode?mode=）
        """
        logger.info(f"Setting robot mode: {RobotMode(mode).name}")
        return await self._get("/setMode", {"mode": str(int(mode))})
