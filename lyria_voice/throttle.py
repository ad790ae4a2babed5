"""
方向コマンドのスロットル

仮想ジョイスティックの連続的な2次元入力を、レート制限された離散コマンドに変換します。

処理フロー:
    1. クランプ: 半径を超える変位ベクトルを方向を保ったまま半径に縮める
    2. 正規化: 各軸を独立に ±output_range へ線形変換
    3. スロットル: interval内の後続サンプルは破棄（キューイングしない）
    4. リリース: 入力終了時はスロットルを無視して即座にゼロベクトルを送信（停止の保証）
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectionCommand:
    """正規化済みの方向コマンド（画面座標系、Yは下向きが正）"""
    x: int
    y: int


STOP = DirectionCommand(0, 0)


def clamp_displacement(dx: float, dy: float, radius: float) -> Tuple[float, float]:
    """
    変位ベクトルを半径radiusの円内にクランプ

    Examples:
        >>> clamp_displacement(300, 0, 75)
        (75.0, 0.0)
    """
    if radius <= 0:
        raise ValueError(f"radius must be positive (got {radius})")
    distance = math.hypot(dx, dy)
    if distance <= radius:
        return float(dx), float(dy)
    ratio = radius / distance
    return dx * ratio, dy * ratio


def normalize_displacement(dx: float, dy: float, radius: float, output_range: int = 100) -> DirectionCommand:
    """
    クランプ済みの変位を ±output_range の整数コマンドに変換

    各軸は独立に変換され、念のため範囲外の値は端に丸めます。
    """
    def scale(value: float) -> int:
        scaled = round(value / radius * output_range)
        return max(-output_range, min(output_range, scaled))

    return DirectionCommand(scale(dx), scale(dy))


class DirectionalThrottle:
    """
    「ウィンドウ内は最新のみ」方式のコマンドスロットル

    前回送信からinterval秒を超えて経過していればその時点のサンプルを送信し、
    経過していなければサンプルを破棄します。

    Attributes:
        send (callable): DirectionCommandを受け取る送信関数
        radius (float): ジョイスティック半径
        output_range (int): 出力範囲
        interval (float): 最小送信間隔（秒）
        now_fn (callable): 現在時刻（秒）を返す関数（テスト用に差し替え可能）
    """

    def __init__(
        self,
        send: Callable[[DirectionCommand], None],
        radius: float = 75.0,
        output_range: int = 100,
        interval: float = 0.150,
        now_fn: Callable[[], float] = time.monotonic,
    ):
        self.send = send
        self.radius = radius
        self.output_range = output_range
        self.interval = interval
        self.now_fn = now_fn
        self._last_sent: Optional[float] = None

    def submit(self, dx: float, dy: float) -> Optional[DirectionCommand]:
        """
        ポインター位置のサンプルを投入

        Args:
            dx: 中心からのX方向変位（上限なし）
            dy: 中心からのY方向変位（上限なし）

        Returns:
            DirectionCommand: 送信した場合はそのコマンド、破棄した場合はNone
        """
        now = self.now_fn()
        if self._last_sent is not None and now - self._last_sent <= self.interval:
            return None

        cx, cy = clamp_displacement(dx, dy, self.radius)
        command = normalize_displacement(cx, cy, self.radius, self.output_range)
        self._last_sent = now
        self.send(command)
        return command

    def release(self) -> DirectionCommand:
        """
        入力終了: スロットルを経由せずにゼロベクトルを送信

        送信タイミングの記録は更新しないため、直後のsubmit()には影響しません。
        """
        logger.debug("Joystick released, sending stop command")
        self.send(STOP)
        return STOP
