"""
GUIハンドラー - Pygameベースのステータス表示と入力処理

SessionClientから通知されるステータスを表示し、ユーザー操作をコールバックで通知します。
表示内容そのものはプレゼンテーションの責務で、セッションのロジックは持ちません。

操作:
- SPACE（押下/解放）: 録音開始/録音終了して送信（プッシュ・トゥ・トーク）
- ESC: 進行中のセッションを中断
- TAB: 音声モード / 手動（ジョイスティック）モードの切り替え
- 手動モード時のマウスドラッグ: ジョイスティック操作
- 手動モード時の1 / 2キー: ロボットのモード（歩行 / 転がり）
- Q / ウィンドウを閉じる: 終了
"""

import logging
from typing import Callable, Optional

import pygame

from .state_machine import SessionStatus

logger = logging.getLogger(__name__)

# ステータスごとの表示文言
STATUS_LABELS = {
    None: "Segure ESPAÇO para falar com a Lyria",
    SessionStatus.RECORDING: "Gravando... solte para enviar",
    SessionStatus.PERMISSION_DENIED: "Permita o acesso ao microfone",
    SessionStatus.CAPTURE_ERROR: "Erro no microfone",
    SessionStatus.TOO_SHORT: "Áudio muito curto",
    SessionStatus.SENDING: "Enviando para Lyria...",
    SessionStatus.AWAITING_REPLY: "Processando...",
    SessionStatus.CONNECTION_ERROR: "Sem conexão com o servidor",
    SessionStatus.PLAYBACK_ERROR: "Erro ao reproduzir resposta",
    SessionStatus.DONE: "Lyria respondeu! Segure para falar novamente",
    SessionStatus.ABORTED: "Cancelado",
}


class GUIHandler:
    """
    Pygameベースのウィンドウ

    Attributes:
        screen (pygame.Surface): 描画サーフェス
        status (SessionStatus): 表示中のステータス（None: 初期状態）
        level (float): 録音レベル（0.0〜1.0）
        manual_mode (bool): 手動（ジョイスティック）モード中か
        robot_status (str): ロボットとの接続状態
        joystick_radius (float): ジョイスティックの可動半径（ピクセル）
        running (bool): GUI実行中フラグ
    """

    KNOB_RADIUS = 30

    def __init__(
        self,
        joystick_radius: float = 75.0,
        on_talk_start: Optional[Callable[[], None]] = None,
        on_talk_end: Optional[Callable[[], None]] = None,
        on_abort: Optional[Callable[[], None]] = None,
        on_joystick_move: Optional[Callable[[float, float], None]] = None,
        on_joystick_release: Optional[Callable[[], None]] = None,
        on_mode_select: Optional[Callable[[int], None]] = None,
    ):
        # mixerは再生側で初期化する
        pygame.display.init()
        if pygame.font.get_init() is False:
            pygame.font.init()

        self.screen = pygame.display.set_mode((800, 600))
        pygame.display.set_caption("Lyria Voice")
        self.screen_w, self.screen_h = self.screen.get_size()
        self.font = pygame.font.Font(None, 36)
        self.clock = pygame.time.Clock()

        self.joystick_radius = joystick_radius
        self.joystick_center = (self.screen_w // 2, self.screen_h // 2 + 60)

        self.on_talk_start = on_talk_start
        self.on_talk_end = on_talk_end
        self.on_abort = on_abort
        self.on_joystick_move = on_joystick_move
        self.on_joystick_release = on_joystick_release
        self.on_mode_select = on_mode_select

        self.status: Optional[SessionStatus] = None
        self.level = 0.0
        self.manual_mode = False
        self.robot_status = "Desconectado"
        self.robot_mode = 0
        self.knob_offset = (0.0, 0.0)
        self.dragging = False
        self.running = True

    # ================================================================================
    # イベント処理
    # ================================================================================

    def _emit(self, callback, *args):
        if callback:
            callback(*args)

    def _handle_event(self, event):
        if event.type == pygame.QUIT:
            self.running = False
        elif event.type == pygame.KEYDOWN:
            if event.key == pygame.K_q:
                self.running = False
            elif event.key == pygame.K_ESCAPE:
                self._emit(self.on_abort)
            elif event.key == pygame.K_TAB:
                self.manual_mode = not self.manual_mode
                logger.info(f"Manual mode: {self.manual_mode}")
            elif event.key == pygame.K_SPACE and not self.manual_mode:
                self._emit(self.on_talk_start)
            elif event.key in (pygame.K_1, pygame.K_2) and self.manual_mode:
                self.robot_mode = 0 if event.key == pygame.K_1 else 1
                self._emit(self.on_mode_select, self.robot_mode)
        elif event.type == pygame.KEYUP:
            if event.key == pygame.K_SPACE and not self.manual_mode:
                self._emit(self.on_talk_end)
        elif self.manual_mode:
            self._handle_joystick_event(event)

    def _handle_joystick_event(self, event):
        cx, cy = self.joystick_center
        if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            x, y = event.pos
            if (x - cx) ** 2 + (y - cy) ** 2 <= (self.joystick_radius + self.KNOB_RADIUS) ** 2:
                self.dragging = True
        elif event.type == pygame.MOUSEMOTION and self.dragging:
            dx, dy = event.pos[0] - cx, event.pos[1] - cy
            # ノブ表示用のクランプはここで行い、送信値のクランプはスロットル側に任せる
            distance = (dx * dx + dy * dy) ** 0.5
            if distance > self.joystick_radius:
                ratio = self.joystick_radius / distance
                self.knob_offset = (dx * ratio, dy * ratio)
            else:
                self.knob_offset = (dx, dy)
            self._emit(self.on_joystick_move, dx, dy)
        elif event.type == pygame.MOUSEBUTTONUP and event.button == 1 and self.dragging:
            self.dragging = False
            self.knob_offset = (0.0, 0.0)
            self._emit(self.on_joystick_release)

    # ================================================================================
    # 描画
    # ================================================================================

    def update(self):
        """
        GUI更新とイベント処理（フレームごとに呼び出す）
        """
        for event in pygame.event.get():
            self._handle_event(event)

        self.screen.fill((36, 36, 62))

        if self.manual_mode:
            self._draw_controller()
        else:
            self._draw_voice()

        hint = self.font.render("TAB: Voz / Manual", True, (160, 160, 200))
        self.screen.blit(hint, (20, 20))

        pygame.display.flip()
        self.clock.tick(60)

    def _draw_text_centered(self, text, y, color=(255, 255, 255)):
        surface = self.font.render(text, True, color)
        self.screen.blit(surface, ((self.screen_w - surface.get_width()) // 2, y))

    def _draw_voice(self):
        center = (self.screen_w // 2, self.screen_h // 2)
        recording = self.status is SessionStatus.RECORDING
        color = (220, 40, 60) if recording else (90, 70, 200)
        radius = 110 if recording else 100
        pygame.draw.circle(self.screen, color, center, radius)

        # 録音レベルメーター
        if recording:
            width = int(200 * max(0.0, min(1.0, self.level)))
            pygame.draw.rect(self.screen, (80, 80, 80), (self.screen_w // 2 - 100, center[1] + 130, 200, 12))
            pygame.draw.rect(self.screen, (0, 220, 120), (self.screen_w // 2 - 100, center[1] + 130, width, 12))

        self._draw_text_centered(STATUS_LABELS.get(self.status, ""), self.screen_h - 80)

    def _draw_controller(self):
        cx, cy = self.joystick_center
        self._draw_text_centered("Controle do Otto", 70)
        self._draw_text_centered(f"Status: {self.robot_status}", 110, (200, 200, 200))
        mode_label = "Modo: Andar (1)" if self.robot_mode == 0 else "Modo: Rolar (2)"
        self._draw_text_centered(mode_label, 150, (200, 200, 200))

        pygame.draw.circle(self.screen, (70, 70, 100), (cx, cy), int(self.joystick_radius))
        knob = (int(cx + self.knob_offset[0]), int(cy + self.knob_offset[1]))
        pygame.draw.circle(self.screen, (230, 230, 255), knob, self.KNOB_RADIUS)

    # ================================================================================
    # 状態の受け取り
    # ================================================================================

    def set_status(self, status: SessionStatus):
        """SessionClientからのステータスを表示に反映"""
        self.status = status

    def set_level(self, level: float):
        self.level = level

    def set_robot_status(self, status: str):
        self.robot_status = "Conectado" if status == "connected" else "Erro de Conexão"

    def quit(self):
        pygame.quit()
