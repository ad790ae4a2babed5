"""
設定モデル - Pydanticベースの型安全な設定管理

このモジュールは、Lyria Voiceクライアント全体の設定を型安全に管理します。
環境変数（.envファイル）から自動的に読み込まれ、デフォルト値とバリデーションを提供します。

環境変数の例:
    LYRIA_SESSION__URL=ws://localhost:8000/ws
    LYRIA_SESSION__MIN_UTTERANCE_BYTES=2000
    LYRIA_CONTROLLER__BASE_URL=http://192.168.4.1
"""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AudioConfig(BaseModel):
    """
    録音設定

    マイク入力に関する設定を管理します。

    Attributes:
        sample_rate: 録音サンプルレート
        channels: 入力チャンネル数（モノラル: 1）
        chunk_size: 1回の読み取りフレーム数
        input_device_index: 入力デバイスインデックス（None: システム既定）
    """
    sample_rate: int = Field(default=16000, gt=0, description="録音サンプルレート")
    channels: int = Field(default=1, ge=1, description="入力チャンネル数（モノラル）")
    chunk_size: int = Field(default=1024, gt=0, description="バッファサイズ（フレーム数）")
    input_device_index: Optional[int] = Field(default=None, description="入力デバイスインデックス")


class SessionConfig(BaseModel):
    """
    音声セッション設定

    推論サービスへのWebSocket接続と、発話の最小長判定に関する設定です。

    Attributes:
        url: WebSocketエンドポイント
        min_utterance_bytes: 送信を許可する最小バイト数（これ未満は「短すぎる」）
        open_timeout: 接続確立のタイムアウト（秒）
        reply_timeout: 応答待ちのタイムアウト（秒）
        close_timeout: クローズハンドシェイクのタイムアウト（秒）
        reply_content_type: バイナリ応答を再生する際のコンテンツタイプ
    """
    url: str = Field(default="wss://lyria-servicodetranscricao.onrender.com/ws", description="WebSocket URL")
    min_utterance_bytes: int = Field(default=3000, ge=0, description="最小発話サイズ（バイト）")
    open_timeout: float = Field(default=10.0, gt=0, description="接続タイムアウト（秒）")
    reply_timeout: float = Field(default=60.0, gt=0, description="応答待ちタイムアウト（秒）")
    close_timeout: float = Field(default=2.0, gt=0, description="クローズタイムアウト（秒）")
    reply_content_type: str = Field(default="audio/mpeg", description="応答音声のコンテンツタイプ")


class ControllerConfig(BaseModel):
    """
    ロボットコントローラー設定

    仮想ジョイスティックとロボット（ESP32アクセスポイント）へのHTTP送信設定です。

    Attributes:
        base_url: ロボットのベースURL
        joystick_radius: ジョイスティックの可動半径（ピクセル）
        output_range: 正規化後の出力範囲（±output_range）
        throttle_interval: コマンド送信の最小間隔（秒）
        request_timeout: HTTPリクエストのタイムアウト（秒）
        invert_y: 画面座標のY軸を反転して送信するか
    """
    base_url: str = Field(default="http://192.168.4.1", description="ロボットのURL")
    joystick_radius: float = Field(default=75.0, gt=0, description="ジョイスティック半径")
    output_range: int = Field(default=100, gt=0, description="出力範囲")
    throttle_interval: float = Field(default=0.150, ge=0, description="送信間隔（秒）")
    request_timeout: float = Field(default=2.0, gt=0, description="HTTPタイムアウト（秒）")
    invert_y: bool = Field(default=True, description="Y軸反転")


class AppConfig(BaseSettings):
    """
    アプリケーション全体設定

    環境変数から自動的に読み込まれる、アプリケーション全体の設定を管理します。
    .env ファイルからの読み込みに対応しています。

    Attributes:
        audio: 録音設定
        session: 音声セッション設定
        controller: ロボットコントローラー設定
        log_dir: ログ出力ディレクトリ
        log_level: ログレベル名

    Examples:
        >>> from lyria_voice.config_models import AppConfig
        >>> config = AppConfig()
        >>> print(config.session.min_utterance_bytes)
        3000
    """
    model_config = SettingsConfigDict(
        env_prefix="LYRIA_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    audio: AudioConfig = Field(default_factory=AudioConfig, description="録音設定")
    session: SessionConfig = Field(default_factory=SessionConfig, description="セッション設定")
    controller: ControllerConfig = Field(default_factory=ControllerConfig, description="コントローラー設定")

    log_dir: Path = Field(default=Path("logs"), description="ログディレクトリ")
    log_level: str = Field(default="INFO", description="ログレベル")


def load_config(env_file: Optional[Path] = None) -> AppConfig:
    """
    .envを読み込んだうえでAppConfigを生成

    Args:
        env_file: .envファイルのパス（None: カレントディレクトリの.env）

    Returns:
        AppConfig: 読み込まれた設定
    """
    load_dotenv(dotenv_path=env_file)
    if env_file is not None:
        return AppConfig(_env_file=env_file)
    return AppConfig()
