"""ロギング設定

Lyria Voiceのログはlogs/lyria_voice.log（毎日0時にローテーション）と標準出力に出力します。
セッションの通し番号（Session #N）付きのメッセージを追えるよう、行番号も含めます。
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import List, Union

LOG_FILE_NAME = "lyria_voice.log"
BACKUP_DAYS = 7
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# フレーム単位・リクエスト単位のログを出すライブラリ
NOISY_LOGGERS = ("websockets", "aiohttp")


def resolve_level(level: Union[int, str]) -> int:
    """
    "DEBUG"などのレベル名を数値に変換（不明な名前はINFO）
    """
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _build_handlers(log_path: Path, level: int) -> List[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = [
        TimedRotatingFileHandler(log_path / LOG_FILE_NAME, when='midnight', backupCount=BACKUP_DAYS),
        logging.StreamHandler(sys.stdout),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
    return handlers


def setup_logging(log_dir: Union[str, Path] = "logs", level: Union[int, str] = logging.INFO):
    """
    ルートロガーを設定

    既存のハンドラーは閉じてから置き換えるため、複数回呼んでもログは重複しません。

    Args:
        log_dir: ログファイル出力ディレクトリ
        level: ログレベル（AppConfig.log_levelの文字列も可）

    Returns:
        ルートロガー
    """
    level = resolve_level(level)
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    for handler in _build_handlers(log_path, level):
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging initialized (log_dir={log_path}, level={logging.getLevelName(level)})")
    return root_logger
