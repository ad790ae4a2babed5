"""最小長ゲート

ノイズだけの録音や空の録音で接続の往復を無駄にしないための判定です。
閾値はサーバーとネゴシエーションしない調整用の定数です。
"""

from enum import Enum


class GateDecision(Enum):
    """最小長判定の結果"""
    ACCEPT = "accept"
    REJECT_TOO_SHORT = "reject-too-short"


def check_utterance_length(length: int, threshold: int) -> GateDecision:
    """
    録音データのバイト数を閾値と比較

    Args:
        length: 録音データのバイト数
        threshold: 送信を許可する最小バイト数

    Returns:
        GateDecision: 閾値以上ならACCEPT、未満ならREJECT_TOO_SHORT

    Raises:
        ValueError: lengthまたはthresholdが負の場合

    Examples:
        >>> check_utterance_length(0, 3000)
        <GateDecision.REJECT_TOO_SHORT: 'reject-too-short'>
        >>> check_utterance_length(5000, 3000)
        <GateDecision.ACCEPT: 'accept'>
    """
    if length < 0 or threshold < 0:
        raise ValueError(f"length and threshold must be non-negative (length={length}, threshold={threshold})")
    if length < threshold:
        return GateDecision.REJECT_TOO_SHORT
    return GateDecision.ACCEPT
