#!/usr/bin/env python3
"""
Lyria Voice 起動スクリプト

`python main.py` で起動します（インストール後は `lyria-voice` コマンドでも起動可能）。
"""

from lyria_voice.app import main

if __name__ == "__main__":
    main()
