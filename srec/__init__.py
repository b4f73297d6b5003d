"""
srec — ブラウザ操作のステップ記録・再生ツール

人が操作したブラウザのクリック・入力・遷移を手順書形式の xlsx に記録し、
同じファイルを Playwright で再生する。
"""

__version__ = "0.1.0"
