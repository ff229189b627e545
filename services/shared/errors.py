"""
Shared: 例外定義

ブローカー層の失敗とイベントのデコード失敗、注文受付の入力エラーを区別する。
"""


class BrokerError(Exception):
    """ブローカー関連エラーの基底クラス"""


class BrokerConnectionError(BrokerError):
    """起動時にブローカーへ接続できない（致命的: 起動を中止する）"""


class BrokerNotConnectedError(BrokerError):
    """connect() 前、または disconnect() 後に操作しようとした"""


class PublishError(BrokerError):
    """トランスポートが送信を拒否した"""


class DecodeError(Exception):
    """ペイロードがトピックのスキーマに一致しない"""


class InvalidOrderError(ValueError):
    """注文作成リクエストが入力制約に違反している"""
