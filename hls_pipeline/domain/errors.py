from typing import Optional


class PipelineError(RuntimeError):
    """パイプラインの致命的エラーの基底クラスです。"""

    stage = "pipeline"

    def __init__(self, message: str, diagnostic: Optional[str] = None) -> None:
        super().__init__(message)
        self.diagnostic = diagnostic


class FetchError(PipelineError):
    """入力オブジェクトを取得できなかったことを表します。"""

    stage = "fetch"


class TranscodeError(PipelineError):
    """トランスコードエンジンの実行に失敗したことを表します。

    diagnostic にはエンジンの stdout / stderr が入ります。
    """

    stage = "transcode"


class PublishError(PipelineError):
    """出力ファイルのアップロードに失敗したことを表します。"""

    stage = "publish"


class MetadataError(PipelineError):
    """メタデータストアとの通信に失敗したことを表します。

    レコードが存在しないことはエラーではありません。
    """

    stage = "metadata"
