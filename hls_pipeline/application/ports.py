from pathlib import Path
from typing import Optional, Protocol, Sequence

from hls_pipeline.domain.models import EncodingPlan, TranscodeResult, VideoRecord


class TranscoderPort(Protocol):
    """エンコード計画を実行するトランスコードエンジンのポートです。"""

    def transcode(self, plan: EncodingPlan) -> TranscodeResult:
        """計画どおりにHLS出力ツリーを生成します。失敗時は TranscodeError を送出します。"""


class FileGatewayPort(Protocol):
    """ローカルファイル操作のポートです。"""

    def ensure_dir(self, path: Path) -> None:
        """ディレクトリを作成します。"""

    def list_files(self, root_dir: Path) -> Sequence[Path]:
        """配下の通常ファイルを再帰的に列挙します。"""

    def file_size(self, path: Path) -> int:
        """ファイルサイズを返します。"""

    def remove_file(self, path: Path) -> None:
        """ファイルを削除します。"""

    def remove_dir(self, path: Path) -> None:
        """ディレクトリを削除します。"""


class MetadataStorePort(Protocol):
    """動画メタデータストアのポートです。"""

    def connect(self) -> None:
        """接続を開きます。"""

    def close(self) -> None:
        """接続を閉じます。"""

    def find_video(self, video_id: str) -> Optional[VideoRecord]:
        """動画レコードを1件取得します。存在しなければ None を返します。"""

    def update_video_url(self, video_id: str, url: str) -> Optional[VideoRecord]:
        """動画レコードの url を更新し、更新後のレコードを返します。対象がなければ None です。"""


class ObjectStoragePort(Protocol):
    """オブジェクトストレージのポートです。"""

    def download_file(self, bucket: str, key: str, local_path: Path) -> None:
        """オブジェクトをローカルへストリーミングでダウンロードします。"""

    def upload_file(
        self,
        local_path: Path,
        bucket: str,
        key: str,
        content_type: Optional[str] = None,
    ) -> None:
        """ローカルファイルをアップロードします。"""
