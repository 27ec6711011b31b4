from pathlib import Path
from typing import Optional

from minio import Minio

from hls_pipeline.application.ports import ObjectStoragePort


def part_path_for(local_path: Path) -> Path:
    """ダウンロード中の一時ファイルパスを返します。"""

    return local_path.with_name(local_path.name + ".part")


class MinioObjectStorageAdapter(ObjectStoragePort):
    """MinIOクライアントでS3互換ストレージを利用するアダプターです。"""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        secure: bool,
        region: Optional[str] = None,
    ) -> None:
        self._client = Minio(
            endpoint=endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
            region=region,
        )

    def download_file(self, bucket: str, key: str, local_path: Path) -> None:
        """オブジェクトをローカルへダウンロードします。本文はチャンク単位で書き込まれます。

        途中で失敗した場合は一時ファイル（<local_path>.part）を削除してから例外を送出します。
        """

        local_path.parent.mkdir(parents=True, exist_ok=True)
        part_path = part_path_for(local_path)

        try:
            self._client.fget_object(
                bucket_name=bucket,
                object_name=key,
                file_path=str(local_path),
                tmp_file_path=str(part_path),
            )
        except Exception:
            part_path.unlink(missing_ok=True)
            raise

    def upload_file(
        self,
        local_path: Path,
        bucket: str,
        key: str,
        content_type: Optional[str] = None,
    ) -> None:
        """ローカルファイルをアップロードします。"""

        if content_type is None:
            self._client.fput_object(
                bucket_name=bucket,
                object_name=key,
                file_path=str(local_path),
            )
            return

        self._client.fput_object(
            bucket_name=bucket,
            object_name=key,
            file_path=str(local_path),
            content_type=content_type,
        )
