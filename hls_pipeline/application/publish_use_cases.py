import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from pathlib import Path
from typing import List, Tuple

from hls_pipeline.application.ports import FileGatewayPort, ObjectStoragePort
from hls_pipeline.domain.errors import PublishError
from hls_pipeline.domain.job_models import TranscodeJob
from hls_pipeline.domain.models import PublishedAsset

logger = logging.getLogger(__name__)

PLAYLIST_CONTENT_TYPE = "application/x-mpegURL"
SEGMENT_CONTENT_TYPE = "video/MP2T"


def content_type_for(path: Path) -> str:
    """拡張子 .m3u8 はプレイリスト、それ以外はセグメントとして扱います。"""

    if path.suffix.lower() == ".m3u8":
        return PLAYLIST_CONTENT_TYPE

    return SEGMENT_CONTENT_TYPE


def object_key_for(output_prefix: str, relative_path: str) -> str:
    return "{0}/{1}".format(output_prefix.rstrip("/"), relative_path)


class PublishAssetsUseCase:
    """変換結果のツリーを出力バケットへアップロードするユースケースです。"""

    def __init__(
        self,
        object_storage: ObjectStoragePort,
        file_gateway: FileGatewayPort,
        max_workers: int = 4,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers は 1 以上を指定してください。")

        self._object_storage = object_storage
        self._file_gateway = file_gateway
        self._max_workers = max_workers

    def collect_assets(self, job: TranscodeJob) -> List[Tuple[Path, PublishedAsset]]:
        """出力ディレクトリ配下のファイルとアップロード先キーの対応を作ります。"""

        root_dir = job.local_output_dir
        assets = []
        for file_path in self._file_gateway.list_files(root_dir):
            relative_path = file_path.relative_to(root_dir).as_posix()
            asset = PublishedAsset(
                relative_path=relative_path,
                object_key=object_key_for(job.output_prefix, relative_path),
                content_type=content_type_for(file_path),
                size_bytes=self._file_gateway.file_size(file_path),
            )
            assets.append((file_path, asset))

        return assets

    def execute(self, job: TranscodeJob) -> List[PublishedAsset]:
        """全ファイルをアップロードします。1件でも失敗したら PublishError です。"""

        try:
            assets = self.collect_assets(job)
        except OSError as ex:
            raise PublishError("出力ディレクトリを走査できませんでした: {0}".format(ex)) from ex

        if len(assets) == 0:
            raise PublishError("アップロード対象のファイルがありません: {0}".format(job.local_output_dir))

        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures = [
                executor.submit(self._upload_one, file_path, job.output_bucket, asset)
                for file_path, asset in assets
            ]
            done, not_done = wait(futures, return_when=FIRST_EXCEPTION)

            for future in not_done:
                future.cancel()

            for future in done:
                ex = future.exception()
                if ex is not None:
                    raise PublishError(
                        "出力ファイルのアップロードに失敗しました: {0}".format(ex)
                    ) from ex

        logger.info(
            "uploaded processed video files to %s/%s/ count=%d",
            job.output_bucket,
            job.output_prefix,
            len(assets),
        )
        return sorted((asset for _, asset in assets), key=lambda a: a.relative_path)

    def _upload_one(self, file_path: Path, bucket: str, asset: PublishedAsset) -> None:
        logger.info("uploading file %s to %s/%s", file_path, bucket, asset.object_key)
        self._object_storage.upload_file(
            local_path=file_path,
            bucket=bucket,
            key=asset.object_key,
            content_type=asset.content_type,
        )
