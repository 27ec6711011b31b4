import logging
from pathlib import Path

from hls_pipeline.application.ports import FileGatewayPort, ObjectStoragePort
from hls_pipeline.domain.errors import FetchError
from hls_pipeline.domain.job_models import TranscodeJob

logger = logging.getLogger(__name__)


class FetchSourceVideoUseCase:
    """入力動画をストレージからスクラッチ領域へ取得するユースケースです。"""

    def __init__(self, object_storage: ObjectStoragePort, file_gateway: FileGatewayPort) -> None:
        self._object_storage = object_storage
        self._file_gateway = file_gateway

    def execute(self, job: TranscodeJob) -> Path:
        """入力動画をダウンロードし、ローカルパスを返します。"""

        local_path = job.local_input_path
        logger.info(
            "download start bucket=%s key=%s local=%s",
            job.source.bucket,
            job.source.key,
            local_path,
        )

        try:
            self._object_storage.download_file(job.source.bucket, job.source.key, local_path)
        except Exception as ex:
            raise FetchError(
                "入力動画を取得できませんでした。bucket={0} key={1}: {2}".format(
                    job.source.bucket, job.source.key, ex
                )
            ) from ex

        logger.info("downloaded video to %s", local_path)
        self._check_local_file(local_path)
        return local_path

    def _check_local_file(self, local_path: Path) -> None:
        """取得結果のサイズを記録します。確認失敗は後続の変換で検出されるため中断しません。"""

        try:
            size = self._file_gateway.file_size(local_path)
        except OSError as ex:
            logger.warning("cannot access downloaded file path=%s error=%s", local_path, ex)
            return

        logger.info("file %s exists size=%d bytes", local_path, size)
        if size == 0:
            logger.warning("downloaded file is empty path=%s", local_path)
