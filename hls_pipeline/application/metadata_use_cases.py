import logging
from typing import Optional

from hls_pipeline.application.ports import MetadataStorePort
from hls_pipeline.domain.errors import MetadataError
from hls_pipeline.domain.job_models import TranscodeJob
from hls_pipeline.domain.models import VideoRecord

logger = logging.getLogger(__name__)


def build_master_playlist_url(public_base_url: str, bucket: str, output_prefix: str) -> str:
    return "{0}/{1}/{2}/master.m3u8".format(public_base_url.rstrip("/"), bucket, output_prefix)


class UpdateVideoMetadataUseCase:
    """既存の動画レコードへ再生URLを書き込むユースケースです。"""

    def __init__(self, metadata_store: MetadataStorePort, public_base_url: str) -> None:
        self._metadata_store = metadata_store
        self._public_base_url = public_base_url

    def execute(self, job: TranscodeJob) -> Optional[VideoRecord]:
        """レコードがあれば url を更新して返します。なければ None を返します。

        レコードの作成は取り込み側の責務のため、ここでは作成しません。
        """

        video_id = job.video_id
        master_url = build_master_playlist_url(self._public_base_url, job.output_bucket, job.output_prefix)

        logger.info("attempting to update video id=%s url=%s", video_id, master_url)

        try:
            existing = self._metadata_store.find_video(video_id)
            if existing is None:
                self._warn_missing(video_id)
                return None

            updated = self._metadata_store.update_video_url(video_id, master_url)
        except Exception as ex:
            raise MetadataError(
                "動画レコードの更新に失敗しました。id={0}: {1}".format(video_id, ex)
            ) from ex

        if updated is None:
            self._warn_missing(video_id)
            return None

        logger.info("video record updated id=%s url=%s", updated.video_id, updated.url)
        return updated

    def _warn_missing(self, video_id: str) -> None:
        logger.warning(
            "no video record found id=%s; playable url was NOT recorded "
            "(check that the record is created before transcoding completes)",
            video_id,
        )
