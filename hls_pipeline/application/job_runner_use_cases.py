import logging
from typing import Optional, Tuple

from hls_pipeline.application.fetch_use_cases import FetchSourceVideoUseCase
from hls_pipeline.application.metadata_use_cases import UpdateVideoMetadataUseCase
from hls_pipeline.application.ports import FileGatewayPort, MetadataStorePort
from hls_pipeline.application.publish_use_cases import PublishAssetsUseCase
from hls_pipeline.application.transcode_use_cases import TranscodeVideoUseCase
from hls_pipeline.domain.errors import MetadataError, PipelineError
from hls_pipeline.domain.job_models import JobOutcome, JobState, TranscodeJob
from hls_pipeline.domain.models import PublishedAsset, VideoRecord

logger = logging.getLogger(__name__)


class RunTranscodeJobUseCase:
    """取得・変換・アップロード・メタデータ更新を順に実行するユースケースです。

    どの段階で失敗しても、スクラッチ領域の削除とメタデータストアの切断は必ず1回実行します。
    """

    def __init__(
        self,
        metadata_store: MetadataStorePort,
        file_gateway: FileGatewayPort,
        fetch_use_case: FetchSourceVideoUseCase,
        transcode_use_case: TranscodeVideoUseCase,
        publish_use_case: PublishAssetsUseCase,
        metadata_use_case: UpdateVideoMetadataUseCase,
    ) -> None:
        self._metadata_store = metadata_store
        self._file_gateway = file_gateway
        self._fetch_use_case = fetch_use_case
        self._transcode_use_case = transcode_use_case
        self._publish_use_case = publish_use_case
        self._metadata_use_case = metadata_use_case
        self._state = JobState.INIT

    @property
    def state(self) -> JobState:
        return self._state

    def execute(self, job: TranscodeJob) -> JobOutcome:
        """ジョブを1件実行し、最終結果を返します。例外は外へ送出しません。"""

        self._state = JobState.INIT
        published: Tuple[PublishedAsset, ...] = ()
        metadata: Optional[VideoRecord] = None

        logger.info("start job_id=%s video_key=%s", job.video_id, job.video_file_key)

        try:
            self._connect_metadata_store()
            self._transition(JobState.CONNECTED)

            self._fetch_use_case.execute(job)
            self._transition(JobState.FETCHED)

            self._transcode_use_case.execute(job)
            self._transition(JobState.TRANSCODED)

            published = tuple(self._publish_use_case.execute(job))
            self._transition(JobState.PUBLISHED)

            metadata = self._metadata_use_case.execute(job)
            self._transition(JobState.METADATA_UPDATED)

            self._transition(JobState.DONE)
            logger.info("completed job_id=%s", job.video_id)
            outcome = JobOutcome(state=JobState.DONE, published_assets=published, metadata=metadata)

        except Exception as ex:
            failed_after = self._state
            self._transition(JobState.FAILED)
            self._log_failure(job, failed_after, ex)
            outcome = JobOutcome(
                state=JobState.FAILED,
                error=ex,
                published_assets=published,
                metadata=metadata,
            )

        finally:
            self._cleanup(job)

        return outcome

    def _connect_metadata_store(self) -> None:
        """メタデータストアへ接続します。失敗はメタデータ段階のエラーとして扱います。"""

        try:
            self._metadata_store.connect()
        except Exception as ex:
            raise MetadataError("メタデータストアに接続できませんでした: {0}".format(ex)) from ex

    def _transition(self, next_state: JobState) -> None:
        logger.info("job state %s -> %s", self._state.value, next_state.value)
        self._state = next_state

    def _log_failure(self, job: TranscodeJob, failed_after: JobState, ex: Exception) -> None:
        """エラー内容と診断情報（エンジン出力やスタックトレース）を記録します。"""

        stage = ex.stage if isinstance(ex, PipelineError) else "unexpected"
        logger.error(
            "job failed job_id=%s stage=%s last_state=%s error=%s",
            job.video_id,
            stage,
            failed_after.value,
            ex,
            exc_info=ex,
        )

        if isinstance(ex, PipelineError) and ex.diagnostic:
            logger.error("diagnostic output:\n%s", ex.diagnostic)

    def _cleanup(self, job: TranscodeJob) -> None:
        """スクラッチ領域を削除し接続を閉じます。失敗は記録のみで送出しません。"""

        try:
            self._file_gateway.remove_file(job.local_input_path)
        except Exception as ex:
            logger.error("cleanup failed path=%s error=%s", job.local_input_path, ex)

        try:
            self._file_gateway.remove_dir(job.local_output_dir)
        except Exception as ex:
            logger.error("cleanup failed path=%s error=%s", job.local_output_dir, ex)

        try:
            self._metadata_store.close()
        except Exception as ex:
            logger.error("failed to close metadata store: %s", ex)

        logger.info("cleanup finished job_id=%s", job.video_id)
