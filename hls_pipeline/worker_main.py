import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from hls_pipeline.adapters.ffmpeg_hls_transcoder import FfmpegHlsTranscoder
from hls_pipeline.adapters.local_file_gateway import LocalFileGateway
from hls_pipeline.adapters.minio_object_storage import MinioObjectStorageAdapter
from hls_pipeline.adapters.postgres_metadata_store import PostgresMetadataStoreAdapter
from hls_pipeline.application.fetch_use_cases import FetchSourceVideoUseCase
from hls_pipeline.application.job_runner_use_cases import RunTranscodeJobUseCase
from hls_pipeline.application.metadata_use_cases import UpdateVideoMetadataUseCase
from hls_pipeline.application.publish_use_cases import PublishAssetsUseCase
from hls_pipeline.application.transcode_use_cases import TranscodeVideoUseCase
from hls_pipeline.domain.job_models import PipelineConfig, TranscodeJob

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def main() -> int:
    """ワーカーのエントリポイントです。1件のジョブを処理して終了コードを返します。"""

    load_dotenv()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), format=LOG_FORMAT)

    try:
        config = load_config()
        job = TranscodeJob.from_config(config)
        run_job_use_case = build_job_runner(config)
    except (RuntimeError, ValueError) as ex:
        logger.error("invalid configuration: %s", ex)
        return 1

    logger.info("video file key: %s", job.video_file_key)
    outcome = run_job_use_case.execute(job)

    if outcome.succeeded:
        logger.info("video processing completed successfully.")
    else:
        logger.error("video processing failed: %s", outcome.error)

    return outcome.exit_code


def load_config() -> PipelineConfig:
    """環境変数からプロセス設定を1回だけ読み込みます。"""

    return PipelineConfig(
        input_object_url=_get_required_env("INPUT_S3_URL"),
        output_bucket=_get_required_env("OUTPUT_BUCKET_NAME"),
        video_file_key=_get_required_env("VIDEO_FILE_KEY"),
        storage_region=_get_required_env("AWS_REGION"),
        storage_access_key=_get_required_env("AWS_ACCESS_KEY"),
        storage_secret_key=_get_required_env("AWS_SECRET_ACCESS_KEY"),
        metadata_dsn=_get_required_env("METADATA_DSN"),
        storage_endpoint=os.getenv("S3_ENDPOINT", "s3.amazonaws.com"),
        storage_secure=_get_env_bool("S3_SECURE", True),
        public_base_url=_get_optional_env("PUBLIC_BASE_URL"),
        metadata_db_name=_get_optional_env("METADATA_DB_NAME"),
        metadata_table=os.getenv("METADATA_TABLE", "videos"),
        scratch_root=Path(os.getenv("SCRATCH_ROOT", "/tmp")),
        upload_concurrency=_get_env_int("UPLOAD_CONCURRENCY", 4),
        ffmpeg_path=_get_optional_env("FFMPEG_PATH"),
    )


def build_job_runner(config: PipelineConfig) -> RunTranscodeJobUseCase:
    """設定からアダプターとユースケースを組み立てます。"""

    object_storage = MinioObjectStorageAdapter(
        endpoint=config.storage_endpoint,
        access_key=config.storage_access_key,
        secret_key=config.storage_secret_key,
        secure=config.storage_secure,
        region=config.storage_region,
    )
    metadata_store = PostgresMetadataStoreAdapter(
        dsn=config.metadata_dsn,
        db_name=config.metadata_db_name,
        table=config.metadata_table,
    )
    file_gateway = LocalFileGateway()

    return RunTranscodeJobUseCase(
        metadata_store=metadata_store,
        file_gateway=file_gateway,
        fetch_use_case=FetchSourceVideoUseCase(
            object_storage=object_storage,
            file_gateway=file_gateway,
        ),
        transcode_use_case=TranscodeVideoUseCase(
            transcoder=FfmpegHlsTranscoder(ffmpeg_path=config.ffmpeg_path),
            file_gateway=file_gateway,
        ),
        publish_use_case=PublishAssetsUseCase(
            object_storage=object_storage,
            file_gateway=file_gateway,
            max_workers=config.upload_concurrency,
        ),
        metadata_use_case=UpdateVideoMetadataUseCase(
            metadata_store=metadata_store,
            public_base_url=config.resolved_public_base_url,
        ),
    )


def _get_required_env(name: str) -> str:
    """必須環境変数を取得します。"""

    value = os.getenv(name)
    if value is None or value.strip() == "":
        raise RuntimeError("environment variable is required: {0}".format(name))

    return value


def _get_optional_env(name: str) -> Optional[str]:
    """任意の環境変数を取得します。空文字は未指定として扱います。"""

    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None

    return value


def _get_env_bool(name: str, default_value: bool) -> bool:
    """真偽値環境変数を取得します。"""

    value = os.getenv(name)
    if value is None:
        return default_value

    normalized = value.strip().lower()
    if normalized in ("1", "true", "yes", "on"):
        return True

    if normalized in ("0", "false", "no", "off"):
        return False

    raise RuntimeError("invalid bool environment variable: {0}={1}".format(name, value))


def _get_env_int(name: str, default_value: int) -> int:
    """整数の環境変数を取得します。"""

    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default_value

    try:
        return int(value)
    except ValueError:
        raise RuntimeError("invalid int environment variable: {0}={1}".format(name, value))


if __name__ == "__main__":
    raise SystemExit(main())
