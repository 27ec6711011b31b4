from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Optional, Tuple
from urllib.parse import unquote, urlsplit

from hls_pipeline.domain.models import PublishedAsset, VideoRecord


@dataclass(frozen=True)
class PipelineConfig:
    """起動時に一度だけ収集するプロセス設定を表します。"""

    input_object_url: str
    output_bucket: str
    video_file_key: str
    storage_region: str
    storage_access_key: str
    storage_secret_key: str = field(repr=False)
    metadata_dsn: str = field(repr=False)
    storage_endpoint: str = "s3.amazonaws.com"
    storage_secure: bool = True
    public_base_url: Optional[str] = None
    metadata_db_name: Optional[str] = None
    metadata_table: str = "videos"
    scratch_root: Path = Path("/tmp")
    upload_concurrency: int = 4
    ffmpeg_path: Optional[str] = None

    @property
    def resolved_public_base_url(self) -> str:
        """再生URLのベースを返します。未指定ならリージョン付きS3エンドポイントです。"""

        if self.public_base_url:
            return self.public_base_url.rstrip("/")

        return "https://s3.{0}.amazonaws.com".format(self.storage_region)


@dataclass(frozen=True)
class ObjectLocation:
    """バケットとキーの組を表します。"""

    bucket: str
    key: str


def parse_object_url(url: str) -> ObjectLocation:
    """エンドポイント形式のURLからバケットとキーを取り出します。

    パスの先頭セグメントがバケット、残りがキーです。
    例: https://s3.amazonaws.com/in-bucket/videos/abc123.mp4
        -> ObjectLocation("in-bucket", "videos/abc123.mp4")
    """

    path = unquote(urlsplit(url).path).lstrip("/")
    bucket, _, key = path.partition("/")
    if bucket == "" or key == "":
        raise ValueError("URLからバケットとキーを取得できません: {0}".format(url))

    return ObjectLocation(bucket=bucket, key=key)


def derive_video_id(video_file_key: str) -> str:
    """ソースキーの最初の '.' より前をジョブ識別子として返します。"""

    return video_file_key.split(".")[0]


class JobState(str, Enum):
    """ジョブの状態遷移を表します。"""

    INIT = "init"
    CONNECTED = "connected"
    FETCHED = "fetched"
    TRANSCODED = "transcoded"
    PUBLISHED = "published"
    METADATA_UPDATED = "metadata_updated"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class TranscodeJob:
    """1プロセスで処理する1件のトランスコードジョブを表します。"""

    source: ObjectLocation
    output_bucket: str
    video_file_key: str
    local_input_path: Path
    local_output_dir: Path

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "TranscodeJob":
        """設定からジョブを組み立てます。スクラッチパスはキーのベース名から決まります。"""

        if config.video_file_key.strip() == "":
            raise ValueError("video_file_key が空です。")

        base_name = PurePosixPath(config.video_file_key).name
        stem = PurePosixPath(base_name).stem

        return cls(
            source=parse_object_url(config.input_object_url),
            output_bucket=config.output_bucket,
            video_file_key=config.video_file_key,
            local_input_path=config.scratch_root / base_name,
            local_output_dir=config.scratch_root / "processed_{0}".format(stem),
        )

    @property
    def video_id(self) -> str:
        return derive_video_id(self.video_file_key)

    @property
    def output_prefix(self) -> str:
        return "processed/{0}".format(self.video_file_key)


@dataclass(frozen=True)
class JobOutcome:
    """ジョブの最終結果を表します。"""

    state: JobState
    error: Optional[BaseException] = None
    published_assets: Tuple[PublishedAsset, ...] = ()
    metadata: Optional[VideoRecord] = None

    @property
    def succeeded(self) -> bool:
        return self.state == JobState.DONE

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1
