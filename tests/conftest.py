"""Shared fixtures and in-memory fakes for the hls_pipeline tests.

Every port has a fake here, so no test touches real storage, a database
or an ffmpeg binary.
"""

import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from urllib3.exceptions import ProtocolError

from hls_pipeline.adapters import minio_object_storage
from hls_pipeline.adapters.local_file_gateway import LocalFileGateway
from hls_pipeline.adapters.minio_object_storage import MinioObjectStorageAdapter
from hls_pipeline.application.fetch_use_cases import FetchSourceVideoUseCase
from hls_pipeline.application.job_runner_use_cases import RunTranscodeJobUseCase
from hls_pipeline.application.metadata_use_cases import UpdateVideoMetadataUseCase
from hls_pipeline.application.publish_use_cases import PublishAssetsUseCase
from hls_pipeline.application.transcode_use_cases import TranscodeVideoUseCase
from hls_pipeline.domain.errors import TranscodeError
from hls_pipeline.domain.job_models import PipelineConfig, TranscodeJob
from hls_pipeline.domain.models import EncodingPlan, TranscodeResult, VideoRecord

SOURCE_URL = "https://s3.amazonaws.com/in-bucket/videos/abc123.mp4"
VIDEO_FILE_KEY = "videos/abc123.mp4"
OUTPUT_BUCKET = "out-bucket"
REGION = "ap-northeast-1"


# ============================================================================
# Fakes
# ============================================================================


class InMemoryObjectStorage:
    """Dict-backed object storage. Thread safe for the upload fan-out."""

    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.uploads: Dict[Tuple[str, str], Tuple[bytes, Optional[str]]] = {}
        self.fail_upload_keys = set()
        self.download_calls = 0
        self._lock = threading.Lock()

    def download_file(self, bucket: str, key: str, local_path: Path) -> None:
        self.download_calls += 1
        if (bucket, key) not in self.objects:
            raise LookupError("NoSuchKey: {0}/{1}".format(bucket, key))

        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_bytes(self.objects[(bucket, key)])

    def upload_file(self, local_path: Path, bucket: str, key: str, content_type: Optional[str] = None) -> None:
        if key in self.fail_upload_keys:
            raise OSError("connection reset while uploading {0}".format(key))

        body = local_path.read_bytes()
        with self._lock:
            self.uploads[(bucket, key)] = (body, content_type)

    def uploaded_keys(self, bucket: str) -> List[str]:
        return sorted(k for b, k in self.uploads if b == bucket)


class FakeTranscoder:
    """Writes the HLS tree ffmpeg would produce, or fails like a non-zero exit."""

    def __init__(self, segments_per_rendition: int = 2) -> None:
        self.segments_per_rendition = segments_per_rendition
        self.fail_with: Optional[str] = None
        self.skip_master = False
        self.plans: List[EncodingPlan] = []

    def transcode(self, plan: EncodingPlan) -> TranscodeResult:
        self.plans.append(plan)
        if self.fail_with is not None:
            raise TranscodeError("ffmpeg failed. returncode=1", diagnostic=self.fail_with)

        master_lines = ["#EXTM3U", "#EXT-X-VERSION:3"]
        for index, rendition in enumerate(plan.renditions):
            rendition_dir = plan.rendition_dir(index)
            rendition_dir.mkdir(parents=True, exist_ok=True)

            playlist = ["#EXTM3U", "#EXT-X-TARGETDURATION:{0}".format(plan.segment_duration_sec)]
            for number in range(self.segments_per_rendition):
                (rendition_dir / "segment{0}.ts".format(number)).write_bytes(b"\x47" * 188)
                playlist.extend(["#EXTINF:6.0,", "segment{0}.ts".format(number)])
            playlist.append("#EXT-X-ENDLIST")
            (rendition_dir / plan.playlist_filename).write_text("\n".join(playlist) + "\n")

            master_lines.append(
                "#EXT-X-STREAM-INF:BANDWIDTH={0},RESOLUTION={1}".format(
                    (rendition.video_bitrate_kbps + rendition.audio_bitrate_kbps) * 1000,
                    rendition.label,
                )
            )
            master_lines.append("{0}/{1}".format(index, plan.playlist_filename))

        if self.skip_master == False:
            plan.master_playlist_path.write_text("\n".join(master_lines) + "\n")

        return TranscodeResult(output_dir=plan.output_dir, master_playlist_path=plan.master_playlist_path)


class InMemoryMetadataStore:
    """Metadata store keeping records in a dict and counting connection use."""

    def __init__(self) -> None:
        self.records: Dict[str, Optional[str]] = {}
        self.connect_calls = 0
        self.close_calls = 0
        self.connected = False
        self.fail_on_find = False
        self.fail_on_connect = False

    def connect(self) -> None:
        self.connect_calls += 1
        if self.fail_on_connect:
            raise ConnectionError("could not connect to server")
        self.connected = True

    def close(self) -> None:
        self.close_calls += 1
        self.connected = False

    def find_video(self, video_id: str) -> Optional[VideoRecord]:
        if self.fail_on_find:
            raise ConnectionError("server closed the connection unexpectedly")
        if video_id not in self.records:
            return None
        return VideoRecord(video_id=video_id, url=self.records[video_id])

    def update_video_url(self, video_id: str, url: str) -> Optional[VideoRecord]:
        if video_id not in self.records:
            return None
        self.records[video_id] = url
        return VideoRecord(video_id=video_id, url=url)


class BrokenStreamMinio:
    """Minio client whose download stream drops after the first chunk."""

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs

    def fget_object(self, bucket_name: str, object_name: str, file_path: str, tmp_file_path: str) -> None:
        Path(tmp_file_path).write_bytes(b"\x00" * 4096)
        raise ProtocolError("Connection broken: IncompleteRead(4096 bytes read, 1044480 more expected)")

    def fput_object(self, **kwargs) -> None:
        raise AssertionError("upload must not be reached after a broken download")


class SpyFileGateway(LocalFileGateway):
    """LocalFileGateway that records cleanup calls."""

    def __init__(self) -> None:
        self.removed_files: List[Path] = []
        self.removed_dirs: List[Path] = []
        self.fail_remove_file = False

    def remove_file(self, path: Path) -> None:
        self.removed_files.append(path)
        if self.fail_remove_file:
            raise PermissionError("permission denied: {0}".format(path))
        super().remove_file(path)

    def remove_dir(self, path: Path) -> None:
        self.removed_dirs.append(path)
        super().remove_dir(path)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def pipeline_config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(
        input_object_url=SOURCE_URL,
        output_bucket=OUTPUT_BUCKET,
        video_file_key=VIDEO_FILE_KEY,
        storage_region=REGION,
        storage_access_key="access",
        storage_secret_key="s3cr3t-value",
        metadata_dsn="postgresql://u:pw-xyz@h/db",
        scratch_root=tmp_path / "scratch",
    )


@pytest.fixture
def job(pipeline_config: PipelineConfig) -> TranscodeJob:
    return TranscodeJob.from_config(pipeline_config)


@pytest.fixture
def object_storage() -> InMemoryObjectStorage:
    storage = InMemoryObjectStorage()
    storage.objects[("in-bucket", VIDEO_FILE_KEY)] = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 1024
    return storage


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def metadata_store() -> InMemoryMetadataStore:
    store = InMemoryMetadataStore()
    store.records["videos/abc123"] = None
    return store


@pytest.fixture
def file_gateway() -> SpyFileGateway:
    return SpyFileGateway()


@pytest.fixture
def job_runner(
    pipeline_config: PipelineConfig,
    object_storage: InMemoryObjectStorage,
    transcoder: FakeTranscoder,
    metadata_store: InMemoryMetadataStore,
    file_gateway: SpyFileGateway,
) -> RunTranscodeJobUseCase:
    """Orchestrator wired exactly like worker_main, with fakes in place of adapters."""

    return RunTranscodeJobUseCase(
        metadata_store=metadata_store,
        file_gateway=file_gateway,
        fetch_use_case=FetchSourceVideoUseCase(object_storage=object_storage, file_gateway=file_gateway),
        transcode_use_case=TranscodeVideoUseCase(transcoder=transcoder, file_gateway=file_gateway),
        publish_use_case=PublishAssetsUseCase(object_storage=object_storage, file_gateway=file_gateway, max_workers=4),
        metadata_use_case=UpdateVideoMetadataUseCase(
            metadata_store=metadata_store,
            public_base_url=pipeline_config.resolved_public_base_url,
        ),
    )


@pytest.fixture
def broken_stream_storage(monkeypatch) -> MinioObjectStorageAdapter:
    """Real MinIO adapter whose client loses the connection mid-download."""

    monkeypatch.setattr(minio_object_storage, "Minio", BrokenStreamMinio)
    return MinioObjectStorageAdapter(endpoint="s3.amazonaws.com", access_key="a", secret_key="s", secure=True)
