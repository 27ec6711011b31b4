from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple


@dataclass(frozen=True)
class Rendition:
    """出力画質バリアント（解像度とビットレートの組）を表します。"""

    label: str
    height: int
    video_bitrate_kbps: int
    audio_bitrate_kbps: int

    @property
    def video_bitrate(self) -> str:
        return "{0}k".format(self.video_bitrate_kbps)

    @property
    def audio_bitrate(self) -> str:
        return "{0}k".format(self.audio_bitrate_kbps)


DEFAULT_RENDITIONS: Tuple[Rendition, ...] = (
    Rendition(label="360p", height=360, video_bitrate_kbps=800, audio_bitrate_kbps=96),
    Rendition(label="480p", height=480, video_bitrate_kbps=1400, audio_bitrate_kbps=128),
    Rendition(label="720p", height=720, video_bitrate_kbps=2800, audio_bitrate_kbps=128),
    Rendition(label="1080p", height=1080, video_bitrate_kbps=5000, audio_bitrate_kbps=192),
)


@dataclass(frozen=True)
class EncodingPlan:
    """トランスコードエンジンへ一括で渡すエンコード計画を表します。

    renditions の並び順がそのまま出力サブディレクトリ番号（0始まり）になります。
    """

    input_path: Path
    output_dir: Path
    renditions: Tuple[Rendition, ...]
    segment_duration_sec: int = 6
    segment_filename: str = "segment%d.ts"
    playlist_filename: str = "playlist.m3u8"
    master_playlist_name: str = "master.m3u8"
    video_codec: str = "libx264"
    audio_codec: str = "aac"

    @property
    def master_playlist_path(self) -> Path:
        return self.output_dir / self.master_playlist_name

    def rendition_dir(self, index: int) -> Path:
        """レンディション番号に対応する出力サブディレクトリを返します。"""

        return self.output_dir / str(index)

    def variant_playlist_paths(self) -> Tuple[Path, ...]:
        """レンディションごとのプレイリストパスを返します。"""

        return tuple(
            self.rendition_dir(index) / self.playlist_filename
            for index in range(len(self.renditions))
        )


@dataclass(frozen=True)
class TranscodeResult:
    """トランスコード結果を表します。"""

    output_dir: Path
    master_playlist_path: Path
    diagnostic: str = ""


@dataclass(frozen=True)
class PublishedAsset:
    """アップロード済みの出力ファイルを表します。"""

    relative_path: str
    object_key: str
    content_type: str
    size_bytes: Optional[int]


@dataclass(frozen=True)
class VideoRecord:
    """メタデータストア上の動画レコードを表します。"""

    video_id: str
    url: Optional[str]
