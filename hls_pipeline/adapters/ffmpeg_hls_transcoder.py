import logging
import shutil
import subprocess
from typing import List, Optional

from hls_pipeline.application.ports import TranscoderPort
from hls_pipeline.domain.errors import TranscodeError
from hls_pipeline.domain.models import EncodingPlan, TranscodeResult

logger = logging.getLogger(__name__)


class FfmpegHlsTranscoder(TranscoderPort):
    """ffmpegを1回だけ起動して全レンディションのHLSを出力するアダプターです。"""

    def __init__(self, ffmpeg_path: Optional[str] = None) -> None:
        self._ffmpeg_path = ffmpeg_path

    def transcode(self, plan: EncodingPlan) -> TranscodeResult:
        """ffmpegでHLS変換を実行し、終了を待ちます。"""

        ffmpeg_path = self._resolve_ffmpeg_path()

        # %v の展開先ディレクトリは事前に作っておく
        for index in range(len(plan.renditions)):
            plan.rendition_dir(index).mkdir(parents=True, exist_ok=True)

        command = build_hls_command(ffmpeg_path, plan)
        logger.info(
            "ffmpeg start input=%s output=%s renditions=%d",
            plan.input_path,
            plan.output_dir,
            len(plan.renditions),
        )
        logger.debug("ffmpeg command: %s", " ".join(command))

        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
            )
        except OSError as ex:
            raise TranscodeError("ffmpeg を起動できませんでした: {0}".format(ex)) from ex

        if completed.returncode != 0:
            raise TranscodeError(
                "ffmpeg によるHLS変換に失敗しました。returncode={0}".format(completed.returncode),
                diagnostic=f"stdout:\n{completed.stdout}\n\nstderr:\n{completed.stderr}",
            )

        logger.info("ffmpeg completed output=%s", plan.output_dir)
        return TranscodeResult(
            output_dir=plan.output_dir,
            master_playlist_path=plan.master_playlist_path,
            diagnostic=completed.stderr,
        )

    def _resolve_ffmpeg_path(self) -> str:
        """ffmpeg 実行ファイルのパスを決定します。"""

        if self._ffmpeg_path:
            return self._ffmpeg_path

        ffmpeg_path = shutil.which("ffmpeg")
        if ffmpeg_path is None:
            raise TranscodeError(
                "ffmpeg コマンドが見つかりません。"
                " ffmpeg をインストールして PATH を通すか、"
                "FFMPEG_PATH でフルパスを指定してください。"
            )

        return ffmpeg_path


def build_hls_command(ffmpeg_path: str, plan: EncodingPlan) -> List[str]:
    """エンコード計画から ffmpeg の引数列を組み立てます。

    デコードは1回だけ行い、split で N 本に分けてからそれぞれ scale / encode します。
    出力は <output>/<index>/playlist.m3u8 と <output>/<index>/segment<N>.ts、
    および <output>/master.m3u8 です。
    """

    count = len(plan.renditions)

    split_labels = "".join("[s{0}]".format(index) for index in range(count))
    filters = ["[0:v]split={0}{1}".format(count, split_labels)]
    for index, rendition in enumerate(plan.renditions):
        # -2 で縦横比を保ったまま幅を偶数に丸める
        filters.append("[s{0}]scale=-2:{1}[v{0}]".format(index, rendition.height))

    command = [
        ffmpeg_path,
        "-y",
        "-i",
        str(plan.input_path),
        "-filter_complex",
        ";".join(filters),
    ]

    for index, rendition in enumerate(plan.renditions):
        command.extend(
            [
                "-map",
                "[v{0}]".format(index),
                "-c:v:{0}".format(index),
                plan.video_codec,
                "-b:v:{0}".format(index),
                rendition.video_bitrate,
                "-map",
                "a:0",
                "-c:a:{0}".format(index),
                plan.audio_codec,
                "-b:a:{0}".format(index),
                rendition.audio_bitrate,
            ]
        )

    stream_map = " ".join("v:{0},a:{0}".format(index) for index in range(count))
    command.extend(
        [
            "-var_stream_map",
            stream_map,
            "-master_pl_name",
            plan.master_playlist_name,
            "-f",
            "hls",
            "-hls_time",
            str(plan.segment_duration_sec),
            "-hls_list_size",
            "0",
            "-hls_segment_filename",
            str(plan.output_dir / "%v" / plan.segment_filename),
            str(plan.output_dir / "%v" / plan.playlist_filename),
        ]
    )

    return command
