import logging
from pathlib import Path
from typing import Sequence

from hls_pipeline.application.ports import FileGatewayPort, TranscoderPort
from hls_pipeline.domain.errors import TranscodeError
from hls_pipeline.domain.job_models import TranscodeJob
from hls_pipeline.domain.models import (
    DEFAULT_RENDITIONS,
    EncodingPlan,
    Rendition,
    TranscodeResult,
)

logger = logging.getLogger(__name__)

STREAM_INF_TAG = "#EXT-X-STREAM-INF"


class TranscodeVideoUseCase:
    """レンディション計画を組み立て、HLSへ一括変換するユースケースです。"""

    def __init__(
        self,
        transcoder: TranscoderPort,
        file_gateway: FileGatewayPort,
        renditions: Sequence[Rendition] = DEFAULT_RENDITIONS,
        segment_duration_sec: int = 6,
    ) -> None:
        self._transcoder = transcoder
        self._file_gateway = file_gateway
        self._renditions = tuple(renditions)
        self._segment_duration_sec = segment_duration_sec

    def build_plan(self, input_path: Path, output_dir: Path) -> EncodingPlan:
        """入力パスと出力先からエンコード計画を作ります。"""

        self._validate_renditions(self._renditions)

        if self._segment_duration_sec <= 0:
            raise ValueError("segment_duration_sec は 0 より大きい値を指定してください。")

        return EncodingPlan(
            input_path=input_path,
            output_dir=output_dir,
            renditions=self._renditions,
            segment_duration_sec=self._segment_duration_sec,
        )

    def execute(self, job: TranscodeJob) -> TranscodeResult:
        """ジョブの入力動画を変換し、出力ツリーを検証します。"""

        plan = self.build_plan(job.local_input_path, job.local_output_dir)
        self._file_gateway.ensure_dir(plan.output_dir)

        logger.info(
            "processing video input=%s output=%s renditions=%s",
            plan.input_path,
            plan.output_dir,
            ",".join(r.label for r in plan.renditions),
        )

        result = self._transcoder.transcode(plan)
        self._verify_master_playlist(plan)

        logger.info("video processed master=%s", result.master_playlist_path)
        return result

    def _verify_master_playlist(self, plan: EncodingPlan) -> None:
        """マスタープレイリストが全レンディションを参照していることを確認します。"""

        master_path = plan.master_playlist_path
        try:
            text = master_path.read_text(encoding="utf-8")
        except OSError as ex:
            raise TranscodeError(
                "マスタープレイリストが生成されていません: {0}".format(master_path)
            ) from ex

        variant_count = sum(1 for line in text.splitlines() if line.startswith(STREAM_INF_TAG))
        if variant_count != len(plan.renditions):
            raise TranscodeError(
                "マスタープレイリストのバリアント数が一致しません。expected={0} actual={1}".format(
                    len(plan.renditions), variant_count
                ),
                diagnostic=text,
            )

    def _validate_renditions(self, renditions: Sequence[Rendition]) -> None:
        """レンディション定義を検証します。"""

        if len(renditions) == 0:
            raise ValueError("レンディションが1件も指定されていません。")

        labels = [r.label for r in renditions]
        if len(set(labels)) != len(labels):
            raise ValueError("レンディションのラベルが重複しています: {0}".format(labels))

        for rendition in renditions:
            if rendition.height <= 0:
                raise ValueError("height は 0 より大きい値を指定してください: {0}".format(rendition))

            if rendition.video_bitrate_kbps <= 0 or rendition.audio_bitrate_kbps <= 0:
                raise ValueError("ビットレートは 0 より大きい値を指定してください: {0}".format(rendition))
