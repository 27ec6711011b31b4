import shutil
from pathlib import Path
from typing import Sequence

from hls_pipeline.application.ports import FileGatewayPort


class LocalFileGateway(FileGatewayPort):
    """ローカルファイル操作のアダプターです。"""

    def ensure_dir(self, path: Path) -> None:
        """ディレクトリを作成します。"""

        path.mkdir(parents=True, exist_ok=True)

    def list_files(self, root_dir: Path) -> Sequence[Path]:
        """通常ファイルのみをパス順で返します。ディレクトリは含めません。"""

        return sorted(p for p in root_dir.rglob("*") if p.is_file())

    def file_size(self, path: Path) -> int:
        return path.stat().st_size

    def remove_file(self, path: Path) -> None:
        """ファイルを削除します。存在しなければ何もしません。"""

        path.unlink(missing_ok=True)

    def remove_dir(self, path: Path) -> None:
        """ディレクトリを再帰的に削除します。"""

        if path.exists():
            shutil.rmtree(path)
