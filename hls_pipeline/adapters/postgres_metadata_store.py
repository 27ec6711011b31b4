import logging
from typing import Optional

import psycopg
from psycopg import sql

from hls_pipeline.application.ports import MetadataStorePort
from hls_pipeline.domain.models import VideoRecord

logger = logging.getLogger(__name__)


class PostgresMetadataStoreAdapter(MetadataStorePort):
    """PostgreSQLの動画テーブルを利用するメタデータストアアダプターです。

    接続はプロセス起動時に1回だけ開き、終了時に閉じます。
    """

    def __init__(self, dsn: str, db_name: Optional[str] = None, table: str = "videos") -> None:
        self._dsn = dsn
        self._db_name = db_name
        self._table = sql.Identifier(*table.split("."))
        self._conn: Optional[psycopg.Connection] = None

    def connect(self) -> None:
        """接続を開きます。db_name 指定時は DSN のデータベース名を上書きします。"""

        if self._db_name:
            self._conn = psycopg.connect(self._dsn, dbname=self._db_name)
        else:
            self._conn = psycopg.connect(self._dsn)

        logger.info(
            "metadata store connected host=%s dbname=%s",
            self._conn.info.host,
            self._conn.info.dbname,
        )

    def close(self) -> None:
        if self._conn is None:
            return

        self._conn.close()
        self._conn = None

    def find_video(self, video_id: str) -> Optional[VideoRecord]:
        """videos から id 一致のレコードを1件取得します。"""

        conn = self._require_connection()
        with conn.cursor() as cur:
            cur.execute(
                sql.SQL(
                    """
                    SELECT id, url
                    FROM {table}
                    WHERE id = %s
                    """
                ).format(table=self._table),
                (video_id,),
            )
            row = cur.fetchone()
        conn.commit()

        if row is None:
            return None

        return VideoRecord(video_id=str(row[0]), url=row[1])

    def update_video_url(self, video_id: str, url: str) -> Optional[VideoRecord]:
        """videos.url のみを更新し、更新後の id と url を返します。"""

        conn = self._require_connection()
        with conn.cursor() as cur:
            cur.execute(
                sql.SQL(
                    """
                    UPDATE {table}
                    SET url = %s
                    WHERE id = %s
                    RETURNING id, url
                    """
                ).format(table=self._table),
                (url, video_id),
            )
            row = cur.fetchone()
        conn.commit()

        if row is None:
            return None

        return VideoRecord(video_id=str(row[0]), url=row[1])

    def _require_connection(self) -> psycopg.Connection:
        if self._conn is None:
            raise RuntimeError("メタデータストアに接続されていません。connect() を先に呼び出してください。")

        return self._conn
