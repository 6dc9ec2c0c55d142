"""
Snowflake store
Connects with key-pair authentication and keeps the catalog in five tables
plus a sequence for video ids. Snowflake does not enforce UNIQUE, so the
talk id index is written with MERGE and a zero-row result is treated as a
uniqueness conflict.
"""

import json
import logging
import os
import threading
from contextlib import contextmanager

import snowflake.connector
from cryptography.hazmat.primitives import serialization
from snowflake.connector import DictCursor

from ted_catalog import config
from ted_catalog.errors import DuplicateTalkError, StoreError
from ted_catalog.models import CatalogEntry, LanguageBundle, StreamDescriptor, Talk
from ted_catalog.store import CatalogStore

logger = logging.getLogger(__name__)

SCHEMA_DDL = [
    "CREATE SEQUENCE IF NOT EXISTS VIDEO_ID_SEQ START = 1 INCREMENT = 1",
    """
    CREATE TABLE IF NOT EXISTS VIDEOS (
        video_id NUMBER PRIMARY KEY,
        talk_id VARCHAR(255),
        hls_url VARCHAR(1000),
        mp4_url VARCHAR(1000),
        thumbnail VARCHAR(1000),
        duration VARCHAR(50),
        published_at VARCHAR(50),
        timing TEXT,
        created_at TIMESTAMP_NTZ DEFAULT CURRENT_TIMESTAMP()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS TALK_IDS (
        talk_id VARCHAR(255) PRIMARY KEY,
        video_id NUMBER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS TAGS (
        video_id NUMBER,
        tag VARCHAR(255)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS LANGUAGES (
        video_id NUMBER,
        language_code VARCHAR(20),
        title VARCHAR(1000),
        author VARCHAR(500),
        description TEXT,
        transcript TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS MY_VIDEOS (
        user_id VARCHAR(255),
        video_id NUMBER,
        is_favorite BOOLEAN DEFAULT FALSE,
        created_at TIMESTAMP_TZ DEFAULT CURRENT_TIMESTAMP()
    )
    """,
]


def load_private_key(key_path):
    """Load the PEM private key and return DER bytes for the connector"""
    if not os.path.exists(key_path):
        raise FileNotFoundError(f"Private key not found: {key_path}")
    with open(key_path, "rb") as key_file:
        private_key = serialization.load_pem_private_key(
            key_file.read(),
            password=None,
        )
    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def create_snowflake_connection():
    """Connect using key-pair authentication and the SNOWFLAKE_* settings"""
    conn = snowflake.connector.connect(
        account=config.SNOWFLAKE_ACCOUNT,
        user=config.SNOWFLAKE_LOGIN,
        private_key=load_private_key(config.SNOWFLAKE_KEY_PATH),
        warehouse=config.SNOWFLAKE_WAREHOUSE,
        database=config.SNOWFLAKE_DATABASE,
        schema=config.SNOWFLAKE_SCHEMA,
        role=config.SNOWFLAKE_ROLE,
    )
    logger.info(f"Connected to Snowflake {config.SNOWFLAKE_DATABASE}.{config.SNOWFLAKE_SCHEMA}")
    return conn


def _lower_keys(row):
    return {k.lower(): v for k, v in row.items()} if row else None


class SnowflakeStore(CatalogStore):

    def __init__(self, connect=create_snowflake_connection):
        self._connect = connect
        self._conn = None
        self._lock = threading.RLock()
        self._depth = 0

    @property
    def conn(self):
        if self._conn is None:
            self._conn = self._connect()
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _execute(self, sql, params=None):
        with self._lock:
            cursor = self.conn.cursor(DictCursor)
            try:
                cursor.execute(sql, params)
            except snowflake.connector.errors.Error as e:
                cursor.close()
                logger.error(f"Snowflake query failed: {e}")
                raise StoreError() from e
            return cursor

    def _fetch_one(self, sql, params=None):
        cursor = self._execute(sql, params)
        try:
            return _lower_keys(cursor.fetchone())
        finally:
            cursor.close()

    def _fetch_all(self, sql, params=None):
        cursor = self._execute(sql, params)
        try:
            return [_lower_keys(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def _write(self, sql, params=None) -> int:
        cursor = self._execute(sql, params)
        try:
            return cursor.rowcount or 0
        finally:
            cursor.close()

    def ensure_schema(self):
        for ddl in SCHEMA_DDL:
            self._write(ddl)
        logger.info("Verified catalog tables")

    @contextmanager
    def transaction(self):
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._write("BEGIN")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._write("ROLLBACK")
                raise
            self._depth -= 1
            if outermost:
                self._write("COMMIT")

    # ----- talks -----

    def create_talk(self, talk):
        video_id = self._fetch_one("SELECT VIDEO_ID_SEQ.NEXTVAL AS video_id")["video_id"]
        self._write(
            """
            INSERT INTO VIDEOS (video_id, talk_id, hls_url, mp4_url, thumbnail, duration, published_at, timing)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                video_id, talk.talk_id, talk.stream.hls_url, talk.stream.mp4_url,
                talk.thumbnail, talk.duration, talk.published_at, json.dumps(talk.timing),
            ),
        )
        return int(video_id)

    def find_talk(self, video_id):
        row = self._fetch_one("SELECT * FROM VIDEOS WHERE video_id = %s", (video_id,))
        if not row:
            return None
        return Talk(
            video_id=int(row["video_id"]),
            talk_id=row["talk_id"],
            stream=StreamDescriptor(hls_url=row.get("hls_url"), mp4_url=row.get("mp4_url")),
            thumbnail=row.get("thumbnail"),
            duration=row.get("duration"),
            published_at=row.get("published_at"),
            timing=json.loads(row["timing"]) if row.get("timing") else {},
        )

    # ----- talk id index -----

    def find_video_id(self, talk_id):
        row = self._fetch_one("SELECT video_id FROM TALK_IDS WHERE talk_id = %s", (talk_id,))
        return int(row["video_id"]) if row else None

    def create_talk_id(self, talk_id, video_id):
        inserted = self._write(
            """
            MERGE INTO TALK_IDS t
            USING (SELECT %s AS talk_id, %s AS video_id) s
            ON t.talk_id = s.talk_id
            WHEN NOT MATCHED THEN INSERT (talk_id, video_id) VALUES (s.talk_id, s.video_id)
            """,
            (talk_id, video_id),
        )
        if inserted == 0:
            raise DuplicateTalkError(talk_id)

    # ----- tags -----

    def create_tag(self, video_id, tag):
        self._write("INSERT INTO TAGS (video_id, tag) VALUES (%s, %s)", (video_id, tag))

    def find_tags(self, video_id):
        rows = self._fetch_all("SELECT tag FROM TAGS WHERE video_id = %s", (video_id,))
        return [r["tag"] for r in rows]

    # ----- language bundles -----

    def create_language(self, bundle):
        self._write(
            """
            MERGE INTO LANGUAGES t
            USING (SELECT %s AS video_id, %s AS language_code, %s AS title,
                          %s AS author, %s AS description, %s AS transcript) s
            ON t.video_id = s.video_id AND t.language_code = s.language_code
            WHEN NOT MATCHED THEN INSERT (video_id, language_code, title, author, description, transcript)
                VALUES (s.video_id, s.language_code, s.title, s.author, s.description, s.transcript)
            """,
            (
                bundle.video_id, config.normalize_language(bundle.language_code), bundle.title,
                bundle.author, bundle.description, bundle.transcript,
            ),
        )

    def find_language(self, video_id, language_code):
        row = self._fetch_one(
            "SELECT * FROM LANGUAGES WHERE video_id = %s AND language_code = %s",
            (video_id, config.normalize_language(language_code)),
        )
        if not row:
            return None
        return LanguageBundle(
            video_id=int(row["video_id"]),
            language_code=row["language_code"],
            title=row["title"],
            author=row.get("author") or "",
            description=row.get("description") or "",
            transcript=row.get("transcript") or "",
        )

    def find_language_codes(self, video_id):
        rows = self._fetch_all(
            "SELECT language_code FROM LANGUAGES WHERE video_id = %s ORDER BY language_code",
            (video_id,),
        )
        return [r["language_code"] for r in rows]

    # ----- catalog entries -----

    @staticmethod
    def _entry(row):
        return CatalogEntry(
            user_id=row["user_id"],
            video_id=int(row["video_id"]),
            is_favorite=bool(row["is_favorite"]),
            created_at=row["created_at"],
        )

    def find_entry(self, user_id, video_id):
        row = self._fetch_one(
            "SELECT * FROM MY_VIDEOS WHERE user_id = %s AND video_id = %s",
            (user_id, video_id),
        )
        return self._entry(row) if row else None

    def create_entry(self, user_id, video_id):
        self._write(
            """
            MERGE INTO MY_VIDEOS t
            USING (SELECT %s AS user_id, %s AS video_id) s
            ON t.user_id = s.user_id AND t.video_id = s.video_id
            WHEN NOT MATCHED THEN INSERT (user_id, video_id, is_favorite, created_at)
                VALUES (s.user_id, s.video_id, FALSE, CURRENT_TIMESTAMP())
            """,
            (user_id, video_id),
        )
        return self.find_entry(user_id, video_id)

    def update_favorite(self, user_id, video_id, is_favorite):
        updated = self._write(
            "UPDATE MY_VIDEOS SET is_favorite = %s WHERE user_id = %s AND video_id = %s",
            (is_favorite, user_id, video_id),
        )
        return updated > 0

    def destroy_entry(self, user_id, video_id):
        deleted = self._write(
            "DELETE FROM MY_VIDEOS WHERE user_id = %s AND video_id = %s",
            (user_id, video_id),
        )
        return deleted > 0

    def find_entries(self, user_id, offset=0, limit=None):
        sql = "SELECT * FROM MY_VIDEOS WHERE user_id = %s ORDER BY created_at DESC"
        params = [user_id]
        if limit is not None:
            sql += " LIMIT %s OFFSET %s"
            params += [limit, offset]
        return [self._entry(r) for r in self._fetch_all(sql, tuple(params))]

    def count_entries(self, user_id):
        row = self._fetch_one("SELECT COUNT(*) AS total FROM MY_VIDEOS WHERE user_id = %s", (user_id,))
        return int(row["total"]) if row else 0
