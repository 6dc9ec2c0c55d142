"""
Persistent store contract
The ingestion pipeline and the catalog only talk to a store through
``CatalogStore``. ``MemoryStore`` keeps everything in process and is what
tests and local development run against; ``SnowflakeStore`` lives in
``snowflake_store.py``.
"""

import copy
import itertools
import threading
from contextlib import contextmanager
from typing import List, Optional

from ted_catalog import config
from ted_catalog.errors import DuplicateTalkError
from ted_catalog.models import CatalogEntry, LanguageBundle, Talk, utcnow


class CatalogStore:
    """Entity-level operations; every method is a single read or write."""

    @contextmanager
    def transaction(self):
        """Writes inside the block commit together or not at all."""
        raise NotImplementedError

    def close(self):
        """Release connections. Nothing to do for stores that hold none."""

    # talks
    def create_talk(self, talk: Talk) -> int:
        raise NotImplementedError

    def find_talk(self, video_id: int) -> Optional[Talk]:
        raise NotImplementedError

    # talk id index
    def find_video_id(self, talk_id: str) -> Optional[int]:
        raise NotImplementedError

    def create_talk_id(self, talk_id: str, video_id: int) -> None:
        """Raises DuplicateTalkError when talk_id is already indexed."""
        raise NotImplementedError

    # tags
    def create_tag(self, video_id: int, tag: str) -> None:
        raise NotImplementedError

    def find_tags(self, video_id: int) -> List[str]:
        raise NotImplementedError

    # language bundles
    def create_language(self, bundle: LanguageBundle) -> None:
        raise NotImplementedError

    def find_language(self, video_id: int, language_code: str) -> Optional[LanguageBundle]:
        raise NotImplementedError

    def find_language_codes(self, video_id: int) -> List[str]:
        raise NotImplementedError

    # catalog entries
    def find_entry(self, user_id: str, video_id: int) -> Optional[CatalogEntry]:
        raise NotImplementedError

    def create_entry(self, user_id: str, video_id: int) -> CatalogEntry:
        """Returns the existing entry when the pair is already present."""
        raise NotImplementedError

    def update_favorite(self, user_id: str, video_id: int, is_favorite: bool) -> bool:
        raise NotImplementedError

    def destroy_entry(self, user_id: str, video_id: int) -> bool:
        raise NotImplementedError

    def find_entries(self, user_id: str, offset: int = 0, limit: Optional[int] = None) -> List[CatalogEntry]:
        """Newest first."""
        raise NotImplementedError

    def count_entries(self, user_id: str) -> int:
        raise NotImplementedError


class MemoryStore(CatalogStore):

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._video_ids = itertools.count(1)
        self._seq = itertools.count(1)
        self._talks = {}
        self._talk_ids = {}
        self._tags = {}
        self._languages = {}
        self._entries = {}

    def _state(self):
        return (self._talks, self._talk_ids, self._tags, self._languages, self._entries)

    def _restore(self, state):
        self._talks, self._talk_ids, self._tags, self._languages, self._entries = state

    @contextmanager
    def transaction(self):
        with self._lock:
            snapshot = copy.deepcopy(self._state()) if self._depth == 0 else None
            self._depth += 1
            try:
                yield self
            except BaseException:
                if snapshot is not None:
                    self._restore(snapshot)
                raise
            finally:
                self._depth -= 1

    def create_talk(self, talk):
        with self._lock:
            video_id = next(self._video_ids)
            self._talks[video_id] = talk.model_copy(update={"video_id": video_id}, deep=True)
            return video_id

    def find_talk(self, video_id):
        with self._lock:
            talk = self._talks.get(video_id)
            return talk.model_copy(deep=True) if talk else None

    def find_video_id(self, talk_id):
        with self._lock:
            return self._talk_ids.get(talk_id)

    def create_talk_id(self, talk_id, video_id):
        with self._lock:
            if talk_id in self._talk_ids:
                raise DuplicateTalkError(talk_id)
            self._talk_ids[talk_id] = video_id

    def create_tag(self, video_id, tag):
        with self._lock:
            tags = self._tags.setdefault(video_id, [])
            if tag not in tags:
                tags.append(tag)

    def find_tags(self, video_id):
        with self._lock:
            return list(self._tags.get(video_id, []))

    def create_language(self, bundle):
        with self._lock:
            key = (bundle.video_id, config.normalize_language(bundle.language_code))
            self._languages.setdefault(key, bundle.model_copy(deep=True))

    def find_language(self, video_id, language_code):
        with self._lock:
            bundle = self._languages.get((video_id, config.normalize_language(language_code)))
            return bundle.model_copy(deep=True) if bundle else None

    def find_language_codes(self, video_id):
        with self._lock:
            return sorted(code for vid, code in self._languages if vid == video_id)

    def find_entry(self, user_id, video_id):
        with self._lock:
            found = self._entries.get((user_id, video_id))
            return found[1].model_copy() if found else None

    def create_entry(self, user_id, video_id):
        with self._lock:
            key = (user_id, video_id)
            if key not in self._entries:
                entry = CatalogEntry(user_id=user_id, video_id=video_id, created_at=utcnow())
                self._entries[key] = (next(self._seq), entry)
            return self._entries[key][1].model_copy()

    def update_favorite(self, user_id, video_id, is_favorite):
        with self._lock:
            found = self._entries.get((user_id, video_id))
            if not found:
                return False
            found[1].is_favorite = is_favorite
            return True

    def destroy_entry(self, user_id, video_id):
        with self._lock:
            return self._entries.pop((user_id, video_id), None) is not None

    def find_entries(self, user_id, offset=0, limit=None):
        with self._lock:
            rows = [(seq, e) for (uid, _), (seq, e) in self._entries.items() if uid == user_id]
            rows.sort(key=lambda r: (r[1].created_at, r[0]), reverse=True)
            end = None if limit is None else offset + limit
            return [e.model_copy() for _, e in rows[offset:end]]

    def count_entries(self, user_id):
        with self._lock:
            return sum(1 for uid, _ in self._entries if uid == user_id)


def create_store(backend=None) -> CatalogStore:
    backend = (backend or config.STORE_BACKEND).lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "snowflake":
        from ted_catalog.snowflake_store import SnowflakeStore
        store = SnowflakeStore()
        store.ensure_schema()
        return store
    raise ValueError(f"Unknown STORE_BACKEND '{backend}'")
