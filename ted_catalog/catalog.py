"""
My videos
CatalogRepository owns the per-user entries; CatalogAssembler turns a page
of entries into display rows by joining the shared talk record and the
user's language bundle.
"""

import logging
import math
from typing import List, Optional

from ted_catalog import config
from ted_catalog.errors import InvalidInput, NotFound
from ted_catalog.models import CatalogEntry, CatalogPage, CatalogRow, SkippedRow
from ted_catalog.store import CatalogStore


class CatalogRepository:

    def __init__(self, store: CatalogStore):
        self.store = store

    def add(self, user_id: str, video_id: int) -> CatalogEntry:
        return self.store.create_entry(user_id, video_id)

    def set_favorite(self, user_id: str, video_id: int, is_favorite: bool) -> bool:
        if not isinstance(is_favorite, bool):
            raise InvalidInput("isFavorite must be a boolean")
        if not self.store.update_favorite(user_id, video_id, is_favorite):
            raise NotFound()
        return True

    def remove(self, user_id: str, video_id: int) -> bool:
        if not self.store.destroy_entry(user_id, video_id):
            raise NotFound()
        return True

    def list(self, user_id: str, offset: int = 0, limit: Optional[int] = None) -> List[CatalogEntry]:
        return self.store.find_entries(user_id, offset=offset, limit=limit)

    def count(self, user_id: str) -> int:
        return self.store.count_entries(user_id)


class CatalogAssembler:

    def __init__(self, store: CatalogStore, repository: Optional[CatalogRepository] = None,
                 logger: Optional[logging.Logger] = None, page_size: Optional[int] = None):
        self.store = store
        self.repository = repository or CatalogRepository(store)
        self.log = logger or logging.getLogger(__name__)
        self.page_size = page_size or config.PAGE_SIZE

    def assemble(self, user_id: str, language: Optional[str] = None, page: int = 1) -> CatalogPage:
        if not isinstance(page, int) or isinstance(page, bool) or page < 1:
            raise InvalidInput("page must be a positive integer")
        language = config.normalize_language(language or config.DEFAULT_LANGUAGE)

        total_count = self.repository.count(user_id)
        entries = self.repository.list(user_id, offset=(page - 1) * self.page_size, limit=self.page_size)

        rows, skipped = [], []
        for entry in entries:
            talk = self.store.find_talk(entry.video_id)
            if talk is None:
                # referential gap: the entry points at a video that was never stored
                self.log.error(
                    f"assemble - invariant violation user_id={user_id} video_id={entry.video_id} has no talk"
                )
                skipped.append(SkippedRow(video_id=entry.video_id))
                continue

            bundle = self.store.find_language(entry.video_id, language)
            if bundle is None:
                self.log.warning(f"assemble - no {language} bundle for video_id={entry.video_id}")

            rows.append(CatalogRow(
                video_id=entry.video_id,
                title=bundle.title if bundle else "",
                author=bundle.author if bundle else "",
                thumbnail=talk.thumbnail,
                duration=talk.duration,
                is_favorite=entry.is_favorite,
            ))

        self.log.info(f"assemble - user_id={user_id} page={page} rows={len(rows)} skipped={len(skipped)}")
        return CatalogPage(
            items=rows,
            total_count=total_count,
            total_page=math.ceil(total_count / self.page_size) if total_count else 0,
            current_page=page,
            skipped=skipped,
        )
