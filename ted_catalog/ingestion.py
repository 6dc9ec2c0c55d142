"""
Talk ingestion
submit(user_id, url, language):
  url -> fetch talk page -> talk id -> already indexed? -> if not, scrape the
  rest and store talk/tags/index/languages -> user's language available? ->
  add to the user's catalog.

The shared writes run in one store transaction. When another request wins
the race to index the same talk, the losing transaction is rolled back and
the request continues with the winner's video id.
"""

import logging
import re
from typing import Optional

from ted_catalog import config, scraper
from ted_catalog.catalog import CatalogRepository
from ted_catalog.errors import (
    DuplicateTalkError,
    FetchError,
    InvalidInput,
    NoLanguageData,
    NoStreamAvailable,
    ParseError,
    ParseFailure,
    StoreError,
    StoreInconsistency,
    UnsupportedLanguage,
    UpstreamUnavailable,
)
from ted_catalog.models import Talk, VideoSummary
from ted_catalog.store import CatalogStore


class IngestionOrchestrator:

    def __init__(self, store: CatalogStore, fetcher: Optional[scraper.HtmlFetcher] = None,
                 logger: Optional[logging.Logger] = None, url_pattern: Optional[str] = None,
                 supported_languages=None, repository: Optional[CatalogRepository] = None):
        self.store = store
        self.repository = repository or CatalogRepository(store)
        self.fetcher = fetcher or scraper.HtmlFetcher()
        self.log = logger or logging.getLogger(__name__)
        self.url_pattern = re.compile(url_pattern or config.TED_URL_PATTERN)
        self.supported_languages = set(supported_languages or config.SUPPORTED_LANGUAGES)

    def validate_url(self, url):
        if not url or not isinstance(url, str) or not self.url_pattern.match(url.strip()):
            raise InvalidInput("tedUrl is missing or is not a TED talk URL")
        return url.strip()

    def load_page(self, url) -> scraper.TalkPage:
        try:
            return scraper.load_document(self.fetcher.fetch(url))
        except FetchError as e:
            self.log.warning(f"submit - fetch failed url={url}: {e}")
            raise UpstreamUnavailable() from e

    def submit(self, user_id: str, url: str, language: Optional[str] = None) -> VideoSummary:
        self.log.info(f"submit - request user_id={user_id} url={url}")
        url = self.validate_url(url)
        page = self.load_page(url)
        try:
            talk_id = scraper.extract_talk_id(page)
        except ParseError as e:
            self.log.warning(f"submit - parse failed url={url}: {e}")
            raise ParseFailure() from e

        video_id = self.store.find_video_id(talk_id)
        if video_id is not None:
            self.log.info(f"submit - dedup hit talk_id={talk_id} video_id={video_id}")
        else:
            video_id = self.ingest(page, talk_id)

        return self.link(user_id, video_id, language)

    def ingest(self, page: scraper.TalkPage, talk_id: str) -> int:
        """Scrape and store a talk that is not indexed yet. Returns its video id."""
        stream = scraper.extract_video_stream(page)
        if stream is None:
            self.log.info(f"ingest - no stream talk_id={talk_id}")
            raise NoStreamAvailable()

        bundles = scraper.extract_languages(page, self.fetcher, supported=self.supported_languages)
        if not bundles:
            self.log.info(f"ingest - no language data talk_id={talk_id}")
            raise NoLanguageData()

        metadata = scraper.extract_metadata(page)
        timing = scraper.extract_timing(page, self.fetcher)
        tags = scraper.extract_tags(page)
        talk = Talk(
            talk_id=talk_id,
            stream=stream,
            thumbnail=metadata.thumbnail,
            duration=metadata.duration,
            published_at=metadata.published_at,
            timing=timing,
        )

        try:
            with self.store.transaction():
                video_id = self.store.create_talk(talk)
                for tag in tags:
                    self.store.create_tag(video_id, tag)
                self.store.create_talk_id(talk_id, video_id)
                for bundle in bundles:
                    self.store.create_language(bundle.model_copy(update={"video_id": video_id}))
        except DuplicateTalkError:
            existing = self.store.find_video_id(talk_id)
            if existing is None:
                raise StoreError()
            self.log.info(f"ingest - lost index race talk_id={talk_id}, using video_id={existing}")
            return existing

        self.log.info(
            f"ingest - stored talk_id={talk_id} video_id={video_id} "
            f"tags={len(tags)} languages={[b.language_code for b in bundles]}"
        )
        return video_id

    def link(self, user_id: str, video_id: int, language: Optional[str] = None) -> VideoSummary:
        """Check the user's language is available, then add the talk to their catalog."""
        language = config.normalize_language(language or config.DEFAULT_LANGUAGE)
        bundle = self.store.find_language(video_id, language)
        if bundle is None:
            self.log.info(f"link - language {language} unavailable video_id={video_id}")
            raise UnsupportedLanguage()

        talk = self.store.find_talk(video_id)
        if talk is None:
            self.log.error(f"link - indexed video_id={video_id} has no talk record")
            raise StoreInconsistency()

        self.repository.add(user_id, video_id)
        self.log.info(f"link - added video_id={video_id} for user_id={user_id}")
        return VideoSummary(
            video_id=video_id,
            title=bundle.title,
            author=bundle.author,
            thumbnail=talk.thumbnail,
            duration=talk.duration,
        )
