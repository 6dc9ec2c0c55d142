"""
TED talk page scraping
Fetches talk pages and pulls structured data out of the two JSON blocks
every talk page embeds:

- the JSON-LD ``VideoObject`` (name, description, thumbnail, duration, transcript)
- the ``__NEXT_DATA__`` application state (slug, presenter, topics, player data)

Extractors for optional fields return an empty value instead of raising.
Only ``extract_talk_id`` fails hard, since without it the page is unusable.
"""

import json
import logging
from typing import Dict, List, Optional

import requests
from bs4 import BeautifulSoup

from ted_catalog import config
from ted_catalog.errors import FetchError, ParseError
from ted_catalog.models import LanguageBundle, StreamDescriptor, TalkMetadata

logger = logging.getLogger(__name__)


class HtmlFetcher:
    """Single-attempt HTTP GET. Retries belong to the caller."""

    def __init__(self, timeout=None, user_agent=None):
        self.timeout = timeout or config.FETCH_TIMEOUT
        self.headers = {
            "User-Agent": user_agent or config.USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }

    def _get(self, url):
        try:
            response = requests.get(url, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"Request failed for {url}: {e}") from e
        if response.status_code != 200:
            raise FetchError(f"HTTP {response.status_code} for {url}")
        if not response.content:
            raise FetchError(f"Empty body for {url}")
        return response

    def fetch(self, url: str) -> str:
        logger.debug(f"fetch - GET {url}")
        return self._get(url).text

    def fetch_json(self, url: str) -> dict:
        response = self._get(url)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {url}") from e


class TalkPage:
    """A fetched talk page with its embedded JSON blocks decoded once."""

    def __init__(self, html: str):
        self.html = html or ""
        self.soup = BeautifulSoup(self.html, "html.parser")
        self.ld = self._load_ld_json()
        self.video_data = self._load_video_data()
        self.player_data = self._load_player_data()

    def _load_ld_json(self) -> dict:
        for script_tag in self.soup.find_all("script", type="application/ld+json"):
            try:
                data = json.loads(script_tag.string or "")
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict):
                candidates = data.get("@graph", [data])
            elif isinstance(data, list):
                candidates = data
            else:
                continue
            for item in candidates:
                if isinstance(item, dict) and item.get("@type") == "VideoObject":
                    return item
        return {}

    def _load_video_data(self) -> dict:
        script_tag = self.soup.find("script", id="__NEXT_DATA__")
        if not script_tag:
            return {}
        try:
            data = json.loads(script_tag.string or "")
        except json.JSONDecodeError:
            return {}
        if not isinstance(data, dict):
            return {}
        video_data = ((data.get("props") or {}).get("pageProps") or {}).get("videoData")
        return video_data if isinstance(video_data, dict) else {}

    def _load_player_data(self) -> dict:
        # playerData is usually a JSON string nested inside the page state
        raw = self.video_data.get("playerData")
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                return {}
        return raw if isinstance(raw, dict) else {}


def load_document(document) -> TalkPage:
    return document if isinstance(document, TalkPage) else TalkPage(document)


def normalize_tags(tags) -> List[str]:
    seen, ordered = set(), []
    for t in tags or []:
        if not t:
            continue
        tag = " ".join(str(t).split()).lower()
        if tag and tag not in seen:
            seen.add(tag)
            ordered.append(tag)
    return ordered


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _as_str(value) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _hls_resource(page: TalkPage) -> dict:
    return _as_dict(_as_dict(page.player_data.get("resources")).get("hls"))


def _first(value):
    if isinstance(value, list):
        return value[0] if value else None
    return value


# ----- Extractors -----

def extract_talk_id(document) -> str:
    page = load_document(document)
    talk_id = page.video_data.get("slug") or page.player_data.get("slug")
    if not talk_id:
        raise ParseError("Talk identifier not found; not a talk page or the page layout changed")
    return str(talk_id)


def extract_video_stream(document) -> Optional[StreamDescriptor]:
    page = load_document(document)
    resources = _as_dict(page.player_data.get("resources"))
    hls_url = _as_str(_hls_resource(page).get("stream"))
    mp4_url = None
    for item in _as_list(resources.get("h264")):
        if isinstance(item, dict) and _as_str(item.get("file")):
            mp4_url = item["file"]
            break
    stream = StreamDescriptor(hls_url=hls_url, mp4_url=mp4_url)
    return None if stream.is_empty() else stream


def extract_metadata(document) -> TalkMetadata:
    page = load_document(document)
    return TalkMetadata(
        thumbnail=_as_str(_first(page.ld.get("thumbnailUrl"))) or _as_str(page.player_data.get("thumb")),
        duration=_as_str(page.ld.get("duration")),
        published_at=_as_str(page.ld.get("uploadDate")) or _as_str(page.video_data.get("publishedAt")),
        presenter=_as_str(page.video_data.get("presenterDisplayName")),
    )


def extract_timing(document, fetcher: HtmlFetcher) -> Dict:
    """Caption timing lives in a separate metadata JSON referenced by the player."""
    page = load_document(document)
    metadata_url = _as_str(_hls_resource(page).get("metadata"))
    if not metadata_url:
        return {}
    try:
        data = fetcher.fetch_json(metadata_url)
    except FetchError as e:
        logger.warning(f"extract_timing - {e}")
        return {}
    timing = data.get("timing", data) if isinstance(data, dict) else {}
    return timing if isinstance(timing, dict) else {}


def extract_tags(document) -> List[str]:
    page = load_document(document)
    topics = page.video_data.get("topics")
    # topics arrive either as {"nodes": [...]} or as a bare list
    nodes = _as_list(topics.get("nodes") if isinstance(topics, dict) else topics)
    tags = [n.get("name") if isinstance(n, dict) else n for n in nodes]
    tags = [t for t in tags if isinstance(t, str)]
    if not tags:
        keywords = page.ld.get("keywords") or []
        tags = keywords.split(",") if isinstance(keywords, str) else keywords
    return normalize_tags(tags)


def extract_language_codes(document) -> List[str]:
    page = load_document(document)
    codes = []
    for lang in _as_list(page.player_data.get("languages")):
        code = config.normalize_language(lang.get("languageCode") if isinstance(lang, dict) else lang)
        if code and code not in codes:
            codes.append(code)
    return codes


def extract_language_bundle(document, language_code: str, fallback_author: Optional[str] = None) -> LanguageBundle:
    page = load_document(document)
    title = _as_str(page.ld.get("name")) or _as_str(page.video_data.get("title"))
    if not title:
        raise ParseError(f"No title for language {language_code}")
    author = (
        _as_str(page.video_data.get("presenterDisplayName"))
        or _as_str(_as_dict(page.ld.get("author")).get("name"))
        or fallback_author
        or ""
    )
    return LanguageBundle(
        language_code=config.normalize_language(language_code),
        title=title,
        author=author,
        description=_as_str(page.ld.get("description")) or _as_str(page.video_data.get("description")) or "",
        transcript=_as_str(page.ld.get("transcript")) or "",
    )


def language_page_url(talk_id: str, language_code: str) -> str:
    return f"{config.TED_BASE_URL}/talks/{talk_id}?language={language_code}"


def extract_languages(document, fetcher: HtmlFetcher, supported=None) -> List[LanguageBundle]:
    """
    Fetch the talk page once per available language and build its bundle.
    Languages that fail to fetch or parse are dropped.
    """
    page = load_document(document)
    talk_id = extract_talk_id(page)
    codes = extract_language_codes(page)
    # localized pages sometimes omit the presenter; the primary page names them
    presenter = extract_metadata(page).presenter
    if supported is not None:
        codes = [c for c in codes if c in supported]

    bundles = []
    for code in codes:
        try:
            localized = fetcher.fetch(language_page_url(talk_id, code))
            bundles.append(extract_language_bundle(localized, code, fallback_author=presenter))
        except (FetchError, ParseError) as e:
            logger.warning(f"extract_languages - dropped {code} for {talk_id}: {e}")
    logger.info(f"extract_languages - {len(bundles)}/{len(codes)} languages for {talk_id}")
    return bundles
