"""Canned TED talk pages and a fake fetcher shared by the test modules."""

import json
import threading

from ted_catalog.errors import FetchError
from ted_catalog.scraper import language_page_url

TALK_URL = "https://www.ted.com/talks/sample-talk"
STREAM_URL = "https://hls.ted.com/project_masters/1234/manifest.m3u8"
TIMING_URL = "https://hls.ted.com/project_masters/1234/metadata.json"
THUMBNAIL = "https://pi.tedcdn.com/r/talkstar-photos.s3.amazonaws.com/sample.jpg"

LOCALIZED = {
    "en": {"title": "The future of learning", "author": "Jane Doe",
           "description": "How we learn next.", "transcript": "Hello and welcome."},
    "ko": {"title": "배움의 미래", "author": "제인 도",
           "description": "다음 세대의 배움.", "transcript": "안녕하세요."},
}


def make_talk_page(slug="sample-talk", title="The future of learning", author="Jane Doe",
                   description="How we learn next.", transcript="Hello and welcome.",
                   languages=("en", "ko"), stream_url=STREAM_URL, timing_url=TIMING_URL,
                   mp4_url=None, topics=("Education", "Technology"), thumbnail=THUMBNAIL,
                   duration="PT12M34S", upload_date="2020-03-02T15:00:00+00:00",
                   with_ld=True, with_next_data=True):
    """Build a talk page with the JSON-LD block and __NEXT_DATA__ state TED embeds."""
    resources = {}
    if stream_url or timing_url:
        resources["hls"] = {"stream": stream_url, "metadata": timing_url}
    if mp4_url:
        resources["h264"] = [{"bitrate": 320, "file": mp4_url}]
    player_data = {
        "id": "1234",
        "slug": slug,
        "thumb": thumbnail,
        "resources": resources,
        "languages": [{"languageCode": code, "languageName": code} for code in languages],
    }
    video_data = {
        "id": "1234",
        "slug": slug,
        "title": title,
        "presenterDisplayName": author,
        "description": description,
        "topics": {"nodes": [{"name": t} for t in topics]},
        "playerData": json.dumps(player_data),
    }
    ld = {
        "@context": "https://schema.org",
        "@type": "VideoObject",
        "name": title,
        "description": description,
        "thumbnailUrl": [thumbnail],
        "uploadDate": upload_date,
        "duration": duration,
        "transcript": transcript,
    }
    parts = ["<html><head><title>TED</title>"]
    if with_ld:
        parts.append(f'<script type="application/ld+json">{json.dumps(ld)}</script>')
    parts.append("</head><body><div id='root'></div>")
    if with_next_data:
        state = {"props": {"pageProps": {"videoData": video_data}}}
        parts.append(f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(state)}</script>')
    parts.append("</body></html>")
    return "".join(parts)


class FakeFetcher:
    """Serves canned documents by URL; anything unknown is a fetch failure."""

    def __init__(self, pages=None, json_docs=None):
        self.pages = dict(pages or {})
        self.json_docs = dict(json_docs or {})
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, url):
        with self._lock:
            self.calls.append(url)

    def fetch(self, url):
        self._record(url)
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        if page is None:
            raise FetchError(f"HTTP 404 for {url}")
        return page

    def fetch_json(self, url):
        self._record(url)
        if url not in self.json_docs:
            raise FetchError(f"HTTP 404 for {url}")
        return self.json_docs[url]

    def count(self, url):
        with self._lock:
            return self.calls.count(url)


def make_fetcher(slug="sample-talk", languages=("en", "ko"), url=TALK_URL, **page_kwargs):
    pages = {url: make_talk_page(slug=slug, languages=languages, **page_kwargs)}
    for code in languages:
        text = LOCALIZED.get(code, {"title": f"title-{code}", "author": f"author-{code}",
                                    "description": "", "transcript": ""})
        pages[language_page_url(slug, code)] = make_talk_page(slug=slug, languages=languages, **text)
    json_docs = {TIMING_URL: {"timing": {"intro": 11.8, "preroll": 0, "postad": 754.2}}}
    return FakeFetcher(pages, json_docs)


def make_state_page(video_data, player_data=None):
    """A page carrying only __NEXT_DATA__, for page states make_talk_page cannot express."""
    video_data = dict(video_data)
    if player_data is not None:
        video_data["playerData"] = json.dumps(player_data)
    state = {"props": {"pageProps": {"videoData": video_data}}}
    return f'<html><body><script id="__NEXT_DATA__" type="application/json">{json.dumps(state)}</script></body></html>'
