import pytest
import requests

from ted_catalog import scraper
from ted_catalog.errors import FetchError, ParseError
from ted_catalog.testing import (
    STREAM_URL, THUMBNAIL, TIMING_URL, FakeFetcher, make_fetcher, make_state_page, make_talk_page,
)


# ----- HtmlFetcher -----

def test_fetch_returns_body(mocker):
    get = mocker.patch("ted_catalog.scraper.requests.get",
                       return_value=mocker.Mock(status_code=200, content=b"<html></html>", text="<html></html>"))

    html = scraper.HtmlFetcher(timeout=5).fetch("https://www.ted.com/talks/sample-talk")

    assert html == "<html></html>"
    assert get.call_args.kwargs["timeout"] == 5
    assert "User-Agent" in get.call_args.kwargs["headers"]


def test_fetch_non_200_is_fetch_error(mocker):
    mocker.patch("ted_catalog.scraper.requests.get",
                 return_value=mocker.Mock(status_code=404, content=b"missing", text="missing"))
    with pytest.raises(FetchError, match="HTTP 404"):
        scraper.HtmlFetcher().fetch("https://www.ted.com/talks/nope")


def test_fetch_timeout_is_fetch_error(mocker):
    mocker.patch("ted_catalog.scraper.requests.get", side_effect=requests.Timeout("timed out"))
    with pytest.raises(FetchError):
        scraper.HtmlFetcher().fetch("https://www.ted.com/talks/slow")


def test_fetch_empty_body_is_fetch_error(mocker):
    mocker.patch("ted_catalog.scraper.requests.get",
                 return_value=mocker.Mock(status_code=200, content=b"", text=""))
    with pytest.raises(FetchError, match="Empty body"):
        scraper.HtmlFetcher().fetch("https://www.ted.com/talks/empty")


def test_fetch_json_invalid_payload(mocker):
    response = mocker.Mock(status_code=200, content=b"not json")
    response.json.side_effect = ValueError("bad json")
    mocker.patch("ted_catalog.scraper.requests.get", return_value=response)
    with pytest.raises(FetchError, match="Invalid JSON"):
        scraper.HtmlFetcher().fetch_json(TIMING_URL)


# ----- Extractors -----

def test_extract_talk_id():
    assert scraper.extract_talk_id(make_talk_page()) == "sample-talk"


def test_extract_talk_id_missing_marker():
    with pytest.raises(ParseError):
        scraper.extract_talk_id("<html><body><h1>Not a talk</h1></body></html>")


def test_extract_talk_id_broken_state_json():
    html = '<script id="__NEXT_DATA__" type="application/json">{not json</script>'
    with pytest.raises(ParseError):
        scraper.extract_talk_id(html)


def test_extract_video_stream():
    stream = scraper.extract_video_stream(make_talk_page(mp4_url="https://download.ted.com/talk.mp4"))
    assert stream.hls_url == STREAM_URL
    assert stream.mp4_url == "https://download.ted.com/talk.mp4"


def test_extract_video_stream_empty():
    assert scraper.extract_video_stream(make_talk_page(stream_url=None, timing_url=None)) is None


def test_extract_metadata():
    metadata = scraper.extract_metadata(make_talk_page())
    assert metadata.thumbnail == THUMBNAIL
    assert metadata.duration == "PT12M34S"
    assert metadata.published_at.startswith("2020-03-02")
    assert metadata.presenter == "Jane Doe"


def test_extract_metadata_without_ld_uses_player_thumb():
    metadata = scraper.extract_metadata(make_talk_page(with_ld=False))
    assert metadata.thumbnail == THUMBNAIL
    assert metadata.duration is None


def test_extract_tags_normalized_in_order():
    page = make_talk_page(topics=("Education", " technology ", "EDUCATION", "Social  Change"))
    assert scraper.extract_tags(page) == ["education", "technology", "social change"]


def test_extract_tags_empty():
    assert scraper.extract_tags(make_talk_page(topics=())) == []


def test_extract_language_codes_normalized():
    page = make_talk_page(languages=("en", "zh-CN", "en", "pt_BR"))
    assert scraper.extract_language_codes(page) == ["en", "zh-cn", "pt-br"]


def test_extract_timing():
    fetcher = make_fetcher()
    assert scraper.extract_timing(make_talk_page(), fetcher) == {"intro": 11.8, "preroll": 0, "postad": 754.2}


def test_extract_timing_failure_is_empty():
    assert scraper.extract_timing(make_talk_page(), FakeFetcher()) == {}
    assert scraper.extract_timing(make_talk_page(timing_url=None), FakeFetcher()) == {}


def test_extract_languages():
    fetcher = make_fetcher()
    bundles = scraper.extract_languages(fetcher.pages["https://www.ted.com/talks/sample-talk"], fetcher)

    assert [b.language_code for b in bundles] == ["en", "ko"]
    ko = bundles[1]
    assert ko.title == "배움의 미래"
    assert ko.author == "제인 도"
    assert ko.transcript == "안녕하세요."


def test_extract_languages_drops_failures():
    fetcher = make_fetcher(languages=("en", "ko", "fr"))
    del fetcher.pages[scraper.language_page_url("sample-talk", "fr")]
    fetcher.pages[scraper.language_page_url("sample-talk", "ko")] = "<html>no data</html>"

    bundles = scraper.extract_languages(fetcher.pages["https://www.ted.com/talks/sample-talk"], fetcher)

    assert [b.language_code for b in bundles] == ["en"]


def test_extract_languages_only_supported():
    fetcher = make_fetcher(languages=("en", "ko", "xx"))
    page = fetcher.pages["https://www.ted.com/talks/sample-talk"]

    bundles = scraper.extract_languages(page, fetcher, supported={"en", "ko"})

    assert [b.language_code for b in bundles] == ["en", "ko"]
    assert fetcher.count(scraper.language_page_url("sample-talk", "xx")) == 0


def test_extract_languages_none_available():
    fetcher = make_fetcher(languages=())
    assert scraper.extract_languages(fetcher.pages["https://www.ted.com/talks/sample-talk"], fetcher) == []


# ----- Irregular page state -----

def test_extract_tags_from_topic_list():
    page = make_state_page({"slug": "s", "topics": ["Science", {"name": "Space"}, 7, None]})
    assert scraper.extract_tags(page) == ["science", "space"]


@pytest.mark.parametrize("topics", ["Science", 42, {"nodes": "Science"}])
def test_extract_tags_unreadable_topics(topics):
    assert scraper.extract_tags(make_state_page({"slug": "s", "topics": topics})) == []


def test_extract_video_stream_hls_as_string():
    player = {"resources": {"hls": "https://hls.ted.com/x.m3u8", "h264": [{"file": "https://download.ted.com/x.mp4"}]}}
    stream = scraper.extract_video_stream(make_state_page({"slug": "s"}, player))
    assert stream.hls_url is None
    assert stream.mp4_url == "https://download.ted.com/x.mp4"


@pytest.mark.parametrize("resources", ["none", ["hls"], {"hls": ["x"]}, {"hls": {"stream": 5}}])
def test_extract_video_stream_unreadable_resources(resources):
    assert scraper.extract_video_stream(make_state_page({"slug": "s"}, {"resources": resources})) is None


def test_extract_timing_hls_as_string():
    page = make_state_page({"slug": "s"}, {"resources": {"hls": TIMING_URL}})
    fetcher = make_fetcher()
    assert scraper.extract_timing(page, fetcher) == {}
    assert fetcher.calls == []


def test_extract_language_codes_skips_non_strings():
    player = {"languages": ["en", 3, None, {"languageCode": 7}, {"languageCode": "KO"}, ["fr"]]}
    assert scraper.extract_language_codes(make_state_page({"slug": "s"}, player)) == ["en", "ko"]


def test_extract_language_codes_not_a_list():
    assert scraper.extract_language_codes(make_state_page({"slug": "s"}, {"languages": "en"})) == []


def test_extract_languages_falls_back_to_primary_presenter():
    fetcher = make_fetcher(languages=("en",))
    fetcher.pages[scraper.language_page_url("sample-talk", "en")] = make_talk_page(author="")

    bundles = scraper.extract_languages(fetcher.pages["https://www.ted.com/talks/sample-talk"], fetcher)

    assert bundles[0].author == "Jane Doe"


def test_extract_language_bundle_prefers_own_presenter():
    bundle = scraper.extract_language_bundle(make_talk_page(author="제인 도"), "ko", fallback_author="Jane Doe")
    assert bundle.author == "제인 도"
