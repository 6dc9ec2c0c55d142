import threading
import time

import pytest
from fastapi.testclient import TestClient

from ted_catalog import fastapi_main
from ted_catalog.errors import FetchError
from ted_catalog.fastapi_main import app, get_orchestrator, get_store
from ted_catalog.ingestion import IngestionOrchestrator
from ted_catalog.store import MemoryStore
from ted_catalog.testing import TALK_URL

KO_USER = {"X-User-Id": "7", "X-User-Language": "ko"}
EN_USER = {"X-User-Id": "8", "X-User-Language": "en"}


@pytest.fixture
def client(store, fetcher):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_orchestrator] = lambda: IngestionOrchestrator(store, fetcher)
    yield TestClient(app)
    app.dependency_overrides.clear()


def add_video(client, headers, url=TALK_URL):
    return client.post("/my-videos", json={"tedUrl": url}, headers=headers)


# Test for root endpoint
def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Welcome to the TED Talk Catalog API!"}


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_add_and_list(client):
    response = add_video(client, KO_USER)
    assert response.status_code == 200
    added = response.json()
    assert added["title"] == "배움의 미래"
    assert set(added) == {"videoId", "title", "author", "thumbnail", "duration"}

    response = client.get("/my-videos", headers=KO_USER)
    assert response.status_code == 200
    body = response.json()
    assert body["totalCount"] == 1
    assert body["currentPage"] == 1
    assert body["list"][0]["videoId"] == added["videoId"]
    assert body["list"][0]["isFavorite"] is False


def test_second_user_gets_same_video(client):
    first = add_video(client, KO_USER).json()
    second = add_video(client, EN_USER).json()
    assert second["videoId"] == first["videoId"]
    assert second["title"] == "The future of learning"


def test_add_invalid_url(client):
    response = add_video(client, KO_USER, url="https://example.com/not-ted")
    assert response.status_code == 400
    assert response.json()["code"] == "400"


def test_add_missing_url(client):
    response = client.post("/my-videos", json={}, headers=KO_USER)
    assert response.status_code == 400


def test_add_upstream_failure(client, fetcher):
    fetcher.pages[TALK_URL] = FetchError("HTTP 503")
    response = add_video(client, KO_USER)
    assert response.status_code == 502
    assert response.json() == {"code": "2000", "message": "TED page could not be fetched"}


def test_add_unsupported_language(client):
    response = add_video(client, {"X-User-Id": "9", "X-User-Language": "fr"})
    assert response.status_code == 422
    assert response.json()["code"] == "2004"


def test_missing_user(client):
    response = client.get("/my-videos")
    assert response.status_code == 400
    assert response.json()["message"] == "Missing user"


def test_favorite(client):
    video_id = add_video(client, KO_USER).json()["videoId"]

    response = client.put("/my-videos/favorite", json={"videoId": video_id, "isFavorite": True}, headers=KO_USER)
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert client.get("/my-videos", headers=KO_USER).json()["list"][0]["isFavorite"] is True


def test_favorite_not_found(client):
    response = client.put("/my-videos/favorite", json={"videoId": 42, "isFavorite": True}, headers=KO_USER)
    assert response.status_code == 404
    assert response.json()["code"] == "404"


def test_favorite_requires_boolean(client):
    response = client.put("/my-videos/favorite", json={"videoId": 1, "isFavorite": "yes"}, headers=KO_USER)
    assert response.status_code == 400


def test_delete(client):
    video_id = add_video(client, KO_USER).json()["videoId"]

    response = client.request("DELETE", "/my-videos", json={"videoId": video_id}, headers=KO_USER)
    assert response.status_code == 200
    assert client.get("/my-videos", headers=KO_USER).json()["totalCount"] == 0

    response = client.request("DELETE", "/my-videos", json={"videoId": video_id}, headers=KO_USER)
    assert response.status_code == 404


def test_list_rejects_bad_page(client):
    assert client.get("/my-videos?page=0", headers=KO_USER).status_code == 400
    assert client.get("/my-videos?page=abc", headers=KO_USER).status_code == 400


def test_list_reports_skipped_rows(client, store):
    store.create_entry("7", 999)
    body = client.get("/my-videos", headers=KO_USER).json()
    assert body["list"] == []
    assert body["skipped"] == [{"videoId": 999, "code": "2005"}]


def test_concurrent_first_requests_share_one_store(mocker):
    def slow_store():
        time.sleep(0.05)
        return MemoryStore()

    factory = mocker.patch("ted_catalog.fastapi_main.create_store", side_effect=slow_store)
    mocker.patch.object(fastapi_main, "_store", None)
    barrier = threading.Barrier(4)
    stores = []

    def first_request():
        barrier.wait(timeout=10)
        stores.append(get_store())

    threads = [threading.Thread(target=first_request) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(stores) == 4
    assert len({id(s) for s in stores}) == 1
    assert factory.call_count == 1


def test_shutdown_closes_store(mocker):
    store = mocker.Mock()
    mocker.patch.object(fastapi_main, "_store", store)

    with TestClient(app) as test_client:
        assert test_client.get("/health").status_code == 200
        store.close.assert_not_called()

    store.close.assert_called_once_with()
    assert fastapi_main._store is None


def test_close_store_without_store(mocker):
    mocker.patch.object(fastapi_main, "_store", None)
    fastapi_main.close_store()
    assert fastapi_main._store is None
