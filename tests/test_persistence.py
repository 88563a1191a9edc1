"""Tests for storyweave.persistence and storyweave.manifest."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from storyweave.errors import FormatError, NetworkFailure
from storyweave.manifest import manifest_from_pages, pages_from_manifest, parse_manifest
from storyweave.models import LocalBlobId, Page, RemoteUrl, ServerPath, Settings
from storyweave.persistence import (
    SETTINGS_KEY,
    STORY_KEY,
    LocalPersistence,
    RemotePersistence,
    SettingsStore,
)


def _pages() -> list[Page]:
    return [
        Page(id="t", type="text", text="Hello", duration_sec=3),
        Page(id="s", type="image", media=ServerPath(value="/materials/cat_1_x.png")),
        Page(id="r", type="video", media=RemoteUrl(value="https://e.com/v.mp4")),
        Page(id="b", type="image", media=LocalBlobId(value="media-1"),
             fallback_url="https://e.com/b.png"),
    ]


class TestManifestConversion:
    def test_server_manifest_shape(self) -> None:
        dumped = manifest_from_pages(_pages(), revision=7).dump()
        assert dumped["version"] == "1.0"
        assert dumped["revision"] == 7
        assert "updatedAt" in dumped
        assert dumped["pages"] == [
            {"id": "t", "type": "text", "durationSec": 3, "text": "Hello"},
            {"id": "s", "type": "image", "fileName": "cat_1_x.png"},
            {"id": "r", "type": "video", "url": "https://e.com/v.mp4"},
            {"id": "b", "type": "image", "url": "https://e.com/b.png"},
        ]

    def test_local_manifest_keeps_media_ids(self) -> None:
        entry = manifest_from_pages(_pages(), keep_media_ids=True).dump()["pages"][3]
        assert entry == {"id": "b", "type": "image", "url": "https://e.com/b.png",
                         "mediaId": "media-1"}

    def test_load_maps_file_name_to_materials(self) -> None:
        pages = pages_from_manifest(manifest_from_pages(_pages(), keep_media_ids=True))
        assert pages[1].media == ServerPath(value="materials/cat_1_x.png")
        assert pages[2].media == RemoteUrl(value="https://e.com/v.mp4")
        assert pages[3].media == LocalBlobId(value="media-1")
        assert pages[3].fallback_url == "https://e.com/b.png"

    def test_missing_ids_are_assigned(self) -> None:
        manifest = parse_manifest({"pages": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]})
        pages = pages_from_manifest(manifest)
        assert pages[0].id and pages[1].id and pages[0].id != pages[1].id

    def test_non_http_url_dropped(self) -> None:
        manifest = parse_manifest({"pages": [{"id": "x", "type": "image", "url": "blob:abc"}]})
        assert pages_from_manifest(manifest)[0].media is None

    @pytest.mark.parametrize("data", [[], {"pages": "x"}, {"pages": [{"type": "gif"}]}, None])
    def test_parse_rejects_bad_shapes(self, data) -> None:
        with pytest.raises(FormatError):
            parse_manifest(data)


class TestLocalPersistence:
    async def test_load_nothing(self, kv) -> None:
        assert await LocalPersistence(kv).load() is None

    async def test_save_and_load(self, kv) -> None:
        store = LocalPersistence(kv)
        await store.save(manifest_from_pages(_pages(), revision=1, keep_media_ids=True))
        loaded = await store.load()
        assert [p.id for p in loaded.pages] == ["t", "s", "r", "b"]
        assert json.loads(kv.get(STORY_KEY))["revision"] == 1

    async def test_stale_save_ignored(self, kv) -> None:
        store = LocalPersistence(kv)
        await store.save(manifest_from_pages(_pages()[:1], revision=2))
        await store.save(manifest_from_pages(_pages(), revision=1))
        loaded = await store.load()
        assert loaded.revision == 2
        assert len(loaded.pages) == 1

    async def test_corrupt_json(self, kv) -> None:
        kv.set(STORY_KEY, "{nope")
        with pytest.raises(FormatError):
            await LocalPersistence(kv).load()


class TestSettingsStore:
    def test_defaults_when_empty(self, kv) -> None:
        assert SettingsStore(kv).load() == Settings()

    def test_roundtrip(self, kv) -> None:
        store = SettingsStore(kv)
        store.save(Settings(auto_play=True, auto_play_interval_sec=2, text_size=30))
        assert json.loads(kv.get(SETTINGS_KEY)) == {
            "autoPlay": True, "autoPlayIntervalSec": 2, "textSize": 30,
        }
        assert store.load().auto_play is True

    def test_corrupt_json_falls_back(self, kv) -> None:
        kv.set(SETTINGS_KEY, "nope{")
        assert SettingsStore(kv).load() == Settings()


def _mock_response(body, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    return resp


class TestRemotePersistence:
    @pytest.fixture
    def store(self) -> RemotePersistence:
        return RemotePersistence("http://localhost:3000")

    async def test_load(self, store) -> None:
        body = {"version": "1.0", "pages": [{"id": "a", "type": "text", "text": "x"}]}
        with patch("httpx.AsyncClient.get", AsyncMock(return_value=_mock_response(body))):
            manifest = await store.load()
        assert manifest.pages[0].id == "a"

    async def test_load_404(self, store) -> None:
        with patch("httpx.AsyncClient.get", AsyncMock(return_value=_mock_response({}, 404))):
            assert await store.load() is None

    async def test_load_server_error(self, store) -> None:
        with patch("httpx.AsyncClient.get", AsyncMock(return_value=_mock_response({}, 500))):
            with pytest.raises(NetworkFailure):
                await store.load()

    async def test_load_unreachable(self, store) -> None:
        with patch("httpx.AsyncClient.get", AsyncMock(side_effect=httpx.ConnectError("x"))):
            with pytest.raises(NetworkFailure):
                await store.load()

    async def test_save_posts_manifest(self, store) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"success": True}))
        with patch("httpx.AsyncClient.post", mock_post):
            await store.save(manifest_from_pages(_pages(), revision=3))
        assert mock_post.call_args[0][0] == "/api/story"
        sent = mock_post.call_args.kwargs["json"]
        assert sent["revision"] == 3
        assert all("mediaId" not in p for p in sent["pages"])

    async def test_save_error_message(self, store) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"error": "Failed to save story data"}, 500))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(NetworkFailure, match="Failed to save story data"):
                await store.save(manifest_from_pages([]))


class TestStaleReporting:
    async def test_local_save_reports_stale(self, kv) -> None:
        store = LocalPersistence(kv)
        assert await store.save(manifest_from_pages([], revision=2)) is True
        assert await store.save(manifest_from_pages([], revision=1)) is False
        assert await store.save(manifest_from_pages([], revision=3)) is True

    async def test_local_stored_revision_ignores_page_shape(self, kv) -> None:
        kv.set(STORY_KEY, json.dumps({"revision": 5, "pages": [{"type": "audio"}]}))
        store = LocalPersistence(kv)
        with pytest.raises(FormatError):
            await store.load()
        assert await store.stored_revision() == 5

    @pytest.mark.parametrize("raw", [None, "{nope", '{"revision": "5"}', '{"revision": true}', "[]"])
    async def test_local_stored_revision_unreadable(self, kv, raw) -> None:
        if raw is not None:
            kv.set(STORY_KEY, raw)
        assert await LocalPersistence(kv).stored_revision() is None

    async def test_remote_save_reports_stale(self) -> None:
        body = {"success": True, "stale": True, "message": "A newer story is already saved"}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response(body))):
            written = await RemotePersistence("http://localhost:3000").save(manifest_from_pages([], revision=1))
        assert written is False

    async def test_remote_stored_revision(self) -> None:
        body = {"revision": 7, "pages": [{"type": "audio"}]}
        with patch("httpx.AsyncClient.get", AsyncMock(return_value=_mock_response(body))):
            assert await RemotePersistence("http://localhost:3000").stored_revision() == 7


class TestInvalidEntries:
    def test_blank_media_id_is_a_format_error(self) -> None:
        manifest = parse_manifest({"pages": [{"id": "p1", "type": "image", "mediaId": "  "}]})
        with pytest.raises(FormatError, match="page 1"):
            pages_from_manifest(manifest)

    @pytest.mark.parametrize("duration", [float("nan"), float("inf"), -2, 0])
    def test_unusable_duration_means_default(self, duration) -> None:
        manifest = parse_manifest({"pages": [{"id": "p1", "type": "text", "text": "x", "durationSec": duration}]})
        assert pages_from_manifest(manifest)[0].duration_sec is None

    @pytest.mark.parametrize("page_id", ["../escaped", "a/b", ".hidden", "", "x" * 200])
    def test_unsafe_ids_get_fresh_ones(self, page_id) -> None:
        manifest = parse_manifest({"pages": [{"id": page_id, "type": "text", "text": "x"}]})
        new_id = pages_from_manifest(manifest)[0].id
        assert new_id != page_id
        assert len(new_id) == 32

    def test_safe_ids_are_kept(self) -> None:
        manifest = parse_manifest({"pages": [{"id": "page-1_A", "type": "text", "text": "x"}]})
        assert pages_from_manifest(manifest)[0].id == "page-1_A"
