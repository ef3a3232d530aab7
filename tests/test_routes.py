from __future__ import annotations

import base64
import io
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from family_api.bio import BioGenerator
from family_api.deps import get_bio, get_crop_executor, get_store
from family_api.main import app
from family_api.routes import media
from family_api.store import MemoryMemberStore


class _Models:
    def __init__(self, text: str):
        self.text = text
        self.prompts: list[str] = []

    def generate_content(self, *, model: str, contents: str):
        self.prompts.append(contents)
        return type("Response", (), {"text": self.text})()


class _GenaiStub:
    def __init__(self, text: str = "A warm life."):
        self.models = _Models(text)


@pytest.fixture()
def store(family) -> MemoryMemberStore:
    return MemoryMemberStore(family)


@pytest.fixture()
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_bio] = lambda: BioGenerator(None, client=_GenaiStub())
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health(client) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "database": "connected"}


def test_health_reports_disconnected_database() -> None:
    class _Down(MemoryMemberStore):
        def count(self) -> int:
            raise RuntimeError("DATABASE_URL is not set")

    app.dependency_overrides[get_store] = lambda: _Down()
    try:
        r = TestClient(app).get("/health")
    finally:
        app.dependency_overrides.clear()

    assert r.status_code == 500
    assert r.json()["database"] == "disconnected"


def test_empty_store_serves_placeholder_root() -> None:
    app.dependency_overrides[get_store] = lambda: MemoryMemberStore()
    try:
        r = TestClient(app).get("/family")
    finally:
        app.dependency_overrides.clear()

    assert r.json() == {
        "id": "root",
        "name": "Family Root",
        "gender": "male",
        "relationship": "root",
        "children": [],
    }


def test_get_family_is_nested(client) -> None:
    tree = client.get("/family").json()

    assert tree["id"] == "r"
    assert [c["id"] for c in tree["children"]] == ["s", "a", "b"]
    assert tree["children"][1]["children"][1]["name"] == "Khalil"


def test_add_child_and_linked_spouse(client, store) -> None:
    r = client.post("/family/members", json={"parentId": "root", "member": {"name": "Binta", "gender": "female"}})
    assert r.status_code == 201
    binta = r.json()
    assert binta["parentId"] == "r"
    assert binta["createdAt"] is not None
    assert binta["createdAt"] == store.get(binta["id"]).created_at.isoformat()

    r = client.post(
        "/family/members",
        json={
            "parentId": binta["id"],
            "member": {"id": "client-temp", "name": "Moussa", "relationship": "spouse", "children": []},
            "shouldLinkSpouse": True,
        },
    )
    assert r.status_code == 201
    moussa = r.json()
    assert moussa["id"] != "client-temp"
    assert moussa["spouseId"] == binta["id"]

    keys = {m["key"] for m in client.get("/family/marriages").json()}
    assert "-".join(sorted((binta["id"], moussa["id"]))) in keys


def test_add_validation_and_missing_parent(client) -> None:
    assert client.post("/family/members", json={"parentId": "r", "member": {"name": ""}}).status_code == 422
    assert client.post("/family/members", json={"parentId": "ghost", "member": {"name": "X"}}).status_code == 404
    r = client.post("/family/members", json={"parentId": "r", "member": {"name": "X", "relationship": "root"}})
    assert r.status_code == 422


def test_partial_update_with_metadata(client, store) -> None:
    r = client.put("/family/members/root", json={"name": "Sidafa", "metadata": {"location": "Conakry"}})

    assert r.status_code == 200
    assert r.json()["name"] == "Sidafa"
    root = store.get("r")
    assert root.location == "Conakry"
    assert root.birth_year == 1916
    assert root.photo_url == "/sidafa.jpeg"


def test_update_clears_with_null_and_rejects_bad_input(client, store) -> None:
    assert client.put("/family/members/a", json={"photoUrl": None}).status_code == 200
    assert store.get("a").photo_url is None

    assert client.put("/family/members/a", json={"name": "  "}).status_code == 422
    assert client.put("/family/members/a", json={"deathYear": 1900}).status_code == 422
    assert client.put("/family/members/ghost", json={"name": "X"}).status_code == 404


def test_delete_cascades_and_unlinks_survivors(client, store) -> None:
    r = client.delete("/family/members/a")

    assert r.status_code == 200
    assert r.json()["success"] is True
    assert {m.id for m in store.list_members()} == {"r", "s", "b"}


def test_root_delete_requires_explicit_flag(client, store) -> None:
    assert client.delete("/family/members/root").status_code == 409
    assert store.count() == 6

    assert client.delete("/family/members/root", params={"allowRoot": "true"}).status_code == 200
    assert client.get("/family").json()["id"] == "root"


def test_link_and_unlink(client, store) -> None:
    assert client.post("/family/link", json={"memberId1": "b", "memberId2": "o"}).status_code == 200
    assert store.get("b").spouse_id == "o"
    assert store.get("a").spouse_id is None

    assert client.post("/family/unlink", json={"memberId1": "b", "memberId2": "o"}).status_code == 200
    assert client.post("/family/unlink", json={"memberId1": "b", "memberId2": "o"}).status_code == 200
    assert store.get("o").spouse_id is None

    assert client.post("/family/link", json={"memberId1": "b", "memberId2": "b"}).status_code == 422
    assert client.post("/family/link", json={"memberId1": "b", "memberId2": "ghost"}).status_code == 404


def test_views(client) -> None:
    assert [m["name"] for m in client.get("/family/search", params={"q": "amin"}).json()["results"]] == ["Amina Sano"]
    assert client.get("/family/search").json()["results"] == []
    years = [m.get("birthYear") for m in client.get("/family/timeline").json()]
    assert years == [1916, 1920, 1950, 1990, 2015, None]
    assert [m["id"] for m in client.get("/family/gallery").json()] == ["r", "a"]

    spouses = client.get("/family/members/o/spouses").json()
    assert spouses["role"] == "Matriarch"
    assert [m["id"] for m in spouses["spouses"]] == ["a"]
    assert client.get("/family/members/ghost/spouses").status_code == 404


def test_chart_json_and_svg(client) -> None:
    data = client.get("/family/chart", params={"collapsed": ["a", "ghost"], "width": 1000}).json()

    ids = [n["id"] for n in data["layers"]["nodes"]]
    assert ids == ["r", "s", "a", "b"]
    assert data["transform"] == {"x": 500.0, "y": 80.0, "k": 0.85}

    svg = client.get("/family/chart.svg")
    assert svg.headers["content-type"].startswith("image/svg+xml")
    assert "layer-marriage" in svg.text


def test_bio(client) -> None:
    r = client.post("/family/bio", json={"name": "Amina", "birthYear": 1990, "relation": "Descendant"})

    assert r.json() == {"bio": "A warm life."}


def test_crop_returns_jpeg_data_uri(client) -> None:
    buf = io.BytesIO()
    Image.new("RGB", (40, 20), (200, 10, 10)).save(buf, "PNG")
    payload = "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()

    r = client.post("/media/crop", json={"image": payload, "zoom": 1.5, "offsetX": 20})

    assert r.status_code == 200
    assert r.json()["photoUrl"].startswith("data:image/jpeg;base64,")
    assert client.post("/media/crop", json={"image": "not base64!"}).status_code == 422
    assert client.post("/media/crop", json={"image": payload, "zoom": 5}).status_code == 422


def test_crop_that_never_starts_times_out(client, monkeypatch) -> None:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (0, 0, 0)).save(buf, "PNG")
    payload = base64.b64encode(buf.getvalue()).decode()
    gate = threading.Event()
    pool = ThreadPoolExecutor(max_workers=1)
    blocker = pool.submit(gate.wait)
    monkeypatch.setattr(media, "CROP_TIMEOUT_SECONDS", 0.05)
    app.dependency_overrides[get_crop_executor] = lambda: pool
    try:
        r = client.post("/media/crop", json={"image": payload})
    finally:
        gate.set()
        blocker.result(timeout=10)
        pool.shutdown()

    assert r.status_code == 504
    assert r.json()["detail"]["error"] == "Failed to crop photo"
