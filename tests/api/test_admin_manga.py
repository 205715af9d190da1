import pytest

from app.models.image import Image
from app.models.work import ChapterGroup
from app.services.reclaimer import reclaim_worker


def chapter_url(manga_id, group_id, chapter_id):
    return f"/admin/api/manga/{manga_id}/chapter-group/{group_id}/chapter/{chapter_id}"


@pytest.fixture
def make_tree(admin_client):
    """Factory building Work -> ChapterGroup -> Chapter through the admin API"""

    def _make(title="W1", group_title="Vol 1", chapter_title="Ch 1"):
        manga = admin_client.post("/admin/api/manga", json={"title": title}).json()
        group = admin_client.post(
            f"/admin/api/manga/{manga['id']}/chapter-group", json={"title": group_title}
        ).json()
        chapter = admin_client.post(
            f"/admin/api/manga/{manga['id']}/chapter-group/{group['id']}/chapter",
            json={"title": chapter_title}
        ).json()
        return manga["id"], group["id"], chapter["id"]

    return _make


def test_create_manga(admin_client, image_b64):
    response = admin_client.post("/admin/api/manga", json={
        "title": "Test Manga",
        "authors": ["Author A", "Author B"],
        "genres": ["action", "comedy"],
        "description": "A test",
        "cover": image_b64(),
    })
    assert response.status_code == 201

    data = response.json()
    assert data["title"] == "Test Manga"
    assert data["status"] == 1
    assert data["authors"] == ["Author A", "Author B"]
    assert data["genres"] == ["action", "comedy"]
    assert data["chapter_groups"] == []
    assert data["cover"]["url"] == f"/api/images/{data['cover']['id']}.webp"

    # Cover is served publicly
    image = admin_client.get(data["cover"]["url"])
    assert image.status_code == 200
    assert image.headers["content-type"] == "image/webp"


def test_create_manga_rejects_wildcard_status(admin_client):
    response = admin_client.post("/admin/api/manga", json={"title": "X", "status": 0})
    assert response.status_code == 422


def test_create_manga_rejects_bad_cover(admin_client):
    response = admin_client.post("/admin/api/manga", json={"title": "X", "cover": "%%%"})
    assert response.status_code == 400
    assert "error" in response.json()


def test_upload_detach_sweep_scenario(admin_client, make_tree, db, image_store, image_b64):
    """Three pages in, the middle one out, a sweep, and the gap stays."""
    m, g, c = make_tree()
    url = chapter_url(m, g, c)

    response = admin_client.post(url + "/images", json={"images": [image_b64(), image_b64(), image_b64()]})
    assert response.status_code == 201
    images = response.json()
    assert [img["sequence"] for img in images] == [1, 2, 3]
    first, middle, last = [img["id"] for img in images]

    response = admin_client.delete(f"{url}/image/{middle}")
    assert response.status_code == 204
    reclaim_worker.trigger.assert_called()

    # Still on disk until swept
    assert image_store.exists(middle)

    stats = admin_client.post("/admin/api/cleanup").json()
    assert stats["rows_deleted"] == 1
    assert stats["files_deleted"] == 1

    detail = admin_client.get(f"/admin/api/manga/{m}").json()
    pages = detail["chapter_groups"][0]["chapters"][0]["images"]
    assert [(p["id"], p["sequence"]) for p in pages] == [(first, 1), (last, 3)]

    assert db.get(Image, middle) is None
    assert not image_store.exists(middle)

    # New pages continue after the highest sequence, not the count
    response = admin_client.post(url + "/images", json={"images": [image_b64()]})
    assert response.json()[0]["sequence"] == 4


def test_upload_invalid_payload_adds_nothing(admin_client, make_tree, db, image_b64):
    m, g, c = make_tree()

    response = admin_client.post(chapter_url(m, g, c) + "/images", json={"images": [image_b64(), "!!notbase64!!"]})
    assert response.status_code == 400
    assert db.query(Image).count() == 0


def test_upload_to_foreign_chapter(admin_client, make_tree, image_b64):
    m1, g1, _ = make_tree(title="W1")
    _, _, c2 = make_tree(title="W2")

    response = admin_client.post(chapter_url(m1, g1, c2) + "/images", json={"images": [image_b64()]})
    assert response.status_code == 404


def test_cross_work_edit_rejected(admin_client, make_tree, db):
    """Editing W1 with W2's group id fails as a whole and changes neither work."""
    m1, _, _ = make_tree(title="W1")
    m2, g2, _ = make_tree(title="W2", group_title="W2 Vol")

    response = admin_client.patch(f"/admin/api/manga/{m1}", json={
        "title": "W1 edited",
        "chapterGroups": [{"id": g2, "title": "stolen"}],
    })
    assert response.status_code == 404
    assert response.json() == {"error": "ChapterGroup not found"}

    assert admin_client.get(f"/admin/api/manga/{m1}").json()["title"] == "W1"
    db.expire_all()
    assert db.get(ChapterGroup, g2).title == "W2 Vol"


def test_nested_edit(admin_client, make_tree, image_b64):
    m, g, c = make_tree()
    images = admin_client.post(chapter_url(m, g, c) + "/images", json={"images": [image_b64(), image_b64()]}).json()

    response = admin_client.patch(f"/admin/api/manga/{m}", json={
        "status": 2,
        "chapterGroups": [{
            "id": g,
            "title": "Volume 1",
            "chapters": [{
                "id": c,
                "title": "Chapter 1",
                "locked": True,
                "images": [{"id": images[0]["id"], "sequence": 5}],
            }],
        }],
    })
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == 2
    group = data["chapter_groups"][0]
    assert group["title"] == "Volume 1"
    chapter = group["chapters"][0]
    assert chapter["locked"] is True
    assert [p["id"] for p in chapter["images"]] == [images[1]["id"], images[0]["id"]]


def test_edit_with_non_integer_id(admin_client, make_tree):
    m, _, _ = make_tree()

    response = admin_client.patch(f"/admin/api/manga/{m}", json={"chapterGroups": [{"id": "abc"}]})
    assert response.status_code == 422


def test_replace_cover_keeps_id(admin_client, image_b64):
    created = admin_client.post("/admin/api/manga", json={"title": "C", "cover": image_b64(color=(255, 0, 0))}).json()
    old_bytes = admin_client.get(created["cover"]["url"]).content

    updated = admin_client.patch(
        f"/admin/api/manga/{created['id']}", json={"cover": image_b64(color=(0, 0, 255))}
    ).json()

    assert updated["cover"]["id"] == created["cover"]["id"]
    assert admin_client.get(updated["cover"]["url"]).content != old_bytes


def test_delete_manga_cascades(admin_client, make_tree, db, image_store, image_b64):
    m, g, c = make_tree()
    admin_client.post(chapter_url(m, g, c) + "/images", json={"images": [image_b64(), image_b64()]})

    response = admin_client.delete(f"/admin/api/manga/{m}")
    assert response.status_code == 200
    assert response.json() == {"message": "Manga deleted"}
    reclaim_worker.trigger.assert_called()

    assert admin_client.get(f"/admin/api/manga/{m}").status_code == 404
    assert admin_client.post(chapter_url(m, g, c) + "/images", json={"images": [image_b64()]}).status_code == 404

    stats = admin_client.post("/admin/api/cleanup").json()
    assert stats["rows_deleted"] == 2
    assert db.query(Image).count() == 0
    assert list(image_store.root.iterdir()) == []


def test_delete_group_and_chapter(admin_client, make_tree):
    m, g, c = make_tree()
    other_group = admin_client.post(f"/admin/api/manga/{m}/chapter-group", json={"title": "Vol 2"}).json()
    assert other_group["sequence"] == 2

    assert admin_client.delete(chapter_url(m, g, c)).status_code == 200
    assert admin_client.delete(chapter_url(m, g, c)).status_code == 404

    assert admin_client.delete(f"/admin/api/manga/{m}/chapter-group/{other_group['id']}").status_code == 200

    groups = admin_client.get(f"/admin/api/manga/{m}").json()["chapter_groups"]
    assert [(grp["id"], grp["chapters"]) for grp in groups] == [(g, [])]


def test_detach_then_attach(admin_client, make_tree, image_b64):
    m, g, c = make_tree()
    target = admin_client.post(
        f"/admin/api/manga/{m}/chapter-group/{g}/chapter", json={"title": "Ch 2"}
    ).json()
    [page] = admin_client.post(chapter_url(m, g, c) + "/images", json={"images": [image_b64()]}).json()

    assert admin_client.delete(f"{chapter_url(m, g, c)}/image/{page['id']}").status_code == 204

    response = admin_client.put(f"{chapter_url(m, g, target['id'])}/image/{page['id']}")
    assert response.status_code == 200
    assert response.json()["sequence"] == 1

    # Attaching a linked page again is refused
    response = admin_client.put(f"{chapter_url(m, g, c)}/image/{page['id']}")
    assert response.status_code == 404
