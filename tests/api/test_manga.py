import pytest

from app.models.work import WorkStatus
from app.schemas.manga import WorkCreate


@pytest.fixture
def library(repo, image_bytes):
    """
    Two works:
      - "Blade" (ongoing, action/war, cover) with Vol 2 created before Vol 1
      - "Finished" (ended, comedy), no chapters
    """
    blade = repo.create_work(
        WorkCreate(title="Blade", genres=["action", "war"], authors=["Mori"], description="Swords"),
        cover_bytes=image_bytes()
    ).id
    vol2 = repo.create_group(blade, "Vol 2", seq=2).id
    vol1 = repo.create_group(blade, "Vol 1", seq=1).id
    ch1 = repo.create_chapter(blade, vol1, "Ch 1").id
    ch2 = repo.create_chapter(blade, vol1, "Ch 2").id
    ch3 = repo.create_chapter(blade, vol2, "Ch 3").id
    pages = [img.id for img in repo.upload_images(blade, vol1, ch1, [image_bytes(), image_bytes()])]

    finished = repo.create_work(WorkCreate(title="Finished", status=WorkStatus.ENDED, genres=["comedy"])).id

    return {"blade": blade, "vol1": vol1, "vol2": vol2, "ch1": ch1, "ch2": ch2, "ch3": ch3,
            "pages": pages, "finished": finished}


def test_list_manga(auth_client, library):
    response = auth_client.get("/api/manga/")
    assert response.status_code == 200

    data = response.json()
    assert data["total"] == 2
    assert data["page"] == 1
    titles = [item["title"] for item in data["items"]]
    assert titles == ["Blade", "Finished"]

    blade = data["items"][0]
    assert blade["id"] == str(library["blade"])
    assert blade["cover"].endswith(".webp")
    # Newest chapter by creation time
    assert blade["latest_chapter"]["id"] == str(library["ch3"])
    assert data["items"][1]["latest_chapter"] is None


def test_list_filters(auth_client, library):
    ended = auth_client.get("/api/manga/", params={"status": 2}).json()
    assert [i["title"] for i in ended["items"]] == ["Finished"]

    war = auth_client.get("/api/manga/", params={"genre": "war"}).json()
    assert [i["title"] for i in war["items"]] == ["Blade"]

    everything = auth_client.get("/api/manga/", params={"status": 0, "genre": "all"}).json()
    assert everything["total"] == 2


def test_list_rejects_unknown_filters(auth_client, library):
    assert auth_client.get("/api/manga/", params={"genre": "cooking"}).status_code == 400
    assert auth_client.get("/api/manga/", params={"status": 3}).status_code == 422


def test_batch_lookup(auth_client, library):
    response = auth_client.post("/api/manga/", json=[str(library["finished"]), "abc", "99999"])
    assert response.status_code == 200
    assert [item["title"] for item in response.json()] == ["Finished"]


@pytest.mark.parametrize("junk", ["²", "1.5", "", "-3", str(10 ** 30), "0x10"])
def test_batch_lookup_skips_unparseable_ids(auth_client, library, junk):
    """Ids int() rejects, or that no row can have, are skipped rather than failing the request"""
    response = auth_client.post("/api/manga/", json=[str(library["blade"]), junk])
    assert response.status_code == 200
    assert [item["title"] for item in response.json()] == ["Blade"]


def test_manga_detail_orders_groups_and_chapters(auth_client, library):
    response = auth_client.get(f"/api/manga/{library['blade']}")
    assert response.status_code == 200

    data = response.json()
    assert data["description"] == "Swords"
    assert data["authors"] == ["Mori"]
    assert data["genres"] == ["action", "war"]
    assert isinstance(data["updated_at"], int)

    assert list(data["chapters"].keys()) == ["Vol 1", "Vol 2"]
    assert [ch["title"] for ch in data["chapters"]["Vol 1"]] == ["Ch 1", "Ch 2"]
    assert data["chapters"]["Vol 2"][0]["id"] == str(library["ch3"])


def test_manga_detail_not_found(auth_client):
    response = auth_client.get("/api/manga/4242")
    assert response.status_code == 404
    assert response.json() == {"error": "Manga not found"}


def test_chapter_pages_in_order(auth_client, library):
    response = auth_client.get(f"/api/manga/{library['blade']}/chapter/{library['ch1']}")
    assert response.status_code == 200
    assert response.json() == [f"/api/images/{pid}.webp" for pid in library["pages"]]

    page = auth_client.get(response.json()[0])
    assert page.status_code == 200


def test_chapter_of_another_manga(auth_client, library):
    response = auth_client.get(f"/api/manga/{library['finished']}/chapter/{library['ch1']}")
    assert response.status_code == 404


@pytest.mark.parametrize("filename", ["abc.webp", "1.png", "..%2Fsecret.webp", "999.webp"])
def test_image_not_found(client, filename):
    assert client.get(f"/api/images/{filename}").status_code == 404
