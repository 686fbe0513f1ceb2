import pytest

from gallery.core.metadata import build_context, sanitize_context_value
from gallery.errors import Forbidden, InvalidInput, NotFound
from gallery.services import photo_service


def test_sanitize_context_value():
    assert sanitize_context_value("a|b=c") == "a-b-c"


def test_build_context_trims_and_skips_missing():
    context = build_context(album="  Verano | 2024 ", description=None, image_name="x=y")
    assert context == {"imageName": "x-y", "album": "Verano - 2024"}


def test_upload_goes_to_the_callers_folder(media, make_user, png_bytes):
    alice = make_user("Alice", "alice")
    res = photo_service.upload_photo(
        media=media, user=alice, data=png_bytes, filename="Playa 1.PNG", album="Verano", description="Con amigos"
    )
    assert res.public_id.startswith("alice/Playa_1-")
    assert res.format == "png"
    assert res.url == f"/media/{res.public_id}.png"
    assert res.context == {"imageName": "Playa 1.PNG", "album": "Verano", "description": "Con amigos"}
    assert f"gallery-user:{alice.id}" in res.tags
    assert (media.root / f"{res.public_id}.png").read_bytes() == png_bytes


def test_upload_rejects_unsupported_files(media, make_user, png_bytes):
    alice = make_user("Alice", "alice")
    with pytest.raises(InvalidInput):
        photo_service.upload_photo(media=media, user=alice, data=png_bytes, filename="script.sh")
    with pytest.raises(InvalidInput):
        photo_service.upload_photo(media=media, user=alice, data=b"", filename="a.png")
    with pytest.raises(InvalidInput):
        photo_service.upload_photo(media=media, user=alice, data=b"x" * (media.max_bytes + 1), filename="a.png")


def test_delete_requires_ownership(media, make_user, png_bytes):
    alice = make_user("Alice", "alice")
    bob = make_user("Bob", "bob")
    res = photo_service.upload_photo(media=media, user=bob, data=png_bytes, filename="b.jpg")

    with pytest.raises(Forbidden):
        photo_service.delete_photo(media=media, user=alice, public_id=res.public_id)
    assert media.get(res.public_id) is not None

    assert photo_service.delete_photo(media=media, user=bob, public_id=res.public_id) == "ok"
    assert media.get(res.public_id) is None
    assert photo_service.delete_photo(media=media, user=bob, public_id=res.public_id) == "not found"


def test_traversal_public_ids_are_rejected(media, make_user):
    alice = make_user("Alice", "alice")
    for pid in ("alice/../bob/x", "alice//x", "alice/./x"):
        with pytest.raises(InvalidInput):
            photo_service.delete_photo(media=media, user=alice, public_id=pid)
    with pytest.raises(InvalidInput):
        photo_service.delete_photo(media=media, user=alice, public_id="")


def test_update_metadata(media, make_user, png_bytes):
    alice = make_user("Alice", "alice")
    bob = make_user("Bob", "bob")
    res = photo_service.upload_photo(media=media, user=alice, data=png_bytes, filename="a.jpg", album="Old")

    updated = photo_service.update_photo_metadata(
        media=media, user=alice, public_id=res.public_id, album="Nuevo|álbum", description="Texto"
    )
    assert updated.context["album"] == "Nuevo-álbum"
    assert updated.context["description"] == "Texto"
    assert updated.context["imageName"] == "a.jpg"

    with pytest.raises(Forbidden):
        photo_service.update_photo_metadata(media=media, user=bob, public_id=res.public_id, album="x")
    with pytest.raises(NotFound):
        photo_service.update_photo_metadata(media=media, user=alice, public_id="alice/missing", album="x")


def test_list_photos_filters_by_folder(media, make_user, png_bytes):
    alice = make_user("Alice", "alice")
    bob = make_user("Bob", "bob")
    a = photo_service.upload_photo(media=media, user=alice, data=png_bytes, filename="a.jpg")
    b = photo_service.upload_photo(media=media, user=bob, data=png_bytes, filename="b.jpg")

    assert {r.public_id for r in photo_service.list_photos(media=media)} == {a.public_id, b.public_id}
    assert [r.public_id for r in photo_service.list_photos(media=media, folder="alice")] == [a.public_id]
    assert [r.public_id for r in media.search(tag=f"gallery-user:{bob.id}")] == [b.public_id]


def test_public_id_from_url_round_trip(media, make_user, png_bytes):
    alice = make_user("Alice", "alice")
    res = photo_service.upload_photo(media=media, user=alice, data=png_bytes, filename="a.webp")
    assert media.public_id_from_url(res.url) == res.public_id
    assert media.public_id_from_url("https://elsewhere.example/a.jpg") is None


def test_index_lives_outside_the_served_root(media, make_user, png_bytes):
    alice = make_user("Alice", "alice")
    photo_service.upload_photo(media=media, user=alice, data=png_bytes, filename="a.jpg")
    assert (media.root.parent / "media.index.yml").exists()
    assert sorted(p.name for p in media.root.iterdir()) == ["alice"]
