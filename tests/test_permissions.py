import pytest

from gallery.auth.gate import AuthGate, MappingCookies, require_admin
from gallery.auth.session import COOKIE_NAME
from gallery.auth.users import UserRecord
from gallery.errors import Forbidden, Unauthorized
from gallery.permissions import can_manage_users, ensure_can_delete_user, ensure_owns_resource, owns_resource


class _Sink:
    def __init__(self):
        self.deleted = []

    def set_cookie(self, key, value="", **kwargs):
        raise AssertionError("the gate never sets cookies")

    def delete_cookie(self, key, **kwargs):
        self.deleted.append(key)


@pytest.fixture()
def gate(codec, store, settings):
    return AuthGate(codec, store, settings)


def _user(folder="alice", role="member", uid="a" * 24):
    return UserRecord(id=uid, display_name=folder.title(), folder=folder, role=role)


# ------------------ ownership policy ------------------


def test_owns_resource_boundary():
    alice, bob = _user("alice"), _user("bob", uid="b" * 24)
    assert owns_resource(alice, "alice/x.jpg")
    assert owns_resource(alice, "alice/sub/x")
    assert not owns_resource(alice, "bob/x.jpg")
    assert not owns_resource(bob, "alice/x.jpg")
    assert not owns_resource(alice, "alice")
    assert not owns_resource(alice, "alice2/x.jpg")
    assert not owns_resource(alice, "x/alice/x.jpg")


def test_admin_is_still_folder_scoped_for_photos():
    admin = _user("root", role="admin")
    with pytest.raises(Forbidden):
        ensure_owns_resource(admin, "alice/x.jpg")
    ensure_owns_resource(admin, "root/x.jpg")


def test_can_manage_users_only_for_admins():
    assert can_manage_users(_user(role="admin"))
    assert not can_manage_users(_user(role="member"))


def test_require_admin():
    require_admin(_user(role="admin"))
    with pytest.raises(Forbidden) as exc:
        require_admin(_user(role="member"))
    assert exc.value.status_code == 403


def test_admin_cannot_delete_itself():
    admin = _user(role="admin")
    with pytest.raises(Forbidden):
        ensure_can_delete_user(admin, admin.id)
    ensure_can_delete_user(admin, "b" * 24)


def test_member_cannot_delete_anyone():
    with pytest.raises(Forbidden):
        ensure_can_delete_user(_user(role="member"), "b" * 24)


# ------------------ gate ------------------


def test_resolve_without_cookie_is_none(gate):
    assert gate.resolve_current_user(MappingCookies({})) is None
    assert gate.resolve_current_user(MappingCookies(None)) is None


def test_resolve_valid_cookie(gate, codec, make_user):
    alice = make_user("Alice", "alice")
    user = gate.resolve_current_user(MappingCookies({COOKIE_NAME: codec.sign(alice.id)}))
    assert user is not None
    assert user.id == alice.id
    assert user.folder == "alice"


def test_resolve_tampered_cookie_is_none(gate, codec, make_user):
    alice = make_user("Alice", "alice")
    token = codec.sign(alice.id)
    assert gate.resolve_current_user(MappingCookies({COOKIE_NAME: token[:-1] + ("0" if token[-1] != "0" else "1")})) is None


def test_resolve_deleted_user_is_none(gate, codec, store, make_user):
    alice = make_user("Alice", "alice")
    token = codec.sign(alice.id)
    store.delete_one(alice.id)
    assert gate.resolve_current_user(MappingCookies({COOKIE_NAME: token})) is None


def test_require_authenticated_clears_cookie_and_raises_401(gate):
    sink = _Sink()
    with pytest.raises(Unauthorized) as exc:
        gate.require_authenticated_user(MappingCookies({COOKIE_NAME: "bogus.cookie"}), sink)
    assert exc.value.status_code == 401
    assert exc.value.clear_session is True
    assert sink.deleted == [COOKIE_NAME]


def test_require_authenticated_returns_user_untouched_response(gate, codec, make_user):
    alice = make_user("Alice", "alice")
    sink = _Sink()
    user = gate.require_authenticated_user(MappingCookies({COOKIE_NAME: codec.sign(alice.id)}), sink)
    assert user.id == alice.id
    assert sink.deleted == []
