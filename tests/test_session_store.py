from tasktrack.session_store import SessionStore


def test_starts_loading_and_anonymous():
    store = SessionStore()
    assert store.loading
    assert not store.is_authenticated
    assert store.get_identity() is None


def test_set_identity_ends_loading():
    store = SessionStore()
    store.set_identity("user-1")
    assert not store.loading
    assert store.is_authenticated
    assert store.get_identity() == "user-1"

    store.set_identity(None)
    assert not store.loading
    assert not store.is_authenticated


def test_listeners_and_cleanup():
    store = SessionStore()
    seen = []
    remove = store.add_listener(lambda s: seen.append(s.get_identity()))

    store.set_identity("user-1")
    remove()
    remove()
    store.set_identity("user-2")

    assert seen == ["user-1"]
