from booklet_library.database.collections import BOOKLETS, USERS
from booklet_library.dedupe import dedupe, natural_key
from booklet_library.sync.state import TOMBSTONE, load_states

from conftest import booklet_record


class TestNaturalKey:
    def test_booklet_key_ignores_case_and_padding(self):
        a = booklet_record("a", title=" Algebra Booklet ", grade="grade 10", subject="MATHS")
        b = booklet_record("b", title="algebra booklet", grade="Grade 10", subject="maths")
        assert natural_key(BOOKLETS, a) == natural_key(BOOKLETS, b)

    def test_user_key_is_email(self):
        assert natural_key(USERS, {"id": "1", "email": "A@B.c"}) == natural_key(USERS, {"id": "2", "email": "a@b.c "})

    def test_blank_booklets_keep_their_own_key(self):
        a = booklet_record("a", title="", grade="", subject="")
        b = booklet_record("b", title=" ", grade=None, subject="")
        assert natural_key(BOOKLETS, a) == "a"
        assert natural_key(BOOKLETS, a) != natural_key(BOOKLETS, b)


class TestDedupe:
    def test_newest_copy_wins(self, store):
        store.put(BOOKLETS, booklet_record("old", updated_at=100))
        store.put(BOOKLETS, booklet_record("new", updated_at=200))
        result = dedupe(store, BOOKLETS)
        assert (result.kept, result.removed) == (1, 1)
        assert [r["id"] for r in store.get_all(BOOKLETS)] == ["new"]

    def test_distinct_booklets_untouched(self, store):
        store.put(BOOKLETS, booklet_record("a", title="Algebra"))
        store.put(BOOKLETS, booklet_record("b", title="Geometry"))
        store.put(BOOKLETS, booklet_record("c", title="Algebra", grade="Grade 11"))
        result = dedupe(store, BOOKLETS)
        assert result.removed == 0
        assert store.count(BOOKLETS) == 3

    def test_blank_booklets_are_not_collapsed(self, store):
        store.put(BOOKLETS, booklet_record("draft-1", title="", grade="", subject=""))
        store.put(BOOKLETS, booklet_record("draft-2", title="", grade="", subject=""))
        assert dedupe(store, BOOKLETS).removed == 0
        assert store.count(BOOKLETS) == 2

    def test_removed_records_are_tombstoned(self, store):
        store.put(BOOKLETS, booklet_record("old", updated_at=100))
        store.put(BOOKLETS, booklet_record("new", updated_at=200))
        dedupe(store, BOOKLETS)
        with store.session() as db:
            states = load_states(db, BOOKLETS)
        assert states["old"].fingerprint == TOMBSTONE
        assert states["old"].modified_at == 100
        assert "new" not in states

    def test_idempotent(self, store):
        for i, ts in enumerate([100, 300, 200]):
            store.put(BOOKLETS, booklet_record(f"b{i}", updated_at=ts))
        dedupe(store, BOOKLETS)
        assert dedupe(store, BOOKLETS).removed == 0
        assert store.get(BOOKLETS, "b1") is not None

    def test_users_by_email(self, store):
        store.put(USERS, {"id": "u1", "email": "a@b.c", "createdAt": 1})
        store.put(USERS, {"id": "u2", "email": "A@B.C", "createdAt": 2})
        assert dedupe(store, USERS).removed == 1
        assert store.get(USERS, "u2") is not None
