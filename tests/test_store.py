"""Tests for the SQLite index store."""

import pytest

from openobs.errors import DatabaseError
from openobs.indexer.store import build_match_query

T1 = "2024-01-01T00:00:00+00:00"
T2 = "2024-02-01T00:00:00+00:00"


def _add(store, path, title="", content="", modified=T1):
    store.upsert_note(path, title or path, content, None, T1, modified)


class TestNotes:
    def test_upsert_keeps_created_at(self, store):
        store.upsert_note("a.md", "A", "one", None, T1, T1)
        store.upsert_note("a.md", "A2", "two", '{"k": 1}', T2, T2)

        note = store.get_note("a.md")

        assert note.title == "A2"
        assert note.content == "two"
        assert note.frontmatter == '{"k": 1}'
        assert note.created_at == T1
        assert note.modified_at == T2
        assert store.count_notes() == 1

    def test_get_missing_note(self, store):
        assert store.get_note("missing.md") is None

    def test_delete_removes_dependents_but_keeps_incoming(self, store):
        _add(store, "a.md")
        _add(store, "b.md")
        store.set_links("a.md", [("b", None)])
        store.set_links("b.md", [("a", None)])
        store.set_tags("a.md", ["x"])
        store.set_headings("a.md", [(1, "H", 1)])

        store.delete_note("a.md")

        assert store.get_note("a.md") is None
        assert store.get_outgoing_links("a.md") == []
        assert store.get_notes_by_tag("x") == []
        assert store.get_headings("a.md") == []
        assert store.get_all_links() == [("b.md", "a")]
        assert all(r.path != "a.md" for r in store.search("a", 10))

    def test_update_note_path_moves_everything(self, store):
        _add(store, "a.md")
        store.set_links("a.md", [("b", "alias")])
        store.set_tags("a.md", ["t"])
        store.set_headings("a.md", [(2, "Sub", 4)])

        store.update_note_path("a.md", "sub/a.md")

        assert store.get_note("a.md") is None
        assert store.get_note("sub/a.md") is not None
        assert store.get_all_links() == [("sub/a.md", "b")]
        assert store.get_notes_by_tag("t") == ["sub/a.md"]
        assert store.get_headings("sub/a.md") == [(2, "Sub", 4)]

    def test_update_note_path_replaces_stale_destination(self, store):
        _add(store, "a.md", content="fresh")
        _add(store, "b.md", content="stale")

        store.update_note_path("a.md", "b.md")

        assert store.get_all_note_paths() == ["b.md"]
        assert store.get_note("b.md").content == "fresh"

    def test_paths_sorted(self, store):
        for path in ("c.md", "a.md", "b/x.md"):
            _add(store, path)
        assert store.get_all_note_paths() == ["a.md", "b/x.md", "c.md"]

    def test_transaction_rolls_back_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                _add(store, "a.md")
                raise RuntimeError("boom")

        assert store.get_note("a.md") is None


class TestSearch:
    def test_prefix_match_with_snippet(self, store):
        _add(store, "rust.md", title="Rust async", content="The executor hands tasks to a scheduler.")

        results = store.search("sched", 10)

        assert [r.path for r in results] == ["rust.md"]
        assert results[0].title == "Rust async"
        assert "<mark>scheduler</mark>" in results[0].snippet

    def test_blank_query_returns_nothing(self, store):
        _add(store, "a.md", content="anything")
        assert store.search("   ", 10) == []

    def test_operators_are_literal(self, store):
        _add(store, "a.md", content="plain words")
        # Would be syntax errors as raw FTS5 queries
        assert store.search("NOT OR AND", 10) == []
        assert store.search("title:(x", 10) == []

    def test_limit(self, store):
        for i in range(5):
            _add(store, f"n{i}.md", content="shared term")
        assert len(store.search("shared", 3)) == 3

    def test_updates_reflected_in_search(self, store):
        _add(store, "a.md", content="alpha")
        _add(store, "a.md", content="beta")

        assert store.search("alpha", 10) == []
        assert [r.path for r in store.search("beta", 10)] == ["a.md"]

    def test_match_query_quoting(self):
        assert build_match_query("foo bar") == '"foo" "bar"*'
        assert build_match_query('say "hi"') == '"say" """hi"""*'
        assert build_match_query("") is None

    def test_search_by_tag(self, store):
        _add(store, "old.md", content="x" * 200, modified=T1)
        _add(store, "new.md", content="short", modified=T2)
        store.set_tags("old.md", ["topic"])
        store.set_tags("new.md", ["topic"])

        results = store.search_by_tag("topic")

        assert [r.path for r in results] == ["new.md", "old.md"]
        assert len(results[1].snippet) == 100


class TestLinks:
    def test_backlinks_by_stem_or_full_path(self, store):
        _add(store, "a.md", title="A")
        _add(store, "c.md", title="C")
        _add(store, "b.md")
        store.set_links("a.md", [("b", None)])
        store.set_links("c.md", [("b.md", "see")])

        backlinks = store.get_backlinks("b.md")

        assert [(b.path, b.title, b.link_text) for b in backlinks] == [
            ("a.md", "A", None),
            ("c.md", "C", "see"),
        ]

    def test_set_links_replaces_and_dedupes(self, store):
        _add(store, "a.md")
        store.set_links("a.md", [("old", None)])
        store.set_links("a.md", [("x", None), ("x", None), ("x", "alias")])

        assert store.get_all_links() == [("a.md", "x"), ("a.md", "x")]

    def test_outgoing_titles(self, store):
        _add(store, "a.md")
        _add(store, "b.md", title="Bee")
        store.set_links("a.md", [("b", None), ("ghost", None)])

        outgoing = store.get_outgoing_links("a.md")

        assert [(o.path, o.title) for o in outgoing] == [("b", "Bee"), ("ghost", "ghost")]


class TestTags:
    def test_counts_ordered(self, store):
        for path in ("a.md", "b.md", "c.md"):
            _add(store, path)
        store.set_tags("a.md", ["zed", "alpha"])
        store.set_tags("b.md", ["zed", "beta"])
        store.set_tags("c.md", ["zed"])

        tags = store.get_all_tags()

        assert [(t.name, t.count) for t in tags] == [("zed", 3), ("alpha", 1), ("beta", 1)]

    def test_set_tags_replaces(self, store):
        _add(store, "a.md")
        store.set_tags("a.md", ["one"])
        store.set_tags("a.md", ["two"])

        assert store.get_notes_by_tag("one") == []
        assert store.get_notes_by_tag("two") == ["a.md"]


class TestSettings:
    def test_round_trip(self, store):
        assert store.get_setting("app.theme") is None
        store.set_setting("app.theme", "dark")
        store.set_setting("app.theme", "light")
        assert store.get_setting("app.theme") == "light"

    def test_recent_vaults(self, store):
        store.add_recent_vault("/v/one", "one")
        store.add_recent_vault("/v/two", "two")
        store.add_recent_vault("/v/one", "one")

        recent = store.get_recent_vaults()

        assert sorted(v.path for v in recent) == ["/v/one", "/v/two"]

    def test_closed_store_raises_database_error(self, tmp_vault):
        from openobs.config import get_db_path
        from openobs.indexer import IndexStore

        closed = IndexStore(get_db_path(tmp_vault))
        closed.close()

        with pytest.raises(DatabaseError):
            closed.get_note("a.md")
