"""Tests for the command layer and command dispatch."""

import pytest

from openobs import core
from openobs.errors import (
    AlreadyExistsError,
    CustomError,
    InvalidPathError,
    NoteNotFoundError,
    SerializationError,
    VaultNotOpenError,
)


def _paths(response):
    return [r.path for r in response.results]


class TestVaultCommands:
    def test_commands_need_open_vault(self):
        with pytest.raises(VaultNotOpenError, match="Vault not open"):
            core.read_directory()
        with pytest.raises(VaultNotOpenError):
            core.search_notes("x")

    def test_vault_info_none_when_closed(self):
        assert core.get_vault_info() is None
        assert core.get_recent_vaults() == []

    def test_open_vault_indexes(self, open_vault, write_note, tmp_vault):
        write_note("a.md", "# A")
        write_note("sub/b.md", "")

        info = open_vault()

        assert info.note_count == 2
        assert info.name == "vault"
        assert info.path == str(tmp_vault.resolve())
        assert core.get_vault_info().note_count == 2

    def test_open_missing_directory(self, tmp_path):
        with pytest.raises(InvalidPathError, match="Not a valid vault directory"):
            core.open_vault(str(tmp_path / "missing"))

    def test_create_vault_scaffolds_and_opens(self, tmp_path):
        info = core.create_vault(str(tmp_path), "Notes")

        assert info.name == "Notes"
        assert (tmp_path / "Notes" / "Welcome.md").exists()
        assert info.note_count == 2
        assert [t.name for t in core.get_templates().templates] == ["Daily Note"]

    def test_create_vault_refuses_existing(self, tmp_path):
        (tmp_path / "Notes").mkdir()
        with pytest.raises(AlreadyExistsError, match="Vault already exists"):
            core.create_vault(str(tmp_path), "Notes")

    def test_recent_vaults_after_open(self, open_vault, tmp_vault):
        open_vault()
        assert [v.path for v in core.get_recent_vaults()] == [str(tmp_vault.resolve())]

    def test_switching_vaults(self, open_vault, tmp_path, write_note):
        write_note("first.md", "")
        open_vault()
        other = tmp_path / "other"
        other.mkdir()
        (other / "second.md").write_text("")

        core.open_vault(str(other))

        assert core.get_vault_info().name == "other"
        assert [e.name for e in core.read_directory()] == ["second.md"]


class TestFileCommands:
    def test_write_file_indexes(self, open_vault):
        open_vault()

        core.write_file("notes/a.md", "# Alpha\nLinks to [[B]] #tagged")

        assert core.read_file("notes/a.md").content.startswith("# Alpha")
        assert [b.path for b in core.get_backlinks("B.md").links] == ["notes/a.md"]
        assert core.get_notes_by_tag("tagged").paths == ["notes/a.md"]
        assert _paths(core.search_notes("alpha")) == ["notes/a.md"]

    def test_write_non_markdown_not_indexed(self, open_vault):
        open_vault()
        core.write_file("data.txt", "alpha")
        assert core.search_notes("alpha").total == 0

    def test_create_file_refuses_existing(self, open_vault, write_note):
        write_note("a.md", "")
        open_vault()
        with pytest.raises(AlreadyExistsError):
            core.create_file("a.md")

    def test_delete_file_deindexes(self, open_vault, write_note):
        write_note("a.md", "unique words")
        open_vault()

        core.delete_file("a.md")

        assert core.search_notes("unique").total == 0
        with pytest.raises(NoteNotFoundError):
            core.read_file("a.md")

    def test_delete_folder_deindexes_contents(self, open_vault, write_note):
        write_note("dir/a.md", "")
        write_note("dir/sub/b.md", "")
        write_note("dir2/c.md", "")
        open_vault()

        core.delete_folder("dir")

        assert core.get_vault_info().note_count == 1

    def test_rename_file_moves_backlinks(self, open_vault, write_note):
        write_note("A.md", "Links to [[B]].")
        write_note("B.md", "")
        open_vault()

        core.rename_file("A.md", "sub/A.md")

        assert core.get_backlinks("B.md").links[0].path == "sub/A.md"

    def test_rename_folder_updates_nested_notes(self, open_vault, write_note):
        write_note("old/a.md", "[[B]]")
        write_note("old/deep/b.md", "")
        open_vault()

        core.rename_file("old", "new")

        tree = core.get_graph_data()
        assert sorted(n.path for n in tree.nodes) == ["new/a.md", "new/deep/b.md"]
        assert [b.path for b in core.get_backlinks("B.md").links] == ["new/a.md"]

    def test_rename_changes_extension(self, open_vault, write_note):
        write_note("a.md", "findme")
        write_note("b.txt", "other")
        open_vault()

        core.rename_file("a.md", "a.txt")
        core.rename_file("b.txt", "b.md")

        assert core.search_notes("findme").total == 0
        assert _paths(core.search_notes("other")) == ["b.md"]

    def test_move_file(self, open_vault, write_note):
        write_note("a.md", "moving")
        open_vault()

        new_path = core.move_file("a.md", "archive")

        assert new_path == "archive/a.md"
        assert _paths(core.search_notes("moving")) == ["archive/a.md"]

    def test_path_escape_rejected(self, open_vault):
        open_vault()
        with pytest.raises(InvalidPathError):
            core.write_file("../escape.md", "x")

    def test_create_folder_and_file_info(self, open_vault):
        open_vault()
        core.create_folder("empty")
        core.create_file("empty/n.md", "one two three")

        info = core.get_file_info("empty/n.md")

        assert info.word_count == 3
        assert core.read_directory("empty")[0].path == "empty/n.md"


class TestDailyNotes:
    def test_created_from_template(self, tmp_path):
        core.create_vault(str(tmp_path), "V")

        note = core.get_daily_note("2024-01-15")

        assert note.path == "Daily Notes/2024-01-15.md"
        assert note.exists
        assert 'title: "2024-01-15"' in note.content
        assert "# 2024-01-15" in note.content
        assert (tmp_path / "V" / "Daily Notes" / "2024-01-15.md").exists()
        assert "Daily Notes/2024-01-15.md" in core.get_notes_by_tag("daily-note").paths

    def test_existing_note_returned_unchanged(self, open_vault, write_note):
        write_note("Daily Notes/2024-01-15.md", "my day")
        open_vault()

        assert core.get_daily_note("2024-01-15").content == "my day"

    def test_default_content_without_template(self, open_vault):
        open_vault()

        note = core.get_daily_note("2024-02-01")

        assert "# 2024-02-01" in note.content
        assert "daily-note" in note.content

    def test_invalid_date(self, open_vault):
        open_vault()
        with pytest.raises(CustomError, match="Invalid date format"):
            core.get_daily_note("15/01/2024")

    def test_list_newest_first(self, open_vault, write_note):
        for name in ("2024-01-01.md", "2024-03-01.md", "2024-02-01.md", "notes.md"):
            write_note(f"Daily Notes/{name}", "")
        open_vault()

        dates = [n.date for n in core.get_daily_notes_list().notes]

        assert dates == ["2024-03-01", "2024-02-01", "2024-01-01"]
        assert len(core.get_daily_notes_list(limit=1).notes) == 1

    def test_list_without_folder(self, open_vault):
        open_vault()
        assert core.get_daily_notes_list().notes == []


class TestTemplates:
    def test_apply_template(self, open_vault, write_note):
        write_note("Templates/Meeting.md", "# {{title}} with {{who}}")
        open_vault()

        applied = core.apply_template("Templates/Meeting.md", {"title": "Sync", "who": "ops"})

        assert applied.content == "# Sync with ops"
        assert applied.template_name == "Meeting"

    def test_no_templates_folder(self, open_vault):
        open_vault()
        assert core.get_templates().templates == []


class TestSettings:
    def test_defaults_without_vault(self):
        settings = core.get_settings()
        assert settings.theme is None
        assert settings.font_size is None

    def test_app_settings_round_trip(self, open_vault):
        open_vault()
        core.set_setting("app.theme", "dark")
        core.set_setting("app.font_size", 14)
        core.set_setting("app.vim_mode", True)

        settings = core.get_settings()

        assert (settings.theme, settings.font_size, settings.vim_mode) == ("dark", 14, True)
        assert settings.word_wrap is None

    def test_app_prefix_required(self, open_vault):
        open_vault()
        with pytest.raises(CustomError, match="App settings must start with 'app.'"):
            core.set_setting("theme", "dark")

    def test_vault_settings(self, open_vault):
        open_vault()
        defaults = core.get_vault_settings()
        assert defaults.daily_notes_folder == "Daily Notes"
        assert defaults.excluded_folders is None

        core.set_vault_setting("vault.excluded_folders", ["Archive", "Tmp"])
        core.set_vault_setting("vault.default_template", "Templates/Meeting.md")

        settings = core.get_vault_settings()
        assert settings.excluded_folders == ["Archive", "Tmp"]
        assert settings.default_template == "Templates/Meeting.md"

    def test_vault_prefix_required(self, open_vault):
        open_vault()
        with pytest.raises(CustomError, match="Vault settings must start with 'vault.'"):
            core.set_vault_setting("app.theme", "dark")

    def test_bad_excluded_folders(self, open_vault):
        open_vault()
        core.set_vault_setting("vault.excluded_folders", "not json")
        with pytest.raises(SerializationError):
            core.get_vault_settings()


class TestDispatch:
    def test_invoke_success_is_json_ready(self, open_vault, write_note):
        write_note("X.md", "[[Idea]]")
        write_note("Y.md", "[[Idea]]")
        open_vault()

        result = core.invoke("get_graph_data")

        assert result.success
        assert result.error is None
        assert result.result["edges"][0]["edgeType"] == "concept"
        assert result.result["concepts"][0]["name"] == "Idea"

    def test_invoke_with_arguments(self, open_vault, write_note):
        write_note("a.md", "searchable")
        open_vault()

        result = core.invoke("search_notes", {"query": "search", "limit": 5})

        assert result.result["total"] == 1
        assert result.result["results"][0]["path"] == "a.md"

    def test_invoke_reports_errors(self):
        result = core.invoke("read_directory")

        assert not result.success
        assert result.error == "Vault not open"
        assert result.error_code == "VAULT_NOT_OPEN"

    def test_unknown_command(self):
        result = core.invoke("launch_rockets")
        assert result.error == "Unknown command: launch_rockets"

    def test_bad_arguments(self, open_vault):
        open_vault()
        result = core.invoke("read_file", {"wrong": "x"})
        assert not result.success
        assert result.error.startswith("Invalid arguments for read_file")

    def test_wrong_argument_type_is_reported(self):
        result = core.invoke("search_notes", {"query": 5})

        assert not result.success
        assert result.error_code == "CUSTOM"
        assert result.error.startswith("Invalid arguments for search_notes")
        assert "query" in result.error

    def test_argument_errors_listed_in_details(self):
        with pytest.raises(CustomError) as exc:
            core.validate_args("get_local_graph", {"path": ["a.md"], "depth": "deep"})

        assert exc.value.details["errors"] == [
            "path: Input should be a valid string",
            "depth: Input should be a valid integer, unable to parse string as an integer",
        ]

    def test_arguments_coerced_to_annotation(self):
        bound = core.validate_args("get_local_graph", {"path": "a.md", "depth": "2"})
        assert bound.arguments == {"path": "a.md", "depth": 2}

    def test_non_object_arguments(self):
        result = core.invoke("read_file", ["a.md"])
        assert result.error == "Invalid arguments for read_file: expected an object"

    def test_tuples_become_lists(self, open_vault, write_note):
        write_note("a.md", "[[b]]")
        open_vault()
        assert core.invoke("get_all_links").result == [["a.md", "b"]]

    def test_batch_continues_by_default(self, open_vault):
        open_vault()
        response = core.batch(
            [
                {"command": "create_file", "args": {"path": "a.md", "content": "x"}},
                {"command": "create_file", "args": {"path": "a.md", "content": "x"}},
                {"command": "get_vault_info"},
            ]
        )

        assert (response.total, response.succeeded, response.failed) == (3, 2, 1)
        assert response.results[1].error_code == "ALREADY_EXISTS"

    def test_batch_stops_on_error(self, open_vault):
        open_vault()
        response = core.batch(
            [{"command": "nope"}, {"command": "get_vault_info"}],
            continue_on_error=False,
        )

        assert response.total == 1
        assert response.failed == 1

    def test_every_command_registered(self):
        assert len(core.COMMANDS) == 31
        assert {"open_vault", "get_local_graph", "set_vault_setting"} <= set(core.COMMANDS)


class TestSymlinkedEntries:
    def test_listing_survives_odd_symlinks(self, open_vault, write_note, tmp_vault):
        write_note("sub/a.md", "")
        (tmp_vault / "sub" / "loop").symlink_to(tmp_vault / "sub", target_is_directory=True)
        (tmp_vault / "broken.md").symlink_to(tmp_vault / "nowhere.md")
        info = open_vault()

        result = core.invoke("read_directory", {})

        assert result.success
        assert [e["name"] for e in result.result] == ["sub", "broken.md"]
        assert info.note_count == 1
