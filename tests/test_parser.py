"""Tests for markdown parsing."""

import pytest

from openobs.errors import YamlError
from openobs.models import ParsedNote
from openobs.parser import MarkdownParser


@pytest.fixture
def parser() -> MarkdownParser:
    return MarkdownParser()


class TestParse:
    """Full-note parsing."""

    def test_parses_frontmatter_links_tags_and_headings(self, parser):
        text = (
            "---\ntitle: Alpha\ntags: [work, ideas]\n---\n\n"
            "# Heading One\n\nSee [[Beta|the beta note]] and #planning.\n"
        )
        note = parser.parse(text)

        assert note.title == "Alpha"
        assert note.tags == ["work", "ideas", "planning"]
        assert len(note.wikilinks) == 1
        link = note.wikilinks[0]
        assert (link.target, link.display, link.line) == ("Beta", "the beta note", 3)
        assert [(h.level, h.text, h.line) for h in note.headings] == [(1, "Heading One", 1)]

    def test_without_frontmatter_body_is_whole_text(self, parser):
        text = "# Title\n\nBody"
        note = parser.parse(text)

        assert note.frontmatter is None
        assert note.frontmatter_raw is None
        assert note.content == text
        assert note.title == "Title"

    def test_title_empty_without_frontmatter_or_heading(self, parser):
        assert parser.parse("just text").title == ""

    def test_invalid_yaml_keeps_raw_block(self, parser):
        note = parser.parse("---\ntitle: [unclosed\n---\nbody")

        assert note.frontmatter is None
        assert note.frontmatter_raw == "title: [unclosed"
        assert note.content == "body"

    def test_out_of_range_date_is_invalid_frontmatter(self, parser):
        note = parser.parse("---\ncreated: 2024-13-45\n---\n# T\n")

        assert note.frontmatter is None
        assert note.frontmatter_raw == "created: 2024-13-45"
        assert note.title == "T"

    def test_non_mapping_frontmatter_is_absent(self, parser):
        note = parser.parse("---\n- a\n- b\n---\nbody")
        assert note.frontmatter is None
        assert note.tags == []

    def test_unclosed_fence_is_not_frontmatter(self, parser):
        text = "---\ntitle: x\nno closing fence"
        note = parser.parse(text)
        assert note.frontmatter is None
        assert note.content == text

    def test_crlf_line_endings(self, parser):
        note = parser.parse("---\r\ntitle: Win\r\n---\r\n\r\n# H\r\n[[Target]]\r\n")
        assert note.title == "Win"
        assert note.headings[0].text == "H"
        assert note.wikilinks[0].target == "Target"
        assert note.wikilinks[0].line == 2


class TestWikilinks:
    def test_plain_and_aliased_links(self, parser):
        links = parser.extract_wikilinks("[[One]] then [[Two|second]]\n[[ Three ]]")
        assert [(l.target, l.display, l.line) for l in links] == [
            ("One", None, 1),
            ("Two", "second", 1),
            ("Three", None, 2),
        ]

    def test_fence_lines_are_skipped(self, parser):
        links = parser.extract_wikilinks("```[[Fenced]]\ncode\n```\n[[After]]")
        assert [l.target for l in links] == ["After"]

    def test_duplicates_are_kept(self, parser):
        links = parser.extract_wikilinks("[[A]] [[A]]")
        assert len(links) == 2


class TestTags:
    def test_frontmatter_comma_string(self, parser):
        tags = parser.extract_tags("", {"tags": "one, #two ,three"})
        assert tags == ["one", "two", "three"]

    def test_inline_tags_deduplicated_in_order(self, parser):
        tags = parser.extract_tags("#b text #a and #b again", {"tags": ["a"]})
        assert tags == ["a", "b"]

    def test_tags_inside_code_block_ignored(self, parser):
        body = "#real\n```\n#fake\n```\n#also"
        assert parser.extract_tags(body) == ["real", "also"]

    def test_tag_must_start_with_letter(self, parser):
        assert parser.extract_tags("#123 #ok/nested-tag_1") == ["ok/nested-tag_1"]

    def test_heading_is_not_a_tag(self, parser):
        assert parser.extract_tags("# Heading\n## Sub") == []

    def test_tag_after_bracket(self, parser):
        assert parser.extract_tags("[#inline]") == ["inline"]


class TestHeadings:
    def test_levels_and_lines(self, parser):
        headings = parser.extract_headings("# One\ntext\n### Three\n####### Seven")
        assert [(h.level, h.text, h.line) for h in headings] == [(1, "One", 1), (3, "Three", 3)]

    def test_requires_space_after_hashes(self, parser):
        assert parser.extract_headings("#tag") == []

    def test_headings_in_code_block_ignored(self, parser):
        headings = parser.extract_headings("```\n# not\n```\n# yes")
        assert [(h.text, h.line) for h in headings] == [("yes", 4)]


class TestToMarkdown:
    def test_without_frontmatter_returns_body(self, parser):
        note = parser.parse("# Only body\n")
        assert parser.to_markdown(note) == "# Only body\n"

    def test_round_trips_frontmatter_values(self, parser):
        note = parser.parse("---\ntitle: Alpha\ntags: [a, b]\n---\n\nBody\n")
        rendered = parser.to_markdown(note)

        assert rendered.startswith("---\n")
        assert rendered.endswith("---\n\nBody\n")
        again = parser.parse(rendered)
        assert again.frontmatter == {"title": "Alpha", "tags": ["a", "b"]}
        assert again.content == "Body\n"

    def test_invalid_frontmatter_written_back_raw(self, parser):
        note = parser.parse("---\ntitle: [unclosed\n---\nbody")
        assert parser.to_markdown(note) == "---\ntitle: [unclosed\n---\n\nbody"

    def test_unrepresentable_frontmatter_raises_yaml_error(self, parser):
        note = ParsedNote(title="", content="body", frontmatter={"when": object()})
        with pytest.raises(YamlError):
            parser.to_markdown(note)
