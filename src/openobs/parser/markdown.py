"""Markdown parsing: frontmatter, wikilinks, tags and headings.

The parser is a pure function of the note text. It never touches the
filesystem and never raises on malformed input; a frontmatter block that is
not valid YAML is simply treated as absent.
"""

import logging
import re
from typing import Any

import yaml

from ..errors import YamlError
from ..models import Heading, ParsedNote, WikiLink

log = logging.getLogger(__name__)

# Opening fence, YAML payload, closing fence, then at most one blank line.
FRONTMATTER_PATTERN = re.compile(r"\A---\r?\n(.+?)\r?\n---(?:\r?\n|\Z)(?:\r?\n)?", re.DOTALL)

# [[target]] or [[target|display]]
WIKILINK_PATTERN = re.compile(r"\[\[([^\]|]+)(?:\|([^\]]+))?\]\]")

# #tag at line start or after whitespace or "["
TAG_PATTERN = re.compile(r"(?:^|[\s\[])#([A-Za-z][A-Za-z0-9_/-]*)")

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")

CODE_FENCE = "```"


def _lines(text: str) -> list[str]:
    return [line.rstrip("\r") for line in text.split("\n")]


def _load_frontmatter(raw: str) -> dict[str, Any] | None:
    try:
        data = yaml.safe_load(raw)
    except (yaml.YAMLError, ValueError) as e:
        # ValueError: well-formed scalars the constructor rejects, e.g. 2024-13-45
        log.debug("Ignoring invalid frontmatter: %s", e)
        return None
    if not isinstance(data, dict) or not all(isinstance(k, str) for k in data):
        return None
    return data


class MarkdownParser:
    """Parser for markdown notes with wikilinks and hashtags."""

    def parse(self, text: str) -> ParsedNote:
        frontmatter, frontmatter_raw, body = self.split_frontmatter(text)
        headings = self.extract_headings(body)
        return ParsedNote(
            title=self._title(frontmatter, headings),
            content=body,
            frontmatter=frontmatter,
            frontmatter_raw=frontmatter_raw,
            wikilinks=self.extract_wikilinks(body),
            tags=self.extract_tags(body, frontmatter),
            headings=headings,
        )

    def split_frontmatter(self, text: str) -> tuple[dict[str, Any] | None, str | None, str]:
        """Split a document into (frontmatter, raw frontmatter, body)."""
        match = FRONTMATTER_PATTERN.match(text)
        if not match:
            return None, None, text
        raw = match.group(1)
        return _load_frontmatter(raw), raw, text[match.end() :]

    def extract_wikilinks(self, body: str) -> list[WikiLink]:
        """Find wikilinks, skipping lines that open or close a code fence.

        Lines between fences are still scanned.
        """
        links: list[WikiLink] = []
        for line_num, line in enumerate(_lines(body), start=1):
            if line.lstrip().startswith(CODE_FENCE):
                continue
            for match in WIKILINK_PATTERN.finditer(line):
                target = match.group(1).strip()
                if not target:
                    continue
                display = match.group(2).strip() if match.group(2) is not None else None
                links.append(WikiLink(target=target, display=display, line=line_num))
        return links

    def extract_tags(self, body: str, frontmatter: dict[str, Any] | None = None) -> list[str]:
        """Collect frontmatter tags then inline tags, deduplicated in order seen."""
        tags: list[str] = []
        seen: set[str] = set()

        def add(tag: str) -> None:
            if tag and tag not in seen:
                seen.add(tag)
                tags.append(tag)

        fm_tags = (frontmatter or {}).get("tags")
        if isinstance(fm_tags, list):
            for tag in fm_tags:
                if isinstance(tag, str):
                    add(tag.strip().lstrip("#"))
        elif isinstance(fm_tags, str):
            for tag in fm_tags.split(","):
                add(tag.strip().lstrip("#"))

        in_code_block = False
        for line in _lines(body):
            if line.strip().startswith(CODE_FENCE):
                in_code_block = not in_code_block
                continue
            if in_code_block:
                continue
            for match in TAG_PATTERN.finditer(line):
                add(match.group(1))

        return tags

    def extract_headings(self, body: str) -> list[Heading]:
        headings: list[Heading] = []
        in_code_block = False
        for line_num, line in enumerate(_lines(body), start=1):
            if line.strip().startswith(CODE_FENCE):
                in_code_block = not in_code_block
                continue
            if in_code_block:
                continue
            match = HEADING_PATTERN.match(line)
            if match:
                text = match.group(2).strip()
                if text:
                    headings.append(Heading(level=len(match.group(1)), text=text, line=line_num))
        return headings

    def _title(self, frontmatter: dict[str, Any] | None, headings: list[Heading]) -> str:
        title = (frontmatter or {}).get("title")
        if isinstance(title, str):
            return title
        if headings:
            return headings[0].text
        return ""

    def to_markdown(self, note: ParsedNote) -> str:
        """Render a parsed note back to a document.

        The YAML block is re-serialized from the decoded frontmatter, so key
        order is kept but quoting and spacing inside it may change.

        Raises:
            YamlError: If a frontmatter value has no YAML representation.
        """
        if note.frontmatter:
            try:
                block = yaml.safe_dump(
                    note.frontmatter,
                    sort_keys=False,
                    allow_unicode=True,
                    default_flow_style=False,
                )
            except yaml.YAMLError as e:
                raise YamlError(str(e)) from e
        elif note.frontmatter_raw:
            block = note.frontmatter_raw.rstrip("\r\n") + "\n"
        else:
            return note.content
        return f"---\n{block}---\n\n{note.content}"
