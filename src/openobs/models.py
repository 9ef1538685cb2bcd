"""Pydantic models for the vault engine."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# ─────────────────────────────────────────────────────────────────────────────
# Parsed notes
# ─────────────────────────────────────────────────────────────────────────────


class WikiLink(BaseModel):
    """A [[target]] or [[target|display]] reference."""

    target: str  # Raw spelling, not resolved to a path
    display: str | None = None
    line: int  # 1-based line within the body


class Heading(BaseModel):
    """An ATX heading in a note body."""

    level: int  # 1-6
    text: str
    line: int  # 1-based line within the body


class ParsedNote(BaseModel):
    """Result of parsing one markdown document."""

    title: str  # Frontmatter title, else first heading, else ""
    content: str  # Body after the frontmatter block
    frontmatter: dict[str, Any] | None = None
    frontmatter_raw: str | None = None  # Kept whenever the fences matched
    wikilinks: list[WikiLink] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    headings: list[Heading] = Field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Vault filesystem
# ─────────────────────────────────────────────────────────────────────────────


class FileEntry(BaseModel):
    """A file or directory in the vault tree."""

    name: str
    path: str  # Vault-relative, forward slashes
    is_directory: bool
    extension: str | None = None
    size: int
    created: str | None = None  # RFC-3339 UTC
    modified: str | None = None  # RFC-3339 UTC
    children: list["FileEntry"] | None = None


class FileInfo(BaseModel):
    """Detailed information about a single file."""

    name: str
    path: str
    size: int
    created: str | None = None
    modified: str | None = None
    is_markdown: bool
    word_count: int | None = None
    character_count: int | None = None


class FileContent(BaseModel):
    """Response for read_file."""

    path: str
    content: str
    modified: str | None = None


# ─────────────────────────────────────────────────────────────────────────────
# Index store records
# ─────────────────────────────────────────────────────────────────────────────


class NoteRecord(BaseModel):
    """A row of the notes table."""

    id: int
    path: str
    title: str
    content: str
    frontmatter: str | None = None
    created_at: str
    modified_at: str


class SearchResult(BaseModel):
    """A full-text or tag search hit."""

    path: str
    title: str
    snippet: str


class LinkInfo(BaseModel):
    """One end of a wikilink, as seen from the other end."""

    path: str
    title: str
    link_text: str | None = None


class TagInfo(BaseModel):
    """A tag with its usage count."""

    name: str
    count: int


class RecentVault(BaseModel):
    """A previously opened vault."""

    path: str
    name: str
    last_opened: str


class IndexStats(BaseModel):
    """Statistics from a bulk index pass."""

    files_indexed: int = 0
    errors: int = 0


# ─────────────────────────────────────────────────────────────────────────────
# Graph
# ─────────────────────────────────────────────────────────────────────────────


class GraphNode(BaseModel):
    """A note in the knowledge graph."""

    id: str
    label: str  # File name without .md
    path: str
    connections: int
    node_type: Literal["note"] = Field(default="note", serialization_alias="nodeType")


class DirectEdge(BaseModel):
    """A wikilink between two existing notes."""

    source: str
    target: str
    edge_type: Literal["direct"] = Field(default="direct", serialization_alias="edgeType")


class ConceptEdge(BaseModel):
    """Two notes linking to the same page that does not exist yet."""

    source: str
    target: str
    edge_type: Literal["concept"] = Field(default="concept", serialization_alias="edgeType")
    concept: str  # The shared, unresolved link target


GraphEdge = Annotated[DirectEdge | ConceptEdge, Field(discriminator="edge_type")]


class ConceptInfo(BaseModel):
    """A link target with no note behind it, and the notes citing it."""

    name: str
    count: int  # Number of distinct source notes
    notes: list[str] = Field(default_factory=list)  # Sorted source paths


class GraphData(BaseModel):
    """Nodes, edges and concepts for graph rendering."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    concepts: list[ConceptInfo] = Field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Command responses
# ─────────────────────────────────────────────────────────────────────────────


class VaultInfo(BaseModel):
    """The currently open vault."""

    name: str
    path: str
    note_count: int
    is_open: bool = True


class RecentVaultInfo(BaseModel):
    """A recent vault as returned to the UI."""

    name: str
    path: str
    last_opened: str


class SearchResponse(BaseModel):
    """Search results with the query that produced them."""

    results: list[SearchResult] = Field(default_factory=list)
    query: str
    total: int


class LinksResponse(BaseModel):
    """Backlinks or outgoing links of a note."""

    path: str
    links: list[LinkInfo] = Field(default_factory=list)


class TagListResponse(BaseModel):
    """All tags in the vault."""

    tags: list[TagInfo] = Field(default_factory=list)
    total: int


class NotesByTagResponse(BaseModel):
    """Paths of notes carrying a tag."""

    tag: str
    paths: list[str] = Field(default_factory=list)
    count: int


class DailyNote(BaseModel):
    """A daily note, created on demand."""

    path: str
    date: str  # YYYY-MM-DD
    exists: bool
    content: str | None = None


class DailyNotesList(BaseModel):
    """Daily notes, newest first."""

    notes: list[DailyNote] = Field(default_factory=list)


class TemplateInfo(BaseModel):
    """A template file in the Templates folder."""

    name: str  # File stem
    path: str


class TemplatesResponse(BaseModel):
    templates: list[TemplateInfo] = Field(default_factory=list)


class AppliedTemplate(BaseModel):
    """Template content after variable substitution."""

    content: str
    template_name: str


class AppSettings(BaseModel):
    """Application-wide settings (``app.*`` keys)."""

    theme: str | None = None  # light, dark, system
    font_size: int | None = None
    font_family: str | None = None
    vim_mode: bool | None = None
    spell_check: bool | None = None
    auto_save_interval: int | None = None  # Seconds, 0 = disabled
    line_numbers: bool | None = None
    word_wrap: bool | None = None


class VaultSettings(BaseModel):
    """Vault-scoped settings (``vault.*`` keys)."""

    default_note_folder: str | None = None
    daily_notes_folder: str | None = "Daily Notes"
    templates_folder: str | None = "Templates"
    attachments_folder: str | None = "Attachments"
    daily_note_format: str | None = "%Y-%m-%d"
    default_template: str | None = None
    excluded_folders: list[str] | None = None


class CommandResult(BaseModel):
    """Outcome of one dispatched command."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    command: str
    success: bool
    result: Any = None  # JSON-ready payload when successful
    error: str | None = None  # Human-readable message when failed
    error_code: str | None = None


class BatchResponse(BaseModel):
    """Response from batch command execution."""

    total: int
    succeeded: int
    failed: int
    results: list[CommandResult]
