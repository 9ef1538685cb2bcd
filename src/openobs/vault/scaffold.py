"""Vault scaffolding used by the create_vault command and ``openobs init``.

Keep this logic free of Click and state so it can be reused by both.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..config import APP_DIR_NAME, ATTACHMENTS_FOLDER, DAILY_NOTE_TEMPLATE, DAILY_NOTES_FOLDER, TEMPLATES_FOLDER
from ..errors import VaultIOError

log = logging.getLogger(__name__)

WELCOME_NOTE = """---
title: Welcome to OpenObs
---

# Welcome to OpenObs

Welcome to **OpenObs**, your personal knowledge management system. OpenObs helps you capture, organize, and connect your thoughts using the power of linked notes and markdown.

---

## Getting Started

Here are the basics to help you get up and running:

- **Create a new note** - Press `Ctrl/Cmd + N`
- **Search your vault** - Press `Ctrl/Cmd + P` to quickly find notes
- **Add tags** - Use `#hashtags` to categorize your notes
- **View connections** - Open the graph view to visualize how your notes link together

---

## Creating Links

Link notes together using **wikilinks** to build a web of connected ideas.

### Basic Links

To link to another note, wrap the note name in double square brackets:

```
[[Note Name]]
```

If the note doesn't exist yet, following the link will create it for you.

### Aliased Links

Use the pipe character `|` to set display text:

```
[[Note Name|Display Text]]
```

---

## Features

- **Bidirectional Links** - See which notes link to the current note
- **Full-Text Search** - Find anything in your vault instantly
- **Daily Notes** - Create a new note for each day to capture thoughts and tasks
- **Templates** - Use templates for consistent note structures
- **Graph View** - Visualize your knowledge as an interactive network
- **Tags** - Organize notes with hierarchical tags like `#project/work`

---

Happy note-taking!
"""

DAILY_NOTE_TEMPLATE_CONTENT = """---
title: "{{title}}"
created: {{datetime}}
tags: [daily-note]
---

# {{title}}

## Tasks

- [ ]

## Notes

"""


def init_vault(vault_path: Path) -> list[str]:
    """Create the initial vault structure.

    Existing files are left untouched, so this is safe to run on a
    directory that already holds notes.

    Returns:
        Vault-relative paths of the files written.

    Raises:
        VaultIOError: If a directory or file cannot be created.
    """
    written: list[str] = []
    try:
        vault_path.mkdir(parents=True, exist_ok=True)
        for folder in (APP_DIR_NAME, DAILY_NOTES_FOLDER, TEMPLATES_FOLDER, ATTACHMENTS_FOLDER):
            (vault_path / folder).mkdir(parents=True, exist_ok=True)

        for relative, content in (
            ("Welcome.md", WELCOME_NOTE),
            (DAILY_NOTE_TEMPLATE, DAILY_NOTE_TEMPLATE_CONTENT),
        ):
            target = vault_path / relative
            if not target.exists():
                target.write_text(content, encoding="utf-8")
                written.append(relative)
    except OSError as e:
        raise VaultIOError(str(e)) from e

    log.debug("Scaffolded vault at %s (%d files written)", vault_path, len(written))
    return written


def is_valid_vault(path: Path) -> bool:
    """Any directory can be opened as a vault; no marker is required."""
    return path.is_dir()


def get_vault_name(path: Path) -> str:
    return path.name or "Untitled Vault"
