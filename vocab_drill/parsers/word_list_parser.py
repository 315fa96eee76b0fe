"""Parse a Markdown word list into WordEntry records for bulk import.

Table schema (the description column is optional):
  | Word | Definitions | Description |

Definitions are separated by commas or semicolons. Section headers
(``## Nouns``) become the part of speech of the rows below them when they
name one; any other header resets it.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

PARTS_OF_SPEECH = {
    "noun": "noun",
    "nouns": "noun",
    "verb": "verb",
    "verbs": "verb",
    "adjective": "adjective",
    "adjectives": "adjective",
    "adverb": "adverb",
    "adverbs": "adverb",
    "phrase": "phrase",
    "phrases": "phrase",
}


@dataclass
class WordEntry:
    headword: str
    definitions: list[str] = field(default_factory=list)
    description: str | None = None
    part_of_speech: str | None = None


def _cells(line: str) -> list[str]:
    return [c.strip() for c in line.strip().strip("|").split("|")]


def parse_word_list(path: Path) -> list[WordEntry]:
    text = path.read_text(encoding="utf-8")
    entries: list[WordEntry] = []
    part_of_speech: str | None = None

    for line in text.splitlines():
        m = re.match(r"^## (.+)", line)
        if m:
            part_of_speech = PARTS_OF_SPEECH.get(m.group(1).strip().lower())
            continue

        if not line.startswith("|"):
            continue

        # Rows carry a bold headword: | **word** | defs | ...
        cells = _cells(line)
        m = re.match(r"^\*\*(.+?)\*\*$", cells[0])
        if not m or len(cells) < 2:
            continue
        definitions = [d.strip() for d in re.split(r"[,;]", cells[1]) if d.strip()]
        if not definitions:
            continue
        description = cells[2] if len(cells) > 2 and cells[2] else None
        entries.append(WordEntry(
            headword=m.group(1).strip(),
            definitions=definitions,
            description=description,
            part_of_speech=part_of_speech,
        ))

    return entries
