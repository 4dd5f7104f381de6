"""Placeholder tokens embedded in paper templates and their substitution."""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional
from xml.sax.saxutils import escape

logger = logging.getLogger(__name__)

TOKEN_OPEN = "{[#"
TOKEN_RE = re.compile(r"\{\[#(\w+)#\]\}")

ROLE_AUTHOR = "ROLE_NAME_AUTHOR"
SECTION_ABBREVIATION = "SECTION_ABBREVIATION"
ISSUE_VOLUME = "ISSUE_VOLUME"
ISSUE_NUMBER = "ISSUE_NUMBER"
ISSUE_YEAR = "ISSUE_YEAR"
# stands for a literal "{[#" inside field content
LITERAL_OPEN = "LITERAL_OPEN"

# Logical genres, keyed by the destination genre entry key
GENRES = (
    "RESEARCHINSTRUMENT",
    "RESEARCHMATERIALS",
    "RESEARCHRESULTS",
    "TRANSCRIPTS",
    "DATAANALYSIS",
    "DATASET",
    "SOURCETEXTS",
    "OTHER",
    "SUBMISSION",
    "STYLE",
    "IMAGE",
)

# Legacy supplementary file type labels (as stored by the source) → genre key
SUPPLEMENTARY_TYPE_GENRES = {
    "Research Instrument": "RESEARCHINSTRUMENT",
    "Research Materials": "RESEARCHMATERIALS",
    "Research Results": "RESEARCHRESULTS",
    "Transcripts": "TRANSCRIPTS",
    "Data Analysis": "DATAANALYSIS",
    "Data Set": "DATASET",
    "Source Text": "SOURCETEXTS",
}


class Token(str):
    """A placeholder emitted on purpose, as opposed to field text that merely looks like one."""


def token(name: str) -> Token:
    return Token("{[#" + name + "#]}")


def genre_key(name: str) -> str:
    return f"GENRE_NAME_{name}"


def genre_token(name: str) -> Token:
    return token(genre_key(name))


def genre_for_supplementary_type(file_type: Optional[str]) -> str:
    return SUPPLEMENTARY_TYPE_GENRES.get((file_type or "").strip(), "OTHER")


def escape_literals(text: str) -> str:
    """Hide token openers found in field content so substitution leaves that content alone."""
    if isinstance(text, Token):
        return str(text)
    return str(text).replace(TOKEN_OPEN, token(LITERAL_OPEN))


def find_tokens(text: str) -> List[str]:
    return TOKEN_RE.findall(text)


def required_tokens(text: str) -> List[str]:
    """Tokens an import cannot do without: the author group and the file genres."""
    found = []
    for name in find_tokens(text):
        if (name == ROLE_AUTHOR or name.startswith("GENRE_NAME_")) and name not in found:
            found.append(name)
    return found


def substitute(text: str, values: Mapping[str, Optional[object]]) -> str:
    """Replace every token in ``text`` with its XML-escaped value.

    Escaped token openers are restored. Unknown or empty tokens become an empty string and are logged.
    """
    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name == LITERAL_OPEN:
            return TOKEN_OPEN
        value = values.get(name)
        if value is None:
            logger.warning("No value for placeholder %s", name)
            return ""
        return escape(str(value), {'"': "&quot;", "'": "&apos;"})

    return TOKEN_RE.sub(_replace, text)


def build_values(*maps: Mapping[str, Optional[object]]) -> Dict[str, Optional[object]]:
    values: Dict[str, Optional[object]] = {}
    for item in maps:
        values.update(item)
    return values
