"""Placeholder values for a paper template, per destination journal."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from core import placeholders
from core.errors import PaperError
from storage.destination import DestinationRepository

logger = logging.getLogger(__name__)


class PlaceholderResolver:
    """Builds the token → value map used to turn a template into an importable document.

    Role and genre names are looked up once per journal.
    """

    def __init__(self, destination: DestinationRepository):
        self.destination = destination
        self._roles: Dict[Any, Dict[str, Optional[str]]] = {}
        self._genres: Dict[Any, Dict[str, Optional[str]]] = {}

    def role_map(self, journal_id: Any, preferred_locale: Optional[str] = None) -> Dict[str, Optional[str]]:
        if journal_id not in self._roles:
            names = self.destination.author_role_names(journal_id, preferred_locale)
            if not names:
                names = self.destination.role_names(journal_id)
                if names:
                    logger.warning("Journal %s has no author group, using \"%s\"", journal_id, names[0])
            self._roles[journal_id] = {placeholders.ROLE_AUTHOR: names[0] if names else None}
        return self._roles[journal_id]

    def genre_map(self, journal_id: Any, preferred_locale: Optional[str] = None) -> Dict[str, Optional[str]]:
        if journal_id not in self._genres:
            genres = self.destination.genre_names(journal_id, preferred_locale)
            first = genres[0][1] if genres else None
            by_key: Dict[str, str] = {}
            for entry_key, name in genres:
                by_key.setdefault(entry_key, name)
            self._genres[journal_id] = {
                placeholders.genre_key(genre): by_key.get(genre, first) for genre in placeholders.GENRES
            }
        return self._genres[journal_id]

    def values(self, organization: Dict[str, Any], issue: Dict[str, Any], section: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        journal_id = organization['localId']
        locale = organization.get('primaryLocale')
        return placeholders.build_values(
            self.genre_map(journal_id, locale),
            self.role_map(journal_id, locale),
            {
                placeholders.SECTION_ABBREVIATION: section.get('localAbbrev') if section else None,
                placeholders.ISSUE_VOLUME: issue.get('volume'),
                placeholders.ISSUE_NUMBER: issue.get('number'),
                placeholders.ISSUE_YEAR: issue.get('year'),
            },
        )

    def render(self, template: str, organization: Dict[str, Any], issue: Dict[str, Any], section: Optional[Dict[str, Any]]) -> str:
        """Substitute every token in ``template``, refusing when the author group or a file genre is unknown."""
        values = self.values(organization, issue, section)
        missing = [name for name in placeholders.required_tokens(template) if values.get(name) is None]
        if missing:
            raise PaperError(
                f"Placeholders could not be resolved on journal {organization['localId']}: {', '.join(missing)}"
            )
        return placeholders.substitute(template, values)
