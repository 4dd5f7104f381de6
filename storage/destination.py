"""Read/write access to the journal platform database."""
from __future__ import annotations

import json
import logging
import re
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from core.normalizer import parse_locale_list
from storage.database import SqlStore

logger = logging.getLogger(__name__)

AUTHOR_ROLE_ID = 65536
PUBLICATION_FILTER = 'class::classes.publication.Publication'
PUBLICATION_FILTER_FIXED = 'class::classes.publication.Publication[]'

JOURNAL_SETTINGS = (
    'name',
    'authorInformation',
    'contactEmail',
    'contactName',
    'description',
    'itemsPerPage',
    'lockssLicense',
    'numPageLinks',
    'privacyStatement',
    'readerInformation',
    'supportedFormLocales',
    'supportedLocales',
    'supportedSubmissionLocales',
)

# Genres a new journal starts with, as (entry_key, name)
DEFAULT_GENRES = (
    ('SUBMISSION', 'Article Text'),
    ('RESEARCHINSTRUMENT', 'Research Instrument'),
    ('RESEARCHMATERIALS', 'Research Materials'),
    ('RESEARCHRESULTS', 'Research Results'),
    ('TRANSCRIPTS', 'Transcripts'),
    ('DATAANALYSIS', 'Data Analysis'),
    ('DATASET', 'Data Set'),
    ('SOURCETEXTS', 'Source Texts'),
    ('IMAGE', 'Image'),
    ('STYLE', 'HTML Stylesheet'),
    ('OTHER', 'Other'),
)

_WORD_RE = re.compile(r"[^\W\d_]+", re.UNICODE)


def make_acronym(name: str) -> str:
    """Upper-cased initials of each word, or the letters themselves for one-word names."""
    words = _WORD_RE.findall(name or '')
    if len(words) > 1:
        return ''.join(word[0] for word in words).upper()
    return ''.join(words).upper()


def _present(value: Any) -> bool:
    return value is not None and str(value) != ''


def _ordered_by_locale(rows: List[Dict[str, Any]], preferred_locale: Optional[str]) -> List[Dict[str, Any]]:
    return sorted(rows, key=lambda row: row.get('locale') != preferred_locale)


class DestinationRepository:
    """SQL for the journal platform schema.

    Handles the two schema variants where ``issue_settings``/``section_settings``
    do or do not carry a ``setting_type`` column.
    """

    def __init__(self, store: SqlStore):
        self.store = store
        self._has_setting_type: Dict[str, bool] = {}

    def version(self) -> str:
        row = self.store.read_one(
            """SELECT v.major, v.minor, v.revision
            FROM versions v
            WHERE
                v.current = 1
                AND v.product_type = 'core'
                AND v.product = 'ojs2'"""
        )
        if not row:
            return ''
        return '.'.join(str(row[key]) for key in ('major', 'minor', 'revision'))

    def installed_locales(self) -> List[str]:
        return parse_locale_list(self.store.scalar('SELECT installed_locales AS locales FROM site'))

    def has_setting_type(self, table: str) -> bool:
        if table not in self._has_setting_type:
            self._has_setting_type[table] = self.store.has_column(table, 'setting_type')
        return self._has_setting_type[table]

    def _insert_setting(self, table: str, owner_column: str, owner_id: Any, name: str, value: Any,
                        locale: str = '', setting_type: str = 'string') -> None:
        data = {
            owner_column: owner_id,
            'locale': locale,
            'setting_name': name,
            'setting_value': value,
        }
        if self.has_setting_type(table):
            data['setting_type'] = setting_type
        self.store.insert(table, data)

    # Journals

    def find_journal_id(self, path: str) -> Optional[Any]:
        return self.store.scalar('SELECT j.journal_id FROM journals j WHERE j.path = :path', {'path': path})

    def create_journal(self, organization: Dict[str, Any]) -> Any:
        seq = self.store.scalar('SELECT COALESCE(MAX(seq), 0) + 1 AS seq FROM journals') or 1
        enabled = str(organization.get('enabled', 1)).lower() not in ('0', 'false')
        journal_id = self.store.insert(
            'journals',
            {
                'path': organization['urlPath'],
                'seq': seq,
                'primary_locale': organization['primaryLocale'],
                'enabled': int(enabled),
            },
            'journal_id',
        )
        for name in JOURNAL_SETTINGS:
            value = organization.get(name)
            if isinstance(value, dict):
                for locale, localized in value.items():
                    if not _present(localized):
                        continue
                    self._insert_setting('journal_settings', 'journal_id', journal_id, name, localized, locale)
                    if name == 'name':
                        self._insert_setting('journal_settings', 'journal_id', journal_id, 'acronym', make_acronym(localized), locale)
            elif isinstance(value, list):
                if value:
                    self._insert_setting('journal_settings', 'journal_id', journal_id, name, json.dumps(value), setting_type='object')
            elif _present(value):
                self._insert_setting('journal_settings', 'journal_id', journal_id, name, value)
        self.seed_roles_and_genres(journal_id, organization['primaryLocale'])
        return journal_id

    def seed_roles_and_genres(self, journal_id: Any, locale: str) -> None:
        """Give a new journal the author group and file genres its imports refer to."""
        group_id = self.store.insert('user_groups', {'context_id': journal_id, 'role_id': AUTHOR_ROLE_ID}, 'user_group_id')
        self._insert_setting('user_group_settings', 'user_group_id', group_id, 'name', 'Author', locale)
        for seq, (entry_key, name) in enumerate(DEFAULT_GENRES, start=1):
            genre_id = self.store.insert(
                'genres',
                {'context_id': journal_id, 'entry_key': entry_key, 'seq': seq, 'enabled': 1},
                'genre_id',
            )
            self._insert_setting('genre_settings', 'genre_id', genre_id, 'name', name, locale)
        logger.info("Created the author group and %d genres for journal %s", len(DEFAULT_GENRES), journal_id)

    # Issues

    def find_issue_id(self, journal_id: Any, volume: Any, number: Any, year: Any) -> Optional[Any]:
        year_clause = 'i.year IS NULL' if year is None else 'i.year = :year'
        return self.store.scalar(
            f"""SELECT i.issue_id
            FROM issues i
            WHERE i.journal_id = :journal_id
            AND i.volume = :volume
            AND i.number = :number
            AND {year_clause}
            ORDER BY i.issue_id""",
            {'journal_id': journal_id, 'volume': volume, 'number': str(number), 'year': year},
        )

    def create_issue(self, journal_id: Any, issue: Dict[str, Any]) -> Any:
        published = issue.get('startDate') or issue.get('endDate') or date.today().isoformat()
        issue_id = self.store.insert(
            'issues',
            {
                'journal_id': journal_id,
                'volume': issue.get('volume'),
                'number': str(issue.get('number')) if _present(issue.get('number')) else None,
                'year': issue.get('year'),
                'published': 1,
                'date_published': published,
                'last_modified': published,
                'access_status': 1,
                'show_volume': int(_present(issue.get('volume'))),
                'show_number': int(_present(issue.get('number'))),
                'show_year': int(_present(issue.get('year'))),
                'show_title': 1,
            },
            'issue_id',
        )
        for name in ('title', 'description'):
            for locale, value in (issue.get(name) or {}).items():
                self._insert_setting('issue_settings', 'issue_id', issue_id, name, value, locale)
        # new issues go on top of the custom ordering
        self.store.execute('UPDATE custom_issue_orders SET seq = seq + 1 WHERE journal_id = :journal_id', {'journal_id': journal_id})
        self.store.insert('custom_issue_orders', {'issue_id': issue_id, 'journal_id': journal_id, 'seq': 1})
        return issue_id

    # Sections

    def find_section(self, journal_id: Any, titles: Iterable[str], preferred_locale: Optional[str] = None) -> Optional[Tuple[Any, Optional[str]]]:
        titles = [title for title in titles if _present(title)]
        if not titles:
            return None
        row = self.store.read_one(
            """SELECT s.section_id
            FROM sections s
            INNER JOIN section_settings ss
                ON ss.section_id = s.section_id
                AND ss.setting_name = 'title'
            WHERE
                s.journal_id = :journal_id
                AND ss.setting_value IN :titles
            ORDER BY s.seq, s.section_id""",
            {'journal_id': journal_id, 'titles': titles},
            ['titles'],
        )
        if not row:
            return None
        return row['section_id'], self.section_abbrev(row['section_id'], preferred_locale)

    def section_abbrev(self, section_id: Any, preferred_locale: Optional[str] = None) -> Optional[str]:
        rows = self.store.read_all(
            """SELECT ss.locale, ss.setting_value
            FROM section_settings ss
            WHERE ss.section_id = :section_id AND ss.setting_name = 'abbrev'
            ORDER BY ss.setting_value DESC""",
            {'section_id': section_id},
        )
        rows = _ordered_by_locale(rows, preferred_locale)
        return rows[0]['setting_value'] if rows else None

    def create_section(self, journal_id: Any, section: Dict[str, Any]) -> Any:
        seq = self.store.scalar(
            'SELECT COALESCE(MAX(seq), 0) + 1 AS seq FROM sections WHERE journal_id = :journal_id',
            {'journal_id': journal_id},
        ) or 1
        section_id = self.store.insert('sections', {'journal_id': journal_id, 'seq': seq}, 'section_id')
        for name in ('title', 'abbrev', 'policy'):
            for locale, value in (section.get(name) or {}).items():
                self._insert_setting('section_settings', 'section_id', section_id, name, value, locale)
        return section_id

    # Roles and genres

    def author_role_names(self, journal_id: Any, preferred_locale: Optional[str] = None) -> List[str]:
        rows = self.store.read_all(
            """SELECT ug.user_group_id, ugs.locale, ugs.setting_value AS name
            FROM user_groups ug
            INNER JOIN user_group_settings ugs
                ON ug.user_group_id = ugs.user_group_id
                AND ugs.setting_name = 'name'
            WHERE
                ug.context_id = :journal_id
                AND ug.role_id = :role_id
            ORDER BY ug.user_group_id, ugs.locale DESC""",
            {'journal_id': journal_id, 'role_id': AUTHOR_ROLE_ID},
        )
        return [row['name'] for row in _ordered_by_locale(rows, preferred_locale) if row['name']]

    def role_names(self, journal_id: Any) -> List[str]:
        rows = self.store.read_all(
            """SELECT ugs.setting_value AS name
            FROM user_groups ug
            INNER JOIN user_group_settings ugs
                ON ug.user_group_id = ugs.user_group_id
                AND ugs.setting_name = 'name'
            WHERE ug.context_id = :journal_id
            ORDER BY ug.user_group_id, ugs.locale""",
            {'journal_id': journal_id},
        )
        return [row['name'] for row in rows if row['name']]

    def genre_names(self, journal_id: Any, preferred_locale: Optional[str] = None) -> List[Tuple[str, str]]:
        """Enabled genres as (entry_key, name), in sequence order, one name per genre."""
        rows = self.store.read_all(
            """SELECT g.genre_id, g.entry_key, gs.locale, gs.setting_value AS name
            FROM genres g
            INNER JOIN genre_settings gs
                ON gs.genre_id = g.genre_id
                AND gs.setting_name = 'name'
            WHERE
                g.context_id = :journal_id
                AND g.enabled = 1
            ORDER BY g.seq, g.genre_id""",
            {'journal_id': journal_id},
        )
        by_genre: Dict[Any, List[Dict[str, Any]]] = {}
        for row in rows:
            by_genre.setdefault(row['genre_id'], []).append(row)
        genres = []
        for genre_rows in by_genre.values():
            named = [row for row in _ordered_by_locale(genre_rows, preferred_locale) if row['name']]
            if named:
                genres.append((named[0]['entry_key'], named[0]['name']))
        return genres

    # Import bookkeeping

    def last_publication_id(self) -> int:
        value = self.store.scalar('SELECT MAX(publication_id) AS last_id FROM publications')
        return int(value) if value is not None else 0

    @contextmanager
    def publication_filter_fix(self) -> Iterator[int]:
        """Temporarily widen the publication filter output type accepted by the native import."""
        changed = self.store.execute(
            'UPDATE filter_groups SET output_type = :fixed WHERE output_type = :broken',
            {'fixed': PUBLICATION_FILTER_FIXED, 'broken': PUBLICATION_FILTER},
        )
        if changed:
            logger.info("Publication filter adjusted for the import (%d row(s))", changed)
        try:
            yield changed
        finally:
            if changed:
                self.store.execute(
                    'UPDATE filter_groups SET output_type = :broken WHERE output_type = :fixed',
                    {'fixed': PUBLICATION_FILTER_FIXED, 'broken': PUBLICATION_FILTER},
                )
                logger.info("Publication filter restored")
