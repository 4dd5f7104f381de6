"""Read-only access to the legacy conference database and its uploaded files."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from core.normalizer import merge_setting_rows
from storage.database import SqlStore

logger = logging.getLogger(__name__)

CONFERENCE_SETTINGS = (
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
    'title',
)
SCHED_CONF_SETTINGS = ('title', 'overview', 'introduction')
TRACK_SETTINGS = ('title', 'abbrev', 'policy')


@dataclass
class PaperFile:
    file_id: int
    revision: int
    file_name: str
    original_file_name: str
    file_type: Optional[str]
    file_size: Optional[int]
    type: Optional[str]
    viewable: bool = False
    date_uploaded: Optional[str] = None
    date_modified: Optional[str] = None
    content: Optional[bytes] = None


@dataclass
class Galley:
    galley_id: int
    file_id: int
    locale: Optional[str]
    label: Optional[str]
    seq: Optional[int]
    html_galley: bool = False
    style_file_id: Optional[int] = None
    image_file_ids: List[int] = field(default_factory=list)

    @property
    def dependent_file_ids(self) -> List[int]:
        if not self.html_galley:
            return []
        ids = [self.style_file_id] if self.style_file_id else []
        return ids + [fid for fid in self.image_file_ids if fid not in ids]


@dataclass
class SupplementaryFile:
    supp_id: int
    file_id: int
    type: Optional[str]
    language: Optional[str]
    date_created: Optional[str]
    seq: Optional[int]
    settings: Dict[str, Any] = field(default_factory=dict)

    def localized(self, name: str) -> Dict[str, str]:
        value = self.settings.get(name)
        return value if isinstance(value, dict) else {}


@dataclass
class Author:
    author_id: int
    seq: Optional[int]
    first_name: Optional[str]
    middle_name: Optional[str]
    last_name: Optional[str]
    affiliation: Any
    country: Optional[str]
    email: Optional[str]
    url: Optional[str]
    biography: Dict[str, str] = field(default_factory=dict)
    primary_contact: bool = False


@dataclass
class Paper:
    paper_id: int
    conference_id: int
    sched_conf_id: int
    track_id: Optional[int]
    language: Optional[str]
    date_submitted: Optional[str]
    date_published: Optional[str]
    pages: Optional[str]
    settings: Dict[str, Any] = field(default_factory=dict)
    authors: List[Author] = field(default_factory=list)
    files: List[PaperFile] = field(default_factory=list)
    galleys: List[Galley] = field(default_factory=list)
    supplementary_files: List[SupplementaryFile] = field(default_factory=list)

    def localized(self, name: str) -> Dict[str, str]:
        value = self.settings.get(name)
        return value if isinstance(value, dict) else {}

    def file(self, file_id: Optional[int]) -> Optional[PaperFile]:
        for paper_file in self.files:
            if paper_file.file_id == file_id:
                return paper_file
        return None


def _int(value: Any) -> Optional[int]:
    if value in (None, ''):
        return None
    return int(value)


class SourceRepository:
    """SQL for the legacy conference schema."""

    def __init__(self, store: SqlStore):
        self.store = store

    def version(self) -> str:
        row = self.store.read_one(
            """SELECT v.major, v.minor, v.revision, v.build
            FROM versions v
            WHERE
                v.current = 1
                AND v.product_type = 'core'
                AND v.product = 'ocs2'"""
        )
        if not row:
            return ''
        return '.'.join(str(row[key]) for key in ('major', 'minor', 'revision', 'build'))

    def conference_rows(self, paths: Sequence[str] = ()) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {'setting_names': list(CONFERENCE_SETTINGS)}
        expanding = ['setting_names']
        where = ''
        if paths:
            where = 'WHERE c.path IN :paths'
            params['paths'] = list(paths)
            expanding.append('paths')
        return self.store.read_all(
            f"""SELECT c.conference_id, c.path, c.primary_locale, c.enabled, cs.setting_name, cs.setting_value, cs.locale
            FROM conferences c
            LEFT JOIN conference_settings cs
                ON cs.conference_id = c.conference_id
                AND cs.setting_name IN :setting_names
            {where}
            ORDER BY c.seq DESC, c.conference_id""",
            params,
            expanding,
        )

    def sched_conf_rows(self, conference_path: str) -> List[Dict[str, Any]]:
        return self.store.read_all(
            """SELECT sc.sched_conf_id, sc.path, sc.seq, sc.start_date, sc.end_date, scs.setting_name, scs.setting_value, scs.locale
            FROM sched_confs sc
            INNER JOIN conferences c ON c.conference_id = sc.conference_id AND c.path = :path
            LEFT JOIN sched_conf_settings scs
                ON scs.sched_conf_id = sc.sched_conf_id
                AND scs.setting_name IN :setting_names
            ORDER BY sc.seq DESC, sc.sched_conf_id""",
            {'path': conference_path, 'setting_names': list(SCHED_CONF_SETTINGS)},
            ['setting_names'],
        )

    def track_rows(self, conference_path: str) -> List[Dict[str, Any]]:
        return self.store.read_all(
            """SELECT t.track_id, t.seq, ts.setting_name, ts.setting_value, ts.locale
            FROM tracks t
            INNER JOIN sched_confs sc ON sc.sched_conf_id = t.sched_conf_id
            INNER JOIN conferences c ON c.conference_id = sc.conference_id AND c.path = :path
            LEFT JOIN track_settings ts
                ON ts.track_id = t.track_id
                AND ts.setting_name IN :setting_names
            ORDER BY sc.seq DESC, t.seq DESC, t.track_id""",
            {'path': conference_path, 'setting_names': list(TRACK_SETTINGS)},
            ['setting_names'],
        )

    def conference(self, conference_id: Any) -> Optional[Dict[str, Any]]:
        """Conference row with its source-side locale settings (untranslated)."""
        rows = self.store.read_all(
            """SELECT c.conference_id, c.path, c.primary_locale, cs.setting_name, cs.setting_value, cs.locale
            FROM conferences c
            LEFT JOIN conference_settings cs
                ON cs.conference_id = c.conference_id
                AND cs.setting_name IN ('supportedLocales', 'title')
            WHERE c.conference_id = :id""",
            {'id': conference_id},
        )
        records = merge_setting_rows(
            rows,
            'conference_id',
            lambda row: {'id': row['conference_id'], 'path': row['path'], 'primaryLocale': row['primary_locale']},
        )
        return records[0] if records else None

    def published_paper_ids(self, sched_conf_id: Any) -> List[Any]:
        rows = self.store.read_all(
            """SELECT pp.paper_id
            FROM published_papers pp
            INNER JOIN papers p ON p.paper_id = pp.paper_id
            WHERE pp.sched_conf_id = :id
            ORDER BY pp.seq, pp.paper_id""",
            {'id': sched_conf_id},
        )
        return [row['paper_id'] for row in rows]

    def load_paper(self, paper_id: Any) -> Optional[Paper]:
        row = self.store.read_one(
            """SELECT p.paper_id, p.sched_conf_id, sc.conference_id, p.track_id, p.language,
                p.date_submitted, p.pages, pp.date_published
            FROM papers p
            INNER JOIN sched_confs sc ON sc.sched_conf_id = p.sched_conf_id
            LEFT JOIN published_papers pp ON pp.paper_id = p.paper_id
            WHERE p.paper_id = :id""",
            {'id': paper_id},
        )
        if not row:
            return None
        settings_rows = self.store.read_all(
            "SELECT ps.paper_id, ps.setting_name, ps.setting_value, ps.locale FROM paper_settings ps WHERE ps.paper_id = :id",
            {'id': paper_id},
        )
        merged = merge_setting_rows(settings_rows, 'paper_id', lambda r: {}, strip_fields=())
        return Paper(
            paper_id=row['paper_id'],
            conference_id=row['conference_id'],
            sched_conf_id=row['sched_conf_id'],
            track_id=_int(row['track_id']),
            language=row['language'],
            date_submitted=row['date_submitted'],
            date_published=row['date_published'],
            pages=row['pages'],
            settings=merged[0] if merged else {},
            authors=self.authors(paper_id),
            files=self.paper_files(paper_id),
            galleys=self.galleys(paper_id),
            supplementary_files=self.supplementary_files(paper_id),
        )

    def authors(self, paper_id: Any) -> List[Author]:
        rows = self.store.read_all(
            """SELECT a.author_id, a.seq, a.primary_contact, a.first_name, a.middle_name, a.last_name,
                a.affiliation, a.country, a.email, a.url, s.setting_name, s.setting_value, s.locale
            FROM paper_authors a
            LEFT JOIN paper_author_settings s ON s.author_id = a.author_id
            WHERE a.paper_id = :id
            ORDER BY a.seq, a.author_id""",
            {'id': paper_id},
        )
        records = merge_setting_rows(rows, 'author_id', lambda r: {'row': r}, strip_fields=())
        authors = []
        for record in records:
            base = record['row']
            affiliation = record.get('affiliation') if isinstance(record.get('affiliation'), dict) else base['affiliation']
            authors.append(Author(
                author_id=base['author_id'],
                seq=_int(base['seq']),
                first_name=base['first_name'],
                middle_name=base['middle_name'],
                last_name=base['last_name'],
                affiliation=affiliation,
                country=base['country'],
                email=base['email'],
                url=base['url'],
                biography=record.get('biography') if isinstance(record.get('biography'), dict) else {},
                primary_contact=bool(_int(base['primary_contact'])),
            ))
        return authors

    def paper_files(self, paper_id: Any) -> List[PaperFile]:
        rows = self.store.read_all(
            """SELECT f.file_id, f.revision, f.file_name, f.original_file_name, f.file_type, f.file_size,
                f.type, f.viewable, f.date_uploaded, f.date_modified
            FROM paper_files f
            WHERE f.paper_id = :id
            ORDER BY f.file_id, f.revision""",
            {'id': paper_id},
        )
        # one entry per file, latest revision wins
        latest: Dict[Any, PaperFile] = {}
        for row in rows:
            latest[row['file_id']] = PaperFile(
                file_id=int(row['file_id']),
                revision=int(row['revision']),
                file_name=row['file_name'],
                original_file_name=row['original_file_name'] or row['file_name'],
                file_type=row['file_type'],
                file_size=_int(row['file_size']),
                type=row['type'],
                viewable=bool(_int(row['viewable'])),
                date_uploaded=row['date_uploaded'],
                date_modified=row['date_modified'],
            )
        return list(latest.values())

    def galleys(self, paper_id: Any) -> List[Galley]:
        rows = self.store.read_all(
            """SELECT g.galley_id, g.file_id, g.locale, g.label, g.seq, g.html_galley, g.style_file_id
            FROM paper_galleys g
            WHERE g.paper_id = :id
            ORDER BY g.seq, g.galley_id""",
            {'id': paper_id},
        )
        galleys = []
        for row in rows:
            galley = Galley(
                galley_id=row['galley_id'],
                file_id=_int(row['file_id']),
                locale=row['locale'],
                label=row['label'],
                seq=_int(row['seq']),
                html_galley=bool(_int(row['html_galley'])),
                style_file_id=_int(row['style_file_id']),
            )
            if galley.html_galley:
                images = self.store.read_all(
                    "SELECT i.file_id FROM paper_html_galley_images i WHERE i.galley_id = :id ORDER BY i.file_id",
                    {'id': galley.galley_id},
                )
                galley.image_file_ids = [int(image['file_id']) for image in images]
            galleys.append(galley)
        return galleys

    def supplementary_files(self, paper_id: Any) -> List[SupplementaryFile]:
        rows = self.store.read_all(
            """SELECT s.supp_id, s.file_id, s.type, s.language, s.date_created, s.seq,
                ss.setting_name, ss.setting_value, ss.locale
            FROM paper_supplementary_files s
            LEFT JOIN paper_supp_file_settings ss ON ss.supp_id = s.supp_id
            WHERE s.paper_id = :id
            ORDER BY s.seq, s.supp_id""",
            {'id': paper_id},
        )
        records = merge_setting_rows(rows, 'supp_id', lambda r: {'row': r}, strip_fields=())
        files = []
        for record in records:
            base = record.pop('row')
            files.append(SupplementaryFile(
                supp_id=base['supp_id'],
                file_id=_int(base['file_id']),
                type=base['type'],
                language=base['language'],
                date_created=base['date_created'],
                seq=_int(base['seq']),
                settings=record,
            ))
        return files


class PaperFileStore:
    """Reads uploaded paper files from the source files directory."""

    def __init__(self, files_dir: str | Path, path_template: str):
        self.files_dir = Path(files_dir)
        self.path_template = path_template

    def path_for(self, paper: Paper, paper_file: PaperFile) -> Path:
        relative = self.path_template.format(
            conference_id=paper.conference_id,
            sched_conf_id=paper.sched_conf_id,
            paper_id=paper.paper_id,
            type=paper_file.type or '',
            file_name=paper_file.file_name,
        )
        return self.files_dir / relative

    def read(self, paper: Paper, paper_file: PaperFile) -> bytes:
        path = self.path_for(paper, paper_file)
        try:
            return path.read_bytes()
        except OSError as exc:
            logger.warning("File ID %s could not be read from %s: %s", paper_file.file_id, path, exc)
            return b''
