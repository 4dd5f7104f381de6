"""
Paper → native import XML template.

Destination-side ids (author role, genres, section abbreviation, issue numbers) are
not known at export time and are written as ``{[#TOKEN#]}`` placeholders.
"""
from __future__ import annotations

import base64
import logging
import re
from collections import OrderedDict
from datetime import date, datetime
from pathlib import PurePath
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from lxml import etree

from core import placeholders
from core.locales import DEFAULT_CATALOG, LocaleCatalog
from core.profiles import TargetProfile
from storage.source import Galley, Paper, PaperFile, SupplementaryFile

logger = logging.getLogger(__name__)

PKP_NS = "http://pkp.sfu.ca"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
EMPTY_CONTENT = b"Empty"
COVERAGE_FIELDS = ('coverageGeo', 'coverageChron', 'coverageSample')
SUPPLEMENTARY_FIELDS_321 = ('creator', 'subject', 'description', 'publisher', 'sponsor')

FileReader = Callable[[Paper, PaperFile], bytes]


def format_date(value: Any) -> str:
    if value in (None, ''):
        return ''
    if isinstance(value, (datetime, date)):
        return value.strftime('%Y-%m-%d')
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text[:19]).strftime('%Y-%m-%d')
    except ValueError:
        return text[:10]


def split_keywords(value: Any) -> List[str]:
    return [item.strip() for item in re.split(r"[,;]", str(value or '')) if item.strip()]


def merge_coverage(settings: Dict[str, Any]) -> Dict[str, str]:
    """One comma-joined coverage value per locale out of the geo/chron/sample settings."""
    merged: Dict[str, List[str]] = OrderedDict()
    for name in COVERAGE_FIELDS:
        value = settings.get(name)
        if not isinstance(value, dict):
            continue
        for locale, text in value.items():
            merged.setdefault(locale, []).append(str(text or ''))
    return {locale: ','.join(v.strip() for v in values if v.strip()) for locale, values in merged.items()}


def _extension(file_name: Optional[str]) -> str:
    return PurePath(file_name or '').suffix.lstrip('.')


def _bool(value: Any) -> str:
    return 'true' if value else 'false'


class PaperXmlWriter:
    """Renders one paper as a native import ``article`` document for a target profile."""

    def __init__(
        self,
        paper: Paper,
        profile: TargetProfile,
        catalog: LocaleCatalog = DEFAULT_CATALOG,
        primary_locale: Optional[str] = None,
        supported_locales: Iterable[str] = (),
        has_section: bool = False,
        file_reader: Optional[FileReader] = None,
        supplementary_as_galley: bool = False,
    ):
        self.paper = paper
        self.profile = profile
        self.catalog = catalog
        self.primary_locale = primary_locale
        self.supported_locales = list(supported_locales)
        self.has_section = has_section
        self.file_reader = file_reader
        self.supplementary_as_galley = supplementary_as_galley

        self.source_locale = catalog.resolve(paper.language, primary_locale, self.supported_locales) or primary_locale
        self.locale = profile.target_locale(self.source_locale) or ''

        # dependent file id → (owning galley, owner file id)
        self.dependents: Dict[int, Tuple[Galley, int]] = {}
        for galley in paper.galleys:
            for file_id in galley.dependent_file_ids:
                if file_id != galley.file_id:
                    self.dependents.setdefault(file_id, (galley, galley.file_id))

    def render(self) -> bytes:
        article = self.article()
        return etree.tostring(article, xml_declaration=True, encoding='utf-8', pretty_print=True)

    # Helpers

    def _element(self, parent: etree._Element, name: str, text: Any = None, **attrs: Any) -> etree._Element:
        node = etree.SubElement(parent, f"{{{PKP_NS}}}{name}")
        if text is not None:
            node.text = placeholders.escape_literals(text)
        for key, value in attrs.items():
            node.set(key, '' if value is None else placeholders.escape_literals(value))
        return node

    def _text_child(self, parent: etree._Element, name: str, value: Any, append_if_empty: bool = True) -> Optional[etree._Element]:
        if value in (None, '') and not append_if_empty:
            return None
        return self._element(parent, name, '' if value is None else value)

    def _localized(self, parent: etree._Element, name: str, values: Union[Dict[str, Any], Any]) -> List[etree._Element]:
        """One ``name`` child per non-empty locale value, locales translated for the target."""
        if not isinstance(values, dict):
            return []
        nodes = []
        for locale, value in values.items():
            if value in (None, ''):
                continue
            nodes.append(self._element(parent, name, value, locale=self.profile.target_locale(locale)))
        return nodes

    def _content(self, paper_file: PaperFile) -> bytes:
        if paper_file.content is not None:
            content = paper_file.content
        elif self.file_reader is not None:
            content = self.file_reader(self.paper, paper_file)
        else:
            content = b''
        if paper_file.file_size is not None and int(paper_file.file_size) != len(content):
            logger.warning(
                "File ID %s has a size mismatch, expected %s, but read %s",
                paper_file.file_id, paper_file.file_size, len(content),
            )
        if not content:
            logger.warning(
                "File ID %s is empty, it will be imported with the content \"%s\"",
                paper_file.file_id, EMPTY_CONTENT.decode(),
            )
            content = EMPTY_CONTENT
        return content

    def _embed(self, parent: etree._Element, content: bytes) -> etree._Element:
        return self._element(parent, 'embed', base64.b64encode(content).decode('ascii'), encoding='base64')

    def _owner(self, file_id: int) -> Optional[Union[Galley, SupplementaryFile]]:
        for item in list(self.paper.galleys) + list(self.paper.supplementary_files):
            if item.file_id == file_id:
                return item
        return None

    def _language(self, language: Optional[str]) -> str:
        locale = self.catalog.resolve(language, self.primary_locale, self.supported_locales)
        return self.profile.target_locale(locale) or ''

    def _file_genre(self, owner: Any) -> str:
        if isinstance(owner, SupplementaryFile):
            return placeholders.genre_token(placeholders.genre_for_supplementary_type(owner.type))
        return placeholders.genre_token('SUBMISSION')

    # Article

    def article(self) -> etree._Element:
        article = etree.Element(f"{{{PKP_NS}}}article", nsmap={None: PKP_NS, 'xsi': XSI_NS})
        article.set(f"{{{XSI_NS}}}schemaLocation", "http://pkp.sfu.ca native.xsd")
        article.set('date_submitted', format_date(self.paper.date_submitted))
        article.set('status', '3')
        article.set('submission_progress', self.profile.submission_progress)
        article.set('current_publication_id', str(self.paper.paper_id))
        article.set('stage', 'production')
        if self.profile.article_locale:
            article.set('locale', self.locale)

        emitted: set = set()
        for paper_file in self.paper.files:
            if paper_file.file_id in self.dependents:
                continue
            self.submission_file(article, paper_file, emitted)

        self.publication(article)
        self._text_child(article, 'pages', self.paper.pages, append_if_empty=False)
        return article

    def submission_file(self, parent: etree._Element, paper_file: PaperFile, emitted: set) -> None:
        owner = self._owner(paper_file.file_id)
        content = self._content(paper_file)
        if self.profile.file_layout == 'revision':
            self._submission_file_revision(parent, paper_file, owner, content)
        else:
            self._submission_file_file(parent, paper_file, owner, content)

        if isinstance(owner, Galley):
            for file_id in owner.dependent_file_ids:
                if file_id in emitted or file_id == paper_file.file_id:
                    continue
                dependent = self.paper.file(file_id)
                if dependent is None:
                    logger.warning("Paper %s: dependent file %s of galley %s not found", self.paper.paper_id, file_id, owner.galley_id)
                    continue
                emitted.add(file_id)
                genre = 'STYLE' if file_id == owner.style_file_id else 'IMAGE'
                self.dependent_file(parent, dependent, paper_file, genre)

    def _submission_file_revision(self, parent, paper_file: PaperFile, owner, content: bytes) -> None:
        node = self._element(parent, 'submission_file', stage='submission', id=paper_file.file_id)
        revision = self._element(
            node, 'revision',
            number=paper_file.revision,
            genre=self._file_genre(owner),
            filename=paper_file.original_file_name,
            viewable=_bool(paper_file.viewable),
            date_uploaded=format_date(paper_file.date_uploaded),
            date_modified=format_date(paper_file.date_modified),
            filesize=len(content),
            filetype=paper_file.file_type,
        )
        self._localized(revision, 'name', {self.source_locale: paper_file.original_file_name})
        self._embed(revision, content)

        if isinstance(owner, SupplementaryFile):
            for name in SUPPLEMENTARY_FIELDS_321:
                self._localized(node, name, owner.localized(name))
            if owner.date_created:
                self._element(node, 'date_created', format_date(owner.date_created))
            self._localized(node, 'source', owner.localized('source'))
            if owner.language:
                self._element(node, 'language', self._language(owner.language))

    def _submission_file_file(self, parent, paper_file: PaperFile, owner, content: bytes) -> None:
        node = self._element(
            parent, 'submission_file',
            stage='submission',
            id=paper_file.file_id,
            created_at=format_date(paper_file.date_uploaded),
            updated_at=format_date(paper_file.date_modified),
            file_id=paper_file.file_id,
            viewable=_bool(paper_file.viewable),
            genre=self._file_genre(owner),
        )
        supplementary = isinstance(owner, SupplementaryFile)
        if supplementary:
            if owner.date_created:
                node.set('date_created', format_date(owner.date_created))
            if owner.language:
                node.set('language', self._language(owner.language))
            self._localized(node, 'creator', owner.localized('creator'))
            self._localized(node, 'description', owner.localized('description'))
        self._localized(node, 'name', {self.source_locale: paper_file.original_file_name})
        if supplementary:
            for name in ('publisher', 'source', 'sponsor', 'subject'):
                self._localized(node, name, owner.localized(name))
        file_node = self._element(node, 'file', id=paper_file.file_id, filesize=len(content), extension=_extension(paper_file.original_file_name))
        self._embed(file_node, content)

    def dependent_file(self, parent, dependent: PaperFile, owner_file: PaperFile, genre: str) -> None:
        """A style sheet or image of an HTML galley, attached to the galley's own file."""
        content = self._content(dependent)
        genre_token = placeholders.genre_token(genre)
        if self.profile.file_layout == 'revision':
            node = self._element(parent, 'submission_file', stage='dependent', id=dependent.file_id)
            revision = self._element(
                node, 'revision',
                number=dependent.revision,
                genre=genre_token,
                filename=dependent.original_file_name,
                viewable=_bool(dependent.viewable),
                date_uploaded=format_date(dependent.date_uploaded),
                date_modified=format_date(dependent.date_modified),
                filesize=len(content),
                filetype=dependent.file_type,
            )
            self._localized(revision, 'name', {self.source_locale: dependent.original_file_name})
            self._file_ref(revision, owner_file)
            self._embed(revision, content)
            return

        node = self._element(
            parent, 'submission_file',
            stage='dependent',
            id=dependent.file_id,
            created_at=format_date(dependent.date_uploaded),
            date_created=format_date(dependent.date_uploaded),
            updated_at=format_date(dependent.date_modified),
            file_id=dependent.file_id,
            viewable=_bool(dependent.viewable),
            genre=genre_token,
        )
        self._localized(node, 'name', {self.source_locale: dependent.original_file_name})
        self._file_ref(node, owner_file)
        file_node = self._element(node, 'file', id=dependent.file_id, filesize=len(content), extension=_extension(dependent.original_file_name))
        self._embed(file_node, content)

    def _file_ref(self, parent, paper_file: PaperFile) -> etree._Element:
        ref = self._element(parent, 'submission_file_ref', id=paper_file.file_id)
        if self.profile.galley_ref_revision:
            ref.set('revision', str(paper_file.revision))
        return ref

    # Publication

    def publication(self, article: etree._Element) -> etree._Element:
        paper = self.paper
        node = self._element(article, 'publication')
        if self.profile.publication_locale:
            node.set('locale', self.locale)
        node.set('version', '1')
        node.set('status', '3')
        node.set('seq', '1')
        node.set('date_published', format_date(paper.date_published))
        node.set('access_status', '0')

        # several flagged authors: the last one wins
        for author in paper.authors:
            if author.primary_contact:
                node.set('primary_contact_id', str(author.author_id))
        if self.has_section:
            node.set('section_ref', placeholders.token(placeholders.SECTION_ABBREVIATION))

        self._element(node, 'id', paper.paper_id, type='internal', advice='ignore')
        self._localized(node, 'title', paper.localized('title'))
        self._localized(node, 'abstract', paper.localized('abstract'))
        self._localized(node, 'coverage', merge_coverage(paper.settings))
        self._localized(node, 'type', paper.localized('type'))
        self.keywords(node, paper.localized('discipline'), 'disciplines', 'discipline')
        self.keywords(node, paper.localized('subject'), 'subjects', 'subject')
        self.authors(node)
        self.galleys(node)
        self.issue_identification(node)
        return node

    def keywords(self, parent, values: Dict[str, Any], group: str, item: str) -> None:
        for locale, value in values.items():
            keywords = split_keywords(value)
            if not keywords:
                continue
            group_node = self._element(parent, group, locale=self.profile.target_locale(locale))
            for keyword in keywords:
                self._element(group_node, item, keyword)

    def authors(self, parent) -> None:
        if not self.paper.authors:
            return
        authors = self._element(parent, 'authors')
        for seq, author in enumerate(self.paper.authors, start=1):
            node = self._element(authors, 'author')
            if author.primary_contact:
                node.set('primary_contact', 'true')
            node.set('user_group_ref', placeholders.token(placeholders.ROLE_AUTHOR))
            node.set('seq', str(seq))
            node.set('id', str(author.author_id))

            given = ' '.join(name for name in (author.first_name, author.middle_name) if name)
            self._localized(node, 'givenname', {self.source_locale: given})
            self._localized(node, 'familyname', {self.source_locale: author.last_name})
            affiliation = author.affiliation if isinstance(author.affiliation, dict) else {self.source_locale: author.affiliation}
            self._localized(node, 'affiliation', affiliation)
            self._text_child(node, 'country', author.country, append_if_empty=False)
            self._text_child(node, 'email', author.email, append_if_empty=False)
            self._text_child(node, 'url', author.url, append_if_empty=False)
            self._localized(node, 'biography', author.biography)

    def galleys(self, parent) -> None:
        items: List[Union[Galley, SupplementaryFile]] = list(self.paper.galleys) + list(self.paper.supplementary_files)
        for item in items:
            paper_file = self.paper.file(item.file_id)
            if paper_file is None:
                continue
            if isinstance(item, Galley):
                tag = 'article_galley'
                source_locale = item.locale or self.source_locale
                names = {source_locale: item.label or _extension(paper_file.file_name).upper()}
                item_id = item.galley_id
            else:
                if not self.supplementary_as_galley:
                    continue
                tag = self.profile.supplementary_tag
                source_locale = self.source_locale
                names = item.localized('title') or {source_locale: _extension(paper_file.file_name).upper()}
                item_id = item.supp_id

            node = self._element(parent, tag, locale=self.profile.target_locale(source_locale), approved='true')
            self._element(node, 'id', item_id, type='internal', advice='ignore')
            self._localized(node, 'name', names)
            self._text_child(node, 'seq', item.seq)
            self._file_ref(node, paper_file)

    def issue_identification(self, parent) -> etree._Element:
        node = self._element(parent, 'issue_identification')
        self._element(node, 'volume', placeholders.token(placeholders.ISSUE_VOLUME))
        self._element(node, 'number', placeholders.token(placeholders.ISSUE_NUMBER))
        self._element(node, 'year', placeholders.token(placeholders.ISSUE_YEAR))
        return node
