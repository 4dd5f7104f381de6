"""Builds the organization → issues/sections metadata document from the source rows."""
from __future__ import annotations

import itertools
import logging
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from core.errors import ConfigurationError
from core.normalizer import merge_setting_rows, parse_locale_list
from core.profiles import TargetProfile
from storage.source import SourceRepository

logger = logging.getLogger(__name__)

DEFAULT_SECTION_ID = "general"
DEFAULT_SECTION_TITLE = "General"
DEFAULT_SECTION_ABBREV = "GEN"
LOCALE_LISTS = ('supportedLocales', 'supportedFormLocales')
ALL_LOCALE_LISTS = ('supportedFormLocales', 'supportedLocales', 'supportedSubmissionLocales')


def date_text(value: Any) -> Optional[str]:
    if value in (None, ''):
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat(sep=' ') if isinstance(value, datetime) else value.isoformat()
    return str(value)


def year_of(value: Any) -> Optional[int]:
    if value in (None, ''):
        return None
    if isinstance(value, (datetime, date)):
        return value.year
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text[:19]).year
    except ValueError:
        match = re.search(r"\b(\d{4})\b", text)
        return int(match.group(1)) if match else None


def display_title(titles: Dict[str, str], primary_locale: Optional[str]) -> str:
    if primary_locale in titles:
        return titles[primary_locale]
    return next(iter(titles.values()), '')


def merge_sections(sections: Iterable[Dict[str, Any]], primary_locale: str) -> Tuple[List[Dict[str, Any]], Dict[Any, Any]]:
    """Fold sections whose display title is identical into the first one seen.

    Returns the surviving sections and a map from every input id to its survivor's id.
    """
    survivors: Dict[str, Dict[str, Any]] = {}
    track_map: Dict[Any, Any] = {}
    for section in sections:
        section = dict(section)
        if not section.get('title'):
            section['title'] = {primary_locale: DEFAULT_SECTION_TITLE}
        if not section.get('abbrev'):
            section['abbrev'] = {primary_locale: DEFAULT_SECTION_ABBREV}
        ids = [section['id']] + [i for i in section.get('mergedIds') or [] if i != section['id']]
        title = display_title(section['title'], primary_locale)
        survivor = survivors.get(title)
        if survivor is None:
            section['mergedIds'] = ids
            survivor = survivors[title] = section
        else:
            survivor['mergedIds'] += [i for i in ids if i not in survivor['mergedIds']]
            logger.debug("Track %s merged into %s (\"%s\")", section['id'], survivor['id'], title)
        for legacy_id in ids:
            track_map[legacy_id] = survivor['id']
    return list(survivors.values()), track_map


class EntityFlattener:
    def __init__(self, source: SourceRepository, profile: TargetProfile, default_section: bool = True):
        self.source = source
        self.profile = profile
        self.default_section = default_section
        # legacy track id → canonical section id
        self.track_map: Dict[Any, Any] = {}
        # organization id → synthesized section id
        self.default_sections: Dict[Any, Any] = {}

    def build_metadata(self, paths: Sequence[str] = (), source_version: str = '') -> Dict[str, Any]:
        return {
            'organizations': self.organizations(paths),
            'sourceVersion': source_version,
            'destinationVersion': self.profile.version,
        }

    def organizations(self, paths: Sequence[str] = ()) -> List[Dict[str, Any]]:
        tl = self.profile.target_locale
        organizations = merge_setting_rows(
            self.source.conference_rows(paths),
            'conference_id',
            lambda row: {
                'id': row['conference_id'],
                'urlPath': row['path'],
                'primaryLocale': tl(row['primary_locale']),
                'enabled': row['enabled'],
            },
            locale_map=tl,
        )

        if paths:
            found = {organization['urlPath'] for organization in organizations}
            not_found = [path for path in paths if path not in found]
            if not_found:
                raise ConfigurationError('The following conferences were not found: ' + ', '.join(not_found))

        for organization in organizations:
            logger.info("Flattening conference \"%s\"", organization['urlPath'])
            self._adjust_organization(organization)
            organization['issues'] = self.issues(organization['urlPath'])
            organization['sections'] = self.sections(organization)
        return organizations

    def _adjust_organization(self, organization: Dict[str, Any]) -> None:
        tl = self.profile.target_locale
        if 'title' in organization:
            organization['name'] = organization.pop('title')
        first_list = None
        for name in LOCALE_LISTS:
            if name in organization:
                organization[name] = [tl(locale) for locale in parse_locale_list(organization[name])]
                first_list = first_list or organization[name]
        if first_list:
            for name in ALL_LOCALE_LISTS:
                organization.setdefault(name, list(first_list))

    def issues(self, conference_path: str) -> List[Dict[str, Any]]:
        volumes = itertools.count(1)
        issues = merge_setting_rows(
            self.source.sched_conf_rows(conference_path),
            'sched_conf_id',
            lambda row: {
                'id': row['sched_conf_id'],
                'path': row['path'],
                'volume': next(volumes),
                'number': 1,
                'startDate': date_text(row['start_date']),
                'endDate': date_text(row['end_date']),
            },
            locale_map=self.profile.target_locale,
        )
        for issue in issues:
            for name in ('overview', 'introduction'):
                if issue.get(name):
                    issue['description'] = issue[name]
                    break
            issue.pop('overview', None)
            issue.pop('introduction', None)
            issue['year'] = year_of(issue['endDate'] or issue['startDate'])
        return issues

    def sections(self, organization: Dict[str, Any]) -> List[Dict[str, Any]]:
        primary_locale = organization['primaryLocale']
        tracks = merge_setting_rows(
            self.source.track_rows(organization['urlPath']),
            'track_id',
            lambda row: {'id': row['track_id']},
            locale_map=self.profile.target_locale,
            strip_fields=('*',),
            keep_markup=('policy',),
        )
        if not tracks:
            if not self.default_section:
                return []
            logger.info("Conference \"%s\" has no tracks, using a default section", organization['urlPath'])
            self.default_sections[organization['id']] = DEFAULT_SECTION_ID
            return [{
                'id': DEFAULT_SECTION_ID,
                'title': {primary_locale: DEFAULT_SECTION_TITLE},
                'abbrev': {primary_locale: DEFAULT_SECTION_ABBREV},
                'mergedIds': [],
            }]

        sections, track_map = merge_sections(tracks, primary_locale)
        self.track_map.update(track_map)
        if len(sections) < len(tracks):
            logger.info("Merged %d tracks into %d sections", len(tracks), len(sections))
        return sections

    def section_for(self, organization_id: Any, track_id: Any) -> Optional[Any]:
        """Canonical section id for a paper's legacy track id."""
        if track_id is not None and track_id in self.track_map:
            return self.track_map[track_id]
        return self.default_sections.get(organization_id)
