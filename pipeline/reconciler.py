"""
Matches the exported organizations, issues and sections against the destination,
creating what is missing when the force level allows it.

Every class is planned before anything is created, so a fatal missing-entities
error leaves the destination untouched.
"""
from __future__ import annotations

import logging
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.errors import BatchMissingError, ConfigurationError, MissingEntitiesError
from storage.destination import DestinationRepository

logger = logging.getLogger(__name__)

FORCE_VERSION = 1
FORCE_LOCALES = 2
FORCE_SECTIONS = 3
FORCE_ISSUES = 4
FORCE_ORGANIZATIONS = 5

MATCHED = 'matched'
CREATED = 'auto-created'
MISSING = 'missing'

ISSUE_ORDER_NOTE = (
    "If you opt to create the issues, please review the issue ordering after the import, "
    "new issues are inserted on the top."
)


@dataclass
class EntityOutcome:
    kind: str
    organization: str
    label: str
    state: str
    local_id: Any = None


@dataclass
class ReconciliationReport:
    outcomes: List[EntityOutcome] = field(default_factory=list)

    def add(self, kind: str, organization: str, label: str, state: str, local_id: Any = None) -> None:
        self.outcomes.append(EntityOutcome(kind, organization, label, state, local_id))

    def counts(self, kind: str) -> Dict[str, int]:
        return dict(Counter(outcome.state for outcome in self.outcomes if outcome.kind == kind))


def first_value(values: Optional[Dict[str, Any]]) -> Optional[Any]:
    return next(iter((values or {}).values()), None)


def issue_label(issue: Dict[str, Any]) -> str:
    return f"Issue volume {issue.get('volume')}, number {issue.get('number')}, year {issue.get('year')}"


def section_label(section: Dict[str, Any]) -> str:
    titles = section.get('title') or {}
    main_locale = next(iter(titles), None)
    abbrev = (section.get('abbrev') or {}).get(main_locale) or first_value(section.get('abbrev'))
    return f"Section with title \"{titles.get(main_locale, '')}\", abbrev \"{abbrev or ''}\""


def created_abbrev(section: Dict[str, Any]) -> Optional[str]:
    """Abbreviation in the locale of the first title, else the first one available."""
    main_locale = next(iter(section.get('title') or {}), None)
    abbrevs = section.get('abbrev') or {}
    return abbrevs.get(main_locale) or first_value(abbrevs)


class MetadataReconciler:
    def __init__(self, destination: DestinationRepository, force_level: int = 0):
        self.destination = destination
        self.force_level = int(force_level or 0)

    def allows(self, level: int) -> bool:
        return self.force_level >= level

    def check_version(self, metadata: Dict[str, Any]) -> None:
        required = str(metadata.get('destinationVersion') or '')
        version = self.destination.version()
        if version == required:
            logger.info("Destination version %s checked", version)
            return
        if self.allows(FORCE_VERSION):
            logger.warning("Destination version %s differs from %s, ignored by the force level", version or 'unknown', required)
            return
        raise ConfigurationError(
            f"The papers were exported for version {required}, the destination is running {version or 'an unknown version'}. "
            f"Upgrade/downgrade the destination or re-run with the force level {FORCE_VERSION} to ignore"
        )

    def check_locales(self, metadata: Dict[str, Any]) -> None:
        required: List[str] = []
        for organization in metadata['organizations']:
            candidates = [organization.get('primaryLocale')]
            candidates += list(organization.get('supportedLocales') or [])
            candidates += list(organization.get('supportedFormLocales') or [])
            required += [locale for locale in candidates if locale and locale not in required]
        installed = set(self.destination.installed_locales())
        missing = [locale for locale in required if locale not in installed]
        if not missing:
            logger.info("Required locales are installed")
            return
        if self.allows(FORCE_LOCALES):
            logger.warning("Locales not installed on the destination: %s, ignored by the force level", ', '.join(missing))
            return
        raise ConfigurationError(
            "The organizations being imported require the following locales to be installed: "
            + ', '.join(missing)
            + f"\nYou might ignore this by re-running with the force level {FORCE_LOCALES}"
        )

    def reconcile(self, metadata: Dict[str, Any]) -> ReconciliationReport:
        """Annotate ``metadata`` in place with destination ids (``localId``, ``localAbbrev``)."""
        self.check_version(metadata)
        self.check_locales(metadata)
        report = ReconciliationReport()
        organizations = metadata['organizations']

        logger.info("Matching organizations")
        pending_organizations = []
        missing_organizations: List[str] = []
        for organization in organizations:
            journal_id = self.destination.find_journal_id(organization['urlPath'])
            if journal_id is not None:
                organization['localId'] = journal_id
                report.add('organization', organization['urlPath'], organization['urlPath'], MATCHED, journal_id)
            elif self.allows(FORCE_ORGANIZATIONS):
                pending_organizations.append(organization)
            else:
                missing_organizations.append(organization['urlPath'])
        if missing_organizations:
            for path in missing_organizations:
                report.add('organization', path, path, MISSING)
            raise MissingEntitiesError('journals', {'': missing_organizations}, FORCE_ORGANIZATIONS)

        logger.info("Matching issues and sections")
        pending_issues = []
        pending_sections = []
        missing_issues: Dict[str, List[str]] = OrderedDict()
        missing_sections: Dict[str, List[str]] = OrderedDict()
        for organization in organizations:
            journal_id = organization.get('localId')
            path = organization['urlPath']
            for issue in organization['issues']:
                issue_id = None
                if journal_id is not None:
                    issue_id = self.destination.find_issue_id(journal_id, issue['volume'], issue['number'], issue.get('year'))
                if issue_id is not None:
                    issue['localId'] = issue_id
                    report.add('issue', path, issue_label(issue), MATCHED, issue_id)
                elif self.allows(FORCE_ISSUES):
                    pending_issues.append((organization, issue))
                else:
                    missing_issues.setdefault(path, []).append(issue_label(issue))
                    report.add('issue', path, issue_label(issue), MISSING)

            for section in organization['sections']:
                found = None
                if journal_id is not None:
                    found = self.destination.find_section(
                        journal_id, list((section.get('title') or {}).values()), organization.get('primaryLocale')
                    )
                if found is not None:
                    section['localId'], section['localAbbrev'] = found
                    report.add('section', path, section_label(section), MATCHED, found[0])
                elif self.allows(FORCE_SECTIONS):
                    pending_sections.append((organization, section))
                else:
                    missing_sections.setdefault(path, []).append(section_label(section))
                    report.add('section', path, section_label(section), MISSING)

        errors = []
        if missing_issues:
            errors.append(MissingEntitiesError('issues', missing_issues, FORCE_ISSUES, ISSUE_ORDER_NOTE))
        if missing_sections:
            errors.append(MissingEntitiesError('sections', missing_sections, FORCE_SECTIONS))
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise BatchMissingError(errors)

        self.apply(pending_organizations, pending_issues, pending_sections, report)
        for kind in ('organization', 'issue', 'section'):
            logger.info("%s reconciliation: %s", kind.capitalize(), report.counts(kind))
        return report

    def apply(self, organizations, issues, sections, report: ReconciliationReport) -> None:
        for organization in organizations:
            logger.info("Creating journal %s", organization['urlPath'])
            organization['localId'] = self.destination.create_journal(organization)
            report.add('organization', organization['urlPath'], organization['urlPath'], CREATED, organization['localId'])
            logger.info("Journal ID %s created", organization['localId'])

        for organization, issue in issues:
            logger.info("Creating %s on journal %s", issue_label(issue).lower(), organization['urlPath'])
            issue['localId'] = self.destination.create_issue(organization['localId'], issue)
            report.add('issue', organization['urlPath'], issue_label(issue), CREATED, issue['localId'])
            logger.info("Issue ID %s created", issue['localId'])

        for organization, section in sections:
            logger.info("Creating %s on journal %s", section_label(section), organization['urlPath'])
            section['localId'] = self.destination.create_section(organization['localId'], section)
            section['localAbbrev'] = created_abbrev(section)
            report.add('section', organization['urlPath'], section_label(section), CREATED, section['localId'])
            logger.info("Section ID %s created", section['localId'])
