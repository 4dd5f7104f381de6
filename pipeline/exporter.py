"""Export run: source database → metadata.json + one XML template per published paper."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tqdm import tqdm

from core.config import DEFAULT_SCHEMA_PATH
from core.errors import ConfigurationError, PaperError
from core.locales import DEFAULT_CATALOG, LocaleCatalog
from core.normalizer import parse_locale_list
from core.profiles import TargetProfile
from core.validation import MetadataValidator
from pipeline.flattener import EntityFlattener
from storage.artifacts import ArtifactLayout, PaperKey
from storage.source import PaperFileStore, SourceRepository
from writers.xml_writer import PaperXmlWriter

logger = logging.getLogger(__name__)


@dataclass
class ExportStats:
    exported: int = 0
    failed: int = 0


class Exporter:
    def __init__(
        self,
        source: SourceRepository,
        output_dir: str | Path,
        profile: TargetProfile,
        file_store: Optional[PaperFileStore] = None,
        catalog: LocaleCatalog = DEFAULT_CATALOG,
        organizations: Sequence[str] = (),
        force: bool = False,
        supplementary_as_galley: bool = False,
        default_section: bool = True,
        expected_version: Optional[str] = None,
        schema_path: str | Path = DEFAULT_SCHEMA_PATH,
        enable_progress: bool = True,
    ):
        self.source = source
        self.layout = ArtifactLayout(output_dir)
        self.profile = profile
        self.file_store = file_store
        self.catalog = catalog
        self.organizations = list(organizations)
        self.force = force
        self.supplementary_as_galley = supplementary_as_galley
        self.expected_version = expected_version
        self.validator = MetadataValidator(schema_path)
        self.enable_progress = enable_progress
        self.flattener = EntityFlattener(source, profile, default_section=default_section)
        self.stats = ExportStats()

    def run(self) -> ExportStats:
        version = self.check_version()
        # nothing is written until the whole metadata document is built
        metadata = self.flattener.build_metadata(self.organizations, version)
        self.validator.validate(metadata, 'generated metadata')
        self.prepare_output()
        path = self.layout.write_metadata(metadata)
        logger.info("Metadata written to %s", path)
        self.export_papers(metadata)
        logger.info("Export finished: %d paper(s) exported, %d failed", self.stats.exported, self.stats.failed)
        return self.stats

    def check_version(self) -> str:
        version = self.source.version()
        if self.expected_version and version != self.expected_version:
            message = f"The source database version is {version or 'unknown'}, expected {self.expected_version}"
            if not self.force:
                raise ConfigurationError(message + ", use the force flag to proceed anyway")
            logger.warning("%s, proceeding because of the force flag", message)
        return version

    def prepare_output(self) -> None:
        root = self.layout.root
        if root.exists() and not self.force:
            raise ConfigurationError(f"The output path {root} already exists, use the force flag to overwrite it")
        try:
            self.layout.papers_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(f"Failed to create the output path {root}: {exc}") from exc

    def _jobs(self, metadata: Dict[str, Any]) -> List[Tuple[Dict[str, Any], Dict[str, Any], Any]]:
        jobs = []
        for organization in metadata['organizations']:
            for issue in organization['issues']:
                for paper_id in self.source.published_paper_ids(issue['id']):
                    jobs.append((organization, issue, paper_id))
        return jobs

    def export_papers(self, metadata: Dict[str, Any]) -> None:
        jobs = self._jobs(metadata)
        total = len(jobs)
        logger.info("Discovered %d published paper(s)", total)
        pbar = tqdm(total=total, desc="Exporting", unit="paper") if self.enable_progress and total else None
        contexts: Dict[Any, Dict[str, Any]] = {}

        for idx, (organization, issue, paper_id) in enumerate(jobs, start=1):
            start = time.time()
            label = f"[{idx}/{total}] paper {paper_id}"
            try:
                if organization['id'] not in contexts:
                    contexts[organization['id']] = self.source.conference(organization['id']) or {}
                path = self.export_paper(organization, issue, paper_id, contexts[organization['id']])
                self.stats.exported += 1
                status = f"OK {path.name}"
            except Exception as exc:
                self.stats.failed += 1
                status = f"FAIL: {exc}"
                logger.exception("%s failed", label)
            elapsed = time.time() - start
            if pbar:
                tqdm.write(f"DONE  {label}  ({elapsed:.1f}s)  {status}")
                pbar.update(1)
            else:
                logger.debug("DONE  %s  (%.1fs)  %s", label, elapsed, status)
        if pbar:
            pbar.close()

    def export_paper(self, organization: Dict[str, Any], issue: Dict[str, Any], paper_id: Any, context: Dict[str, Any]) -> Path:
        paper = self.source.load_paper(paper_id)
        if paper is None:
            raise PaperError(f"Paper {paper_id} not found")
        section_id = self.flattener.section_for(organization['id'], paper.track_id)
        key = PaperKey.build(organization['id'], issue['id'], section_id, paper.paper_id)
        writer = PaperXmlWriter(
            paper,
            self.profile,
            catalog=self.catalog,
            primary_locale=context.get('primaryLocale'),
            supported_locales=parse_locale_list(context.get('supportedLocales')),
            has_section=section_id is not None,
            file_reader=self.file_store.read if self.file_store else None,
            supplementary_as_galley=self.supplementary_as_galley,
        )
        path = self.layout.papers_dir / key.filename
        path.write_bytes(writer.render())
        return path
