"""Import run: metadata.json + paper templates → destination journals."""
from __future__ import annotations

import logging
import shlex
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from tqdm import tqdm

from core.config import DEFAULT_SCHEMA_PATH
from core.errors import ConfigurationError, PaperError
from core.validation import MetadataValidator
from pipeline.reconciler import MetadataReconciler
from pipeline.replay import (
    DEFAULT_ERROR_MARKERS,
    ImportInvoker,
    ReplayVerifier,
    ShellImportInvoker,
    build_import_command,
)
from pipeline.resolver import PlaceholderResolver
from storage.artifacts import ArtifactLayout, PaperKey
from storage.destination import DestinationRepository

logger = logging.getLogger(__name__)


@dataclass
class ImportStats:
    processed: int = 0
    imported: int = 0
    skipped: int = 0
    failed: int = 0


class MetadataIndex:
    """Looks up the exported entities referenced by a template filename."""

    def __init__(self, metadata: Dict[str, Any]):
        self.organizations: Dict[str, Dict[str, Any]] = {}
        self.issues: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.sections: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for organization in metadata['organizations']:
            org_id = str(organization['id'])
            self.organizations[org_id] = organization
            for issue in organization.get('issues', []):
                self.issues[(org_id, str(issue['id']))] = issue
            for section in organization.get('sections', []):
                self.sections[(org_id, str(section['id']))] = section

    def lookup(self, key: PaperKey) -> Tuple[Optional[str], Optional[Dict], Optional[Dict], Optional[Dict]]:
        """Returns (missing reason or None, organization, issue, section)."""
        organization = self.organizations.get(key.organization_id)
        if not organization or organization.get('localId') is None:
            return 'organization', None, None, None
        issue = self.issues.get((key.organization_id, key.issue_id))
        if not issue or issue.get('localId') is None:
            return 'issue', organization, None, None
        section = None
        if key.section_id:
            section = self.sections.get((key.organization_id, key.section_id))
            if not section or section.get('localId') is None:
                return 'section', organization, issue, None
        return None, organization, issue, section


class Importer:
    def __init__(
        self,
        destination: DestinationRepository,
        input_dir: str | Path,
        ojs_path: str | Path,
        username: str,
        php_path: str = 'php',
        force_level: int = 0,
        invoker: Optional[ImportInvoker] = None,
        verifier: Optional[ReplayVerifier] = None,
        schema_path: str | Path = DEFAULT_SCHEMA_PATH,
        enable_progress: bool = True,
    ):
        if not ojs_path:
            raise ConfigurationError("Missing the destination installation path (destination.ojs_path)")
        if not username:
            raise ConfigurationError("Missing the username used to import the papers (destination.username)")
        self.destination = destination
        self.layout = ArtifactLayout(input_dir)
        self.ojs_path = Path(ojs_path)
        self.username = username
        self.php_path = php_path
        self.reconciler = MetadataReconciler(destination, force_level)
        self.resolver = PlaceholderResolver(destination)
        self.invoker = invoker or ShellImportInvoker()
        self.verifier = verifier or ReplayVerifier(DEFAULT_ERROR_MARKERS)
        self.validator = MetadataValidator(schema_path)
        self.enable_progress = enable_progress
        self.stats = ImportStats()

    def load_metadata(self) -> Dict[str, Any]:
        path = self.layout.metadata_path
        if not path.is_file():
            raise ConfigurationError(f"The metadata file {path} was not found, run the export first")
        try:
            metadata = self.layout.read_metadata()
        except ValueError as exc:
            raise ConfigurationError(f"The metadata file {path} is not valid JSON: {exc}") from exc
        self.validator.validate(metadata, f"metadata file {path}")
        return metadata

    def run(self) -> ImportStats:
        metadata = self.load_metadata()
        self.reconciler.reconcile(metadata)
        self.layout.ensure_import_dirs()
        try:
            self.import_papers(metadata)
        finally:
            logger.info(
                "Processed papers: %d, imported: %d, skipped: %d, failed: %d",
                self.stats.processed, self.stats.imported, self.stats.skipped, self.stats.failed,
            )
        return self.stats

    def import_papers(self, metadata: Dict[str, Any]) -> None:
        index = MetadataIndex(metadata)
        papers = self.layout.pending_papers()
        total = len(papers)
        logger.info("Importing %d paper(s)", total)
        pbar = tqdm(total=total, desc="Importing", unit="paper") if self.enable_progress and total else None
        try:
            with self.destination.publication_filter_fix():
                for idx, path in enumerate(papers, start=1):
                    start = time.time()
                    status = self.import_paper(path, index)
                    label = f"[{idx}/{total}] {path.name}"
                    if pbar:
                        tqdm.write(f"DONE  {label}  ({time.time() - start:.1f}s)  {status}")
                        pbar.update(1)
        finally:
            if pbar:
                pbar.close()

    def import_paper(self, path: Path, index: MetadataIndex) -> str:
        try:
            key = PaperKey.parse(path.name)
        except ValueError as exc:
            logger.error("Failed to process paper %s: %s", path.name, exc)
            self.stats.failed += 1
            return "FAIL"

        reason, organization, issue, section = index.lookup(key)
        if reason:
            moved = self.layout.move(path, self.layout.skipped_dir)
            logger.warning(
                "Paper %s skipped due to missing %s mapping. %s paper XML to the skipped folder",
                path.name, reason, "Moved" if moved else "Failed to move",
            )
            self.stats.skipped += 1
            return f"SKIP {reason}"

        logger.info("Processing paper %s", path.name)
        self.stats.processed += 1
        target = self.layout.processing_dir / path.name
        command = None
        try:
            try:
                template = path.read_text(encoding='utf-8')
            except OSError as exc:
                raise PaperError(f"Failed to read paper XML: {exc}") from exc
            document = self.resolver.render(template, organization, issue, section)
            try:
                target.write_text(document, encoding='utf-8')
            except OSError as exc:
                raise PaperError(f"Failed to regenerate XML for import: {exc}") from exc

            command = build_import_command(self.php_path, self.ojs_path, target, organization['urlPath'], self.username)
            before = self.destination.last_publication_id()
            result = self.invoker.invoke(command)
            if result.deferred:
                moved = self.layout.move(path, self.layout.processed_dir)
                logger.info(
                    "The import command was written out, the ready to import paper was left at %s. %s template to the processed folder",
                    target, "Moved" if moved else "Failed to move",
                )
                self.stats.imported += 1
                return "DEFERRED"

            if result.output:
                logger.info("Output from the import command:\n%s", result.output)
            self.verifier.verify(before, self.destination.last_publication_id(), result)

            moved = self.layout.move(path, self.layout.processed_dir)
            logger.info(
                "Paper imported successfully. %s paper XML to the processed folder",
                "Moved" if moved else "Failed to move",
            )
            self.stats.imported += 1
            target.unlink(missing_ok=True)
            return "OK"
        except PaperError as exc:
            logger.error("Failed to process paper %s: %s", path.name, exc)
            if command:
                (self.layout.processing_dir / f"{path.stem}.txt").write_text(shlex.join(command), encoding='utf-8')
                logger.info(
                    "A copy of the XML file, together with its command (.txt extension), was left at %s for debugging purposes",
                    target,
                )
            self.stats.failed += 1
            return f"FAIL: {exc}"
