"""On-disk layout of the intermediate artifact shared by the export and import runs."""
from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"
PAPERS_DIR = "papers"
PROCESSING_DIR = "processing-papers"
PROCESSED_DIR = "processed-papers"
SKIPPED_DIR = "skipped-papers"


@dataclass(frozen=True)
class PaperKey:
    """Cross references encoded in a template filename."""

    organization_id: str
    issue_id: str
    section_id: str
    paper_id: str

    @property
    def filename(self) -> str:
        return f"{self.organization_id}-{self.issue_id}-{self.section_id}-{self.paper_id}.xml"

    @classmethod
    def build(cls, organization_id: Any, issue_id: Any, section_id: Any, paper_id: Any) -> "PaperKey":
        return cls(str(organization_id), str(issue_id), '' if section_id is None else str(section_id), str(paper_id))

    @classmethod
    def parse(cls, filename: str) -> "PaperKey":
        stem = filename[:-4] if filename.endswith(".xml") else filename
        parts = stem.split("-")
        if len(parts) != 4 or not all(parts[i] for i in (0, 1, 3)):
            raise ValueError(f"Unexpected paper filename \"{filename}\"")
        return cls(*parts)


class ArtifactLayout:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    @property
    def metadata_path(self) -> Path:
        return self.root / METADATA_FILE

    @property
    def papers_dir(self) -> Path:
        return self.root / PAPERS_DIR

    @property
    def processing_dir(self) -> Path:
        return self.root / PROCESSING_DIR

    @property
    def processed_dir(self) -> Path:
        return self.root / PROCESSED_DIR

    @property
    def skipped_dir(self) -> Path:
        return self.root / SKIPPED_DIR

    def write_metadata(self, metadata: Dict[str, Any]) -> Path:
        path = self.metadata_path
        path.write_text(json.dumps(metadata, ensure_ascii=False, indent=4), encoding='utf-8')
        return path

    def read_metadata(self) -> Dict[str, Any]:
        return json.loads(self.metadata_path.read_text(encoding='utf-8'))

    def ensure_import_dirs(self) -> None:
        for folder in (self.processing_dir, self.processed_dir, self.skipped_dir):
            logger.info("Creating/checking the folder %s", folder)
            folder.mkdir(parents=True, exist_ok=True)

    def pending_papers(self) -> List[Path]:
        if not self.papers_dir.is_dir():
            return []
        return sorted(p for p in self.papers_dir.iterdir() if p.is_file() and p.suffix == ".xml")

    @staticmethod
    def move(path: Path, folder: Path) -> Optional[Path]:
        """Move a file into ``folder``; failures are logged and not retried."""
        target = folder / path.name
        try:
            shutil.move(str(path), str(target))
            return target
        except OSError as exc:
            logger.error("Failed to move %s to %s: %s", path, folder, exc)
            return None
