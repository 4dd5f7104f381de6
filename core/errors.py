"""Exception taxonomy for the export and import runs."""
from __future__ import annotations

from typing import Dict, List


class ConfigurationError(Exception):
    """Fatal precondition failure. The message is the remediation shown to the operator."""


class MissingEntitiesError(ConfigurationError):
    """Destination entities that could not be matched nor created at the current force level."""

    def __init__(self, entity_class: str, missing: Dict[str, List[str]], required_level: int, remediation: str = ""):
        self.entity_class = entity_class
        self.missing = missing
        self.required_level = required_level
        lines = [f"The following {entity_class} were not found:"]
        for owner, items in missing.items():
            if owner:
                lines.append("")
                lines.append(f"Journal \"{owner}\"")
            lines.extend(items)
        lines.append("")
        lines.append("You have these options:")
        lines.append(f"- Map the non-existent values to existing {entity_class} at the metadata.json file.")
        lines.append(
            f"- Let this tool create the missing {entity_class} by re-running with the force level {required_level}, "
            "you might review/modify the data used to create them at the metadata.json file."
        )
        lines.append(f"- Remove the {entity_class} from the metadata.json, this will cause the related papers to be skipped.")
        if remediation:
            lines.append(remediation)
        super().__init__("\n".join(lines))


class BatchMissingError(ConfigurationError):
    """Several entity classes missing at once (issues and sections are checked together)."""

    def __init__(self, errors: List[MissingEntitiesError]):
        self.errors = errors
        super().__init__("\n\n".join(str(e) for e in errors))


class PaperError(Exception):
    """Per-paper failure; counted and the run continues."""


class ReplayError(PaperError):
    """The destination import command failed or its effect could not be verified."""
