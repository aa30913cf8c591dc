"""Importers for knowledge-base export formats."""

from .base import BaseImporter
from .logseq_json import LogseqJSONImporter
from .roam_edn import RoamEDNImporter

IMPORTERS = {
    "logseq": LogseqJSONImporter,
    "roam": RoamEDNImporter,
}

__all__ = ["BaseImporter", "LogseqJSONImporter", "RoamEDNImporter", "IMPORTERS"]
