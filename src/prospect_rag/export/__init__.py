"""Export layer — CSV output of the scored corpus."""

from prospect_rag.export.csv_export import CSVExporter

__all__ = ["CSVExporter"]
