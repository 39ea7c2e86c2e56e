"""データベースのエクスポート/インポート"""

from .exporter import ExportArtifact, create_export, export_database
from .importer import (
    ParsedExport,
    import_database,
    parse_export_file,
    preview_export,
)
from .models import ExportOptions, ImportResult
from .wipe import wipe_database, wipe_projects

__all__ = [
    "ExportArtifact",
    "ExportOptions",
    "ImportResult",
    "ParsedExport",
    "create_export",
    "export_database",
    "import_database",
    "parse_export_file",
    "preview_export",
    "wipe_database",
    "wipe_projects",
]
