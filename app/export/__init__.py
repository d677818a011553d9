"""Export — Radiance HDR and OpenEXR encoders, settings .json and the export boundary."""

from app.export.env_export import EnvMapExporter
from app.export.openexr import ExrExporter
from app.export.radiance_hdr import HdrExporter
from app.export.settings_json import SettingsJsonExporter

__all__ = [
    "EnvMapExporter",
    "ExrExporter",
    "HdrExporter",
    "SettingsJsonExporter",
]
