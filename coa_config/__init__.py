"""
coa_config -- public entrypoint for chart-of-accounts configuration.

Responsibility:
    Loads engine settings and chart templates from YAML configuration
    sets.  Callers obtain settings through ``load_settings()`` and
    templates through ``load_chart_template()``; bridges translate them
    into kernel objects.

Architecture position:
    Configuration.  This package sits above ``coa_kernel``.  The kernel
    MUST NEVER import from ``coa_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``ConfigurationError`` -- invalid YAML or invalid values.
"""

from __future__ import annotations

from pathlib import Path

from coa_config.loader import load_yaml_file, parse_chart_template, parse_settings
from coa_config.schema import ChartTemplate, CoaSettings
from coa_kernel.logging_config import get_logger

logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_SETTINGS_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"
DEFAULT_CHART_PATH = _DEFAULT_CONFIG_DIR / "default_chart.yaml"


def load_settings(path: Path | str | None = None) -> CoaSettings:
    """Load and validate engine settings (default: the bundled default set)."""
    source = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    settings = parse_settings(load_yaml_file(source))
    logger.info(
        "config_loaded",
        extra={
            "config_id": settings.config_id,
            "config_version": settings.version,
            "path": str(source),
        },
    )
    return settings


def load_chart_template(path: Path | str | None = None) -> ChartTemplate:
    """Load and validate a chart template (default: the bundled standard chart)."""
    source = Path(path) if path is not None else DEFAULT_CHART_PATH
    template = parse_chart_template(load_yaml_file(source))
    logger.info(
        "chart_template_loaded",
        extra={
            "template": template.name,
            "template_version": template.version,
            "account_count": len(template.accounts),
        },
    )
    return template


__all__ = [
    "load_settings",
    "load_chart_template",
    "CoaSettings",
    "ChartTemplate",
    "DEFAULT_SETTINGS_PATH",
    "DEFAULT_CHART_PATH",
]
