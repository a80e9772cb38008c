"""
requisition_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files directly.

Architecture position:
    Configuration.  Sits above ``requisition_kernel`` and below
    ``requisition_services``.  The kernel MUST NEVER import from
    ``requisition_config``; ``bridges`` translate configuration into
    kernel objects.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``requisition_config_loaded`` log entry with the config_id, version
    and checksum, tying each workflow run to the configuration that
    governed its SLA deadlines and role checks.
"""

from __future__ import annotations

from pathlib import Path

from requisition_config.loader import load_configuration
from requisition_config.schema import WorkflowConfiguration
from requisition_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | None = None) -> WorkflowConfiguration:
    """The ONLY public configuration entrypoint.

    Args:
        path: Override path to a configuration YAML file.  Defaults to
            ``requisition_config/sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError, KeyError: If the configuration is invalid.
    """
    config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH
    config = load_configuration(config_path)

    _logger.info(
        "requisition_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "timezone": config.calendar.timezone,
            "holidays": len(config.calendar.holidays),
        },
    )
    return config


__all__ = ["WorkflowConfiguration", "get_active_config"]
