"""
silver_config -- single public entrypoint for billing configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``BillingConfig``.

Architecture position:
    Configuration -- sits above ``silver_kernel``.  The kernel MUST NEVER
    import from ``silver_config``; ``silver_config.bridges`` translates a
    BillingConfig into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- malformed configuration.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SILVER_CONFIG_TRACE`` log entry with the checksum of the file that
    governs voucher numbering, balance strategies and tax defaults.
"""

from __future__ import annotations

import logging
from pathlib import Path

from silver_config.loader import load_yaml_file, parse_config
from silver_config.schema import BillingConfig

_logger = logging.getLogger("silver_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> BillingConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        KeyError: If a required key is missing.
        ValueError: If a value is invalid.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(path))

    _logger.info(
        "SILVER_CONFIG_TRACE",
        extra={
            "trace_type": "SILVER_CONFIG_TRACE",
            "config_path": str(path),
            "checksum": config.checksum,
            "channels": [channel.name for channel in config.channels],
            "max_voucher_sequence": config.voucher.max_sequence,
            "timezone": config.voucher.timezone,
        },
    )
    return config


__all__ = ["BillingConfig", "DEFAULT_CONFIG_PATH", "get_active_config"]
