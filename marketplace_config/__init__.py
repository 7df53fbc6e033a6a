"""
marketplace_config -- single public entrypoint for marketplace configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a validated, frozen
    ``MarketplaceConfig``.  YAML loading is internal tooling.

Architecture position:
    Configuration -- sits above ``marketplace_kernel``.  The kernel MUST
    NEVER import from ``marketplace_config``; ``bridges`` translates the
    config into the kernel's ``MarketplacePolicy``.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with that name.
    - ``ValueError`` -- parse or validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``marketplace_config_loaded`` log entry with the set name, version and
    checksum.  The same checksum travels into the kernel as the policy's
    ``config_fingerprint``.
"""

from __future__ import annotations

from pathlib import Path

from marketplace_config.loader import load_config_file
from marketplace_config.schema import MarketplaceConfig
from marketplace_config.validator import validate_configuration
from marketplace_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    name: str = "default",
    config_dir: Path | None = None,
) -> MarketplaceConfig:
    """Load, validate and return the configuration set ``name``.

    Args:
        name: Set name; resolves to ``<config_dir>/<name>.yaml``.
        config_dir: Override path to the sets directory.
            Defaults to marketplace_config/sets/.

    Raises:
        FileNotFoundError: If the set does not exist.
        ValueError: If parsing or validation fails.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration set not found: {path}")

    config = load_config_file(path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning(
            "marketplace_config_warning",
            extra={"config_name": config.name, "warning": warning},
        )

    _logger.info(
        "marketplace_config_loaded",
        extra={
            "config_name": config.name,
            "config_version": config.version,
            "checksum": config.checksum,
            "max_rate_variance": str(config.negotiation.max_rate_variance),
        },
    )
    return config


__all__ = ["MarketplaceConfig", "get_active_config"]
