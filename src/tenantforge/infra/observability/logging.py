"""Structured logging configuration using structlog.

Library modules log through the standard ``logging`` module with
snake_case event names and ``extra=`` context. :func:`configure_logging`
routes those records through the same structlog processor chain as native
structlog loggers, so both end up with:

- JSON output in production, coloured console output elsewhere
- the request correlation id and the active tenant key, bound as
  context variables by the request and tenancy middleware
- sensitive fields (passwords, tokens) redacted

Usage:
    from tenantforge.infra.observability.logging import configure_logging
    configure_logging()

    from tenantforge.infra.observability import get_logger
    logger = get_logger(__name__)
    logger.info("tenant_provisioned", tenant="acme")
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from collections.abc import MutableMapping

Processor = structlog.types.Processor

SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {
        "password",
        "token",
        "authorization",
        "api_key",
        "apikey",
        "secret",
        "credential",
        "database_password",
    }
)

REDACTED_VALUE: str = "***REDACTED***"


class LoggingSettings(BaseSettings):
    """Logging configuration from ``LOG_LEVEL`` and ``ENVIRONMENT``.

    Attributes:
        log_level: Minimum log level to output. Default: INFO
        environment: Environment name; ``production`` switches to JSON.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
        populate_by_name=True,
    )

    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Minimum log level to output",
    )
    environment: str = Field(
        default="development",
        alias="ENVIRONMENT",
        description="Environment name for format selection",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        if isinstance(v, str):
            return v.upper()
        return str(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            msg = f"log_level must be one of {valid_levels}"
            raise ValueError(msg)
        return v

    @property
    def use_json_logs(self) -> bool:
        return self.environment == "production"

    @property
    def log_level_int(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)


class SensitiveDataProcessor:
    """Structlog processor redacting sensitive fields from the event dict.

    A field is sensitive when its name is in :data:`SENSITIVE_FIELDS`
    (case-insensitive) or contains ``password`` or ``token``.

    Example:
        >>> processor = SensitiveDataProcessor()
        >>> processor(None, "info", {"event": "user_copied", "password": "x"})["password"]
        '***REDACTED***'
    """

    def __call__(
        self,
        logger: Any,
        method_name: str,
        event_dict: MutableMapping[str, Any],
    ) -> MutableMapping[str, Any]:
        for key in list(event_dict.keys()):
            if self._is_sensitive(key):
                event_dict[key] = REDACTED_VALUE
        return event_dict

    def _is_sensitive(self, key: str) -> bool:
        key_lower = key.lower()
        if key_lower in SENSITIVE_FIELDS:
            return True
        # Compound names such as user_password or refresh_token
        return "password" in key_lower or "token" in key_lower


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Cached :class:`LoggingSettings`; ``cache_clear()`` it in tests."""
    return LoggingSettings()


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        SensitiveDataProcessor(),
    ]


def _renderer(settings: LoggingSettings) -> Processor:
    if settings.use_json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Configure structlog and bridge the standard library root logger.

    Should be called once during application startup (in the lifespan
    handler). Calling it again replaces the previous configuration.

    Args:
        settings: Optional settings; loaded from the environment when omitted.
    """
    if settings is None:
        settings = get_logging_settings()

    processors: list[Processor] = [
        *_shared_processors(),
        structlog.processors.format_exc_info,
        _renderer(settings),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.log_level_int),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdlib records: copy ``extra=`` into the event dict, then render alike.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            *_shared_processors(),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(settings),
        ],
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(settings.log_level_int)


def get_logger(name: str | None = None) -> structlog.typing.WrappedLogger:
    """Return a structlog logger, bound to ``name`` when given."""
    logger = structlog.get_logger()
    if name is not None:
        logger = logger.bind(logger=name)
    return logger
