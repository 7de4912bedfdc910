"""
Core layer: logging, errors, configuration loading, metrics, service lifecycle.

- Logger: Structured key=value / JSON logging
- MyceliumChatError: Root of the exception hierarchy
- load_yaml: Safe YAML loading for pydantic configs
- BaseService: Generic base for periodic services with typed config
- MetricsServer: Prometheus ``/metrics`` endpoint

Example:
    from myceliumchat.core import BaseService, Logger

    logger = Logger("overlay")
    logger.info("overlay_polled", detected=True, peers=4)
"""

from .base_service import (
    BaseService,
    BaseServiceConfig,
    ConfigT,
    ServiceHandle,
)
from .exceptions import (
    AuthError,
    ConfigurationError,
    ConflictError,
    DegradedSyncError,
    LoginInProgressError,
    MyceliumChatError,
    ProtocolClientError,
    SessionError,
    TransportError,
)
from .logger import Logger, StructuredFormatter
from .metrics import MetricsConfig, MetricsServer, start_metrics_server
from .yaml import load_yaml


__all__ = [
    "AuthError",
    "BaseService",
    "BaseServiceConfig",
    "ConfigT",
    "ConfigurationError",
    "ConflictError",
    "DegradedSyncError",
    "Logger",
    "LoginInProgressError",
    "MetricsConfig",
    "MetricsServer",
    "MyceliumChatError",
    "ProtocolClientError",
    "ServiceHandle",
    "SessionError",
    "StructuredFormatter",
    "TransportError",
    "load_yaml",
    "start_metrics_server",
]
