r"""myceliumchat -- Session and synchronization core of a Mycelium/Matrix chat client.

Reaches chat rooms either directly through the origin Matrix server or
through a Mycelium overlay bridge, choosing per session based on whether the
local overlay daemon answers.

Imports flow strictly downward:

```text
            client / __main__    Composition root and CLI
                    |
                services         Overlay monitor, mode, session, rooms, timeline
               /         \
          clients       utils    Gateway, overlay daemon, Matrix handle
               \         /
                  core           Logging, exceptions, config, metrics, BaseService
                    |
                 models          Pure frozen dataclasses (zero I/O)
```

Note:
    Top-level imports (``from myceliumchat import ChatClient``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("myceliumchat")

__all__ = [
    "BaseService",
    "ChatClient",
    "ClientConfig",
    "ConnectionMode",
    "ConnectionModeSelector",
    "GatewayClient",
    "Logger",
    "MatrixHandle",
    "MessageRecord",
    "NetworkHealth",
    "OverlayMonitor",
    "OverlayStatus",
    "RoomRecord",
    "RoomRegistry",
    "Session",
    "SessionManager",
    "TimelineSynchronizer",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("myceliumchat.core", "BaseService"),
    "Logger": ("myceliumchat.core", "Logger"),
    "ConnectionMode": ("myceliumchat.models", "ConnectionMode"),
    "MessageRecord": ("myceliumchat.models", "MessageRecord"),
    "NetworkHealth": ("myceliumchat.models", "NetworkHealth"),
    "OverlayStatus": ("myceliumchat.models", "OverlayStatus"),
    "RoomRecord": ("myceliumchat.models", "RoomRecord"),
    "Session": ("myceliumchat.models", "Session"),
    "GatewayClient": ("myceliumchat.clients", "GatewayClient"),
    "MatrixHandle": ("myceliumchat.clients", "MatrixHandle"),
    "ConnectionModeSelector": ("myceliumchat.services", "ConnectionModeSelector"),
    "OverlayMonitor": ("myceliumchat.services", "OverlayMonitor"),
    "RoomRegistry": ("myceliumchat.services", "RoomRegistry"),
    "SessionManager": ("myceliumchat.services", "SessionManager"),
    "TimelineSynchronizer": ("myceliumchat.services", "TimelineSynchronizer"),
    "ChatClient": ("myceliumchat.client", "ChatClient"),
    "ClientConfig": ("myceliumchat.client", "ClientConfig"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'myceliumchat' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
