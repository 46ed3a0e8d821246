"""Component-tagged loggers for the device location package.

Every message is prefixed with the emitting component, and with the source
being read when one is bound:

    [DeviceLocationService] Opened /dev/ttyUSB0 @ 4800 baud
    [DeviceLocationService /dev/ttyUSB0 @ 4800 baud] Read error (1/3), ...
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, Optional

LOGGER_NAMESPACE = "device_location"


class StructuredLogger(logging.LoggerAdapter):
    """Logger adapter tagging messages with a component and optional source.

    The tags are also attached to each record as ``component`` and
    ``location_source`` so handlers and filters can select on them.
    """

    def __init__(self, logger: logging.Logger, component: str, source: Optional[str] = None) -> None:
        super().__init__(logger, {"component": component, "location_source": source})

    @property
    def component(self) -> str:
        return self.extra["component"]

    @property
    def source(self) -> Optional[str]:
        return self.extra["location_source"]

    def for_source(self, description: str) -> "StructuredLogger":
        """Same component, bound to one source (e.g. a serial port)."""
        return StructuredLogger(self.logger, self.component, description)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        tag = self.component if not self.source else f"{self.component} {self.source}"
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return f"[{tag}] {msg}", kwargs


def get_module_logger(component: str) -> StructuredLogger:
    """Logger for ``component`` under the ``device_location`` namespace."""
    return StructuredLogger(logging.getLogger(f"{LOGGER_NAMESPACE}.{component}"), component)


__all__ = ["LOGGER_NAMESPACE", "StructuredLogger", "get_module_logger"]
