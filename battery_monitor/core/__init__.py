from battery_monitor.core.config import settings
from battery_monitor.core.logging import get_logger

__all__ = ["settings", "get_logger"]
