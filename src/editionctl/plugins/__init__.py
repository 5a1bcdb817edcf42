"""Extension layer — plugin system via pluggy.

Discovery: entry_points (pip-installed) and ``.editionctl/plugins/``.
INVARIANT: Plugin failures are warnings, never errors.
"""

from editionctl.plugins.event_bus import EventBus
from editionctl.plugins.manager import PluginManager

__all__ = ["EventBus", "PluginManager"]
