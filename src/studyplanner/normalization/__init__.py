"""Input normalization."""

from .config_resolver import DEFAULT_SCHEDULER_CONFIG, resolve_effective_config
from .preferences import migrate_preferences
from .request import normalize_request

__all__ = ["DEFAULT_SCHEDULER_CONFIG", "migrate_preferences", "normalize_request", "resolve_effective_config"]
