"""Impact mapping (subset filtering of classifier output)."""

from .impact import active_template_ids, map_impact

__all__ = ["active_template_ids", "map_impact"]
