"""Per-identity profile data the analysis reads: social connections and saved competitors."""

from .connections import SocialConnectionRegistry
from .competitors import SavedCompetitorStore

__all__ = ["SocialConnectionRegistry", "SavedCompetitorStore"]
