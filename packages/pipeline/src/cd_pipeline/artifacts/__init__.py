from .models import Artifact
from .store import ArtifactStore, match_patterns

__all__ = ["Artifact", "ArtifactStore", "match_patterns"]
