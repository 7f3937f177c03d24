"""Domain models and ports for the temporal engine."""

from story_timeline.domain.models import SceneNode, flatten_scene_tree
from story_timeline.domain.ports import ManuscriptStore, ManuscriptStoreError, StatusSink

__all__ = [
    "ManuscriptStore",
    "ManuscriptStoreError",
    "SceneNode",
    "StatusSink",
    "flatten_scene_tree",
]
