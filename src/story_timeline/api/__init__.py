"""Public API surface for HTTP serving and Python-first interfaces."""

from story_timeline.api.app import create_app
from story_timeline.api.contracts import (
    ManuscriptDocument,
    ManuscriptScene,
    load_manuscript_json,
    save_manuscript_json,
)
from story_timeline.api.python_interface import TimelineApiClient

__all__ = [
    "ManuscriptDocument",
    "ManuscriptScene",
    "TimelineApiClient",
    "create_app",
    "load_manuscript_json",
    "save_manuscript_json",
]
