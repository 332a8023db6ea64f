"""
Interactive git workflows.
"""

from .base import Console, confirm
from .merge_push import MergePushWorkflow
from .sync_push import SyncPushWorkflow
from .authorship import AuthorRewriter, SharedUser, build_env_filter
from .cvs_export import CvsExporter, trees_identical

__all__ = [
    "Console",
    "confirm",
    "MergePushWorkflow",
    "SyncPushWorkflow",
    "AuthorRewriter",
    "SharedUser",
    "build_env_filter",
    "CvsExporter",
    "trees_identical"
]
