"""Version-control collaborator (shells out to ``git``)."""

from nut.engine.git.client import GitClient
from nut.engine.git.porcelain import TreeStatus, count_changes, parse_ref_listing

__all__ = ["GitClient", "TreeStatus", "count_changes", "parse_ref_listing"]
