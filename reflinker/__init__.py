"""
REFLINKER - autolink detection and rendering.

Recognizes issue / pull-request references ("#1234", "JIRA-42") in commit
messages and branch names, and rewrites text with rendered links.
"""

from reflinker.identity import __version__
from reflinker.autolinks import Autolinks
from reflinker.models import (
    Autolink,
    AutolinkReference,
    DynamicReference,
    OutputFormat,
    Pending,
    Ready,
    RefSet,
)

__all__ = [
    "__version__",
    "Autolink",
    "AutolinkReference",
    "Autolinks",
    "DynamicReference",
    "OutputFormat",
    "Pending",
    "Ready",
    "RefSet",
]
