"""Identity-addressed instance forest, for hierarchical documents such as scene graphs."""

__version__ = "0.1.0"

from .forest import Forest  # noqa: F401
from .instance import Instance, RootedInstance  # noqa: F401
