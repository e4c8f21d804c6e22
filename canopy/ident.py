"""Instance identifiers."""

__all__ = ["new_unique"]

from unpythonic import gensym

from .config import forest_config

def new_unique() -> str:
    """Return a fresh instance ID, unique for the lifetime of the process.

    The ID is a string, for easy hashing and JSON-ability.
    """
    return str(gensym(forest_config.node_id_prefix))
