"""Configuration for canopy.

Settings are read at call time, so they can be changed at runtime, e.g. in a test or at app startup.
"""

from unpythonic.env import env

forest_config = env(  # ----------------------------------------
                    # Identifiers
                    node_id_prefix="instance",  # Name given to `unpythonic.gensym` when minting a fresh instance ID.
                    # ----------------------------------------
                    # Traversal
                    #   "stack": depth first, last child visited before its earlier siblings (default, historical behavior).
                    #   "document": depth first, children visited in child-list order.
                    descendants_order="stack",
                    # ----------------------------------------
                    # Serialization
                    validate_on_load=True,  # Check the forest invariants when rebuilding a forest from a snapshot.
                    )
