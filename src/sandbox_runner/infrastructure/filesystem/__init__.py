"""
Host filesystem helpers.
"""

from .tree_copy import copy_tree, exclusion_filter, mirror_tree, remove_tree

__all__ = ["copy_tree", "exclusion_filter", "mirror_tree", "remove_tree"]
