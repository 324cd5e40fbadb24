# Re-export all models for convenient imports
from app.models.tree_node import TreeNode

__all__ = [
    "TreeNode",
]
