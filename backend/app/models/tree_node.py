from sqlalchemy import Column, String, JSON, DateTime
from datetime import datetime

from app.core.database import Base


class TreeNode(Base):
    """
    One scalar leaf of the key-path tree.

    A subtree is the set of rows whose path equals the subtree path
    or starts with it followed by '/'.
    """
    __tablename__ = "tree_nodes"

    path = Column(String(1024), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<TreeNode {self.path}={self.value!r}>"
