"""
Key-path tree store.

The tree is a nested JSON-like document addressed by slash-separated
paths. Empty objects do not exist: deleting the last child of a node
removes the node. Every mutation goes through `_apply`, which receives
a mapping of absolute path to new value (None deletes) and must apply
it atomically.

Two backends:
    MemoryTreeStore  nested dicts, used for tests and ephemeral runs
    SqlTreeStore     one row per scalar leaf (SQLAlchemy async)
"""

import asyncio
import copy
import inspect
import secrets
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple, Union

from sqlalchemy import delete, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import StorageError
from app.core.logging_config import logger
from app.db.paths import PathLike, split_path, to_path
from app.models.tree_node import TreeNode


ChangeCallback = Callable[[Any], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Exception], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


# ============================================
# Push keys
# ============================================

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class PushKeyGenerator:
    """
    20-char keys: 8 chars of millisecond timestamp followed by 12 random
    chars. Keys generated in the same millisecond increment the random
    part so lexicographic order equals creation order.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last_ms = -1
        self._last_rand: List[int] = [0] * 12

    def __call__(self) -> str:
        now_ms = int(self._clock() * 1000)
        duplicate = now_ms == self._last_ms
        self._last_ms = now_ms

        ts_chars = []
        value = now_ms
        for _ in range(8):
            ts_chars.append(PUSH_CHARS[value % 64])
            value //= 64
        ts_chars.reverse()

        if not duplicate:
            self._last_rand = [secrets.randbelow(64) for _ in range(12)]
        else:
            i = 11
            while i >= 0 and self._last_rand[i] == 63:
                self._last_rand[i] = 0
                i -= 1
            if i >= 0:
                self._last_rand[i] += 1

        return "".join(ts_chars) + "".join(PUSH_CHARS[i] for i in self._last_rand)


# ============================================
# Helpers
# ============================================

def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, dict) and not value)


def _sorted_copy(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _sorted_copy(value[k]) for k in sorted(value)}
    return copy.deepcopy(value)


def _flatten(path: str, value: Any) -> Iterator[Tuple[str, Any]]:
    """Yield (leaf_path, scalar) pairs for a value written at path"""
    if isinstance(value, dict):
        for key, child in value.items():
            if _is_empty(child):
                continue
            if "/" in str(key):
                raise StorageError(f"Invalid key {key!r} under {path}", operation="write")
            yield from _flatten(f"{path}/{key}" if path else str(key), child)
    elif value is not None:
        yield path, value


def _related(a: Tuple[str, ...], b: Tuple[str, ...]) -> bool:
    """True when one path is an ancestor of (or equal to) the other"""
    n = min(len(a), len(b))
    return a[:n] == b[:n]


class _Subscription:
    def __init__(self, path: str, on_change: ChangeCallback, on_error: Optional[ErrorCallback]):
        self.path = path
        self.segments = split_path(path)
        self.on_change = on_change
        self.on_error = on_error
        self.active = True


# ============================================
# Store interface
# ============================================

class TreeStore(ABC):
    """Async key-path store with read/write/update/delete/subscribe"""

    def __init__(self, push_key_generator: Optional[Callable[[], str]] = None):
        self._subscriptions: List[_Subscription] = []
        self._push_key = push_key_generator or PushKeyGenerator()
        self._lock = asyncio.Lock()

    # ---- backend hooks ----

    @abstractmethod
    async def _get(self, path: str) -> Any:
        """Return the value at path (dict for subtrees) or None"""

    @abstractmethod
    async def _apply(self, changes: Dict[str, Any]) -> None:
        """Apply {absolute_path: value_or_None} atomically"""

    async def close(self) -> None:
        pass

    # ---- public API ----

    def push_key(self) -> str:
        return self._push_key()

    async def read(self, path: PathLike) -> Any:
        return await self._get(to_path(path))

    async def exists(self, path: PathLike) -> bool:
        return not _is_empty(await self.read(path))

    async def list_children(self, path: PathLike) -> List[str]:
        value = await self.read(path)
        if not isinstance(value, dict):
            return []
        return sorted(value.keys())

    async def write(self, path: PathLike, value: Any) -> None:
        """Replace the subtree at path"""
        p = to_path(path)
        await self._commit({p: value})

    async def update(self, path: PathLike, values: Dict[str, Any]) -> None:
        """
        Sparse multi-path write. Keys are relative to path and may
        contain '/'; a None value deletes that child. All changes land
        together or not at all.
        """
        base = to_path(path)
        changes = {}
        for rel, value in values.items():
            rel_path = "/".join(split_path(rel))
            if not rel_path:
                raise StorageError("Empty key in update", operation="update")
            changes[f"{base}/{rel_path}" if base else rel_path] = value
        if changes:
            await self._commit(changes)

    async def delete(self, path: PathLike) -> None:
        await self._commit({to_path(path): None})

    async def push(self, path: PathLike, value: Any) -> str:
        """Write value under a fresh push key and return the key"""
        key = self.push_key()
        base = to_path(path)
        await self._commit({f"{base}/{key}": value})
        return key

    async def subscribe(
        self,
        path: PathLike,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """
        Deliver the current value at path now and again after every
        change touching it. Callback failures are routed to on_error
        and never reach the writer.
        """
        sub = _Subscription(to_path(path), on_change, on_error)
        self._subscriptions.append(sub)

        def unsubscribe() -> None:
            sub.active = False
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        await self._deliver(sub)
        return unsubscribe

    # ---- internals ----

    async def _commit(self, changes: Dict[str, Any]) -> None:
        async with self._lock:
            await self._apply(changes)
        await self._notify(changes.keys())

    async def _notify(self, changed_paths) -> None:
        changed = [split_path(p) for p in changed_paths]
        for sub in list(self._subscriptions):
            if sub.active and any(_related(sub.segments, c) for c in changed):
                await self._deliver(sub)

    async def _deliver(self, sub: _Subscription) -> None:
        try:
            value = await self._get(sub.path)
            if not sub.active:
                return
            result = sub.on_change(value)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Subscription error ({sub.path}): {e}")
            if sub.on_error is not None and sub.active:
                try:
                    result = sub.on_error(e)
                    if inspect.isawaitable(result):
                        await result
                except Exception as handler_error:
                    logger.error(f"Subscription error handler failed ({sub.path}): {handler_error}")


# ============================================
# In-memory backend
# ============================================

class MemoryTreeStore(TreeStore):
    """Nested-dict backend"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(**kwargs)
        self._root: Dict[str, Any] = {}
        if initial:
            self._root = copy.deepcopy(initial)

    async def _get(self, path: str) -> Any:
        node: Any = self._root
        for segment in split_path(path):
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return _sorted_copy(node)

    async def _apply(self, changes: Dict[str, Any]) -> None:
        # Apply to a copy so a failure leaves the tree untouched
        root = copy.deepcopy(self._root)
        for path, value in changes.items():
            self._set(root, split_path(path), value)
        self._root = root

    @staticmethod
    def _set(root: Dict[str, Any], segments: Tuple[str, ...], value: Any) -> None:
        if not segments:
            raise StorageError("Refusing to replace the tree root", operation="write")

        if _is_empty(value):
            # Delete and prune empty parents
            trail = []
            node: Any = root
            for segment in segments[:-1]:
                if not isinstance(node, dict) or segment not in node:
                    return
                trail.append((node, segment))
                node = node[segment]
            if isinstance(node, dict):
                node.pop(segments[-1], None)
            for parent, segment in reversed(trail):
                if _is_empty(parent[segment]):
                    del parent[segment]
                else:
                    break
            return

        node = root
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child

        prepared = dict(_flatten("", value)) if isinstance(value, dict) else None
        if prepared is None:
            node[segments[-1]] = copy.deepcopy(value)
            return
        if not prepared:
            node.pop(segments[-1], None)
            return
        subtree: Dict[str, Any] = {}
        for leaf_path, leaf in prepared.items():
            cursor = subtree
            parts = leaf_path.split("/")
            for part in parts[:-1]:
                cursor = cursor.setdefault(part, {})
            cursor[parts[-1]] = copy.deepcopy(leaf)
        node[segments[-1]] = subtree


# ============================================
# SQL backend
# ============================================

class SqlTreeStore(TreeStore):
    """
    Stores each scalar leaf as a TreeNode row keyed by its full path.
    A multi-path change runs in a single transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], **kwargs):
        super().__init__(**kwargs)
        self._session_factory = session_factory

    @staticmethod
    def _subtree_filter(path: str):
        return or_(TreeNode.path == path, TreeNode.path.startswith(f"{path}/", autoescape=True))

    async def _get(self, path: str) -> Any:
        try:
            async with self._session_factory() as session:
                stmt = select(TreeNode.path, TreeNode.value)
                if path:
                    stmt = stmt.where(self._subtree_filter(path))
                rows = (await session.execute(stmt.order_by(TreeNode.path))).all()
        except Exception as e:
            logger.error(f"Tree read failed ({path}): {e}")
            raise StorageError(f"Failed to read {path or '/'}", operation="read") from e

        if not rows:
            return None

        prefix = split_path(path)
        result: Dict[str, Any] = {}
        for row_path, value in rows:
            rel = split_path(row_path)[len(prefix):]
            if not rel:
                return value
            cursor = result
            for part in rel[:-1]:
                cursor = cursor.setdefault(part, {})
            cursor[rel[-1]] = value
        return _sorted_copy(result)

    async def _apply(self, changes: Dict[str, Any]) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    for path, value in changes.items():
                        segments = split_path(path)
                        if not segments:
                            raise StorageError("Refusing to replace the tree root", operation="write")
                        ancestors = ["/".join(segments[:i]) for i in range(1, len(segments))]
                        await session.execute(
                            delete(TreeNode)
                            .where(self._subtree_filter(path))
                            .execution_options(synchronize_session=False)
                        )
                        if _is_empty(value):
                            continue
                        if ancestors:
                            # A scalar ancestor is replaced by the new subtree
                            await session.execute(
                                delete(TreeNode)
                                .where(TreeNode.path.in_(ancestors))
                                .execution_options(synchronize_session=False)
                            )
                        leaves = [
                            {"path": leaf_path, "value": leaf}
                            for leaf_path, leaf in _flatten(path, value)
                        ]
                        if leaves:
                            await session.execute(insert(TreeNode), leaves)
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Tree write failed ({', '.join(changes)}): {e}")
            raise StorageError("Failed to write to the tree store", operation="write") from e
