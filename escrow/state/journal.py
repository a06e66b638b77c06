"""
escrow.state.journal — journaled key/value state with nested checkpoints.

Every piece of mutable host and contract state (native balances, token balances
and allowances, trade records, dispute-stake flags, the balance-in-use ledger)
lives in one `Journal` under tuple keys such as

    ("native", addr)
    ("token", token_addr, holder)
    ("trade", contract, trade_id)
    ("stake", contract, trade_id, party)
    ("in_use", contract, asset)

Writes go straight to the live mapping; the first write to a key inside a
checkpoint records its prior value in that checkpoint's undo log. `revert()`
replays the undo log, `commit()` folds it into the parent checkpoint (or drops it
at the outermost level). Values must be immutable (ints, bools, bytes, frozen
dataclasses) so the undo log never aliases live objects.

Intended usage
--------------
    j = Journal()
    j.begin()
    j.set(("native", alice), 10)
    j.revert()                      # alice's balance is back to absent
    with j.atomic():
        j.set(("native", bob), 5)   # committed on normal exit, reverted on raise
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterator, List, Mapping, Optional, Tuple

from Crypto.Hash import keccak

Key = Tuple[Hashable, ...]

_MISSING: Any = object()


@dataclass
class _Checkpoint:
    # key -> value before the first write in this checkpoint (_MISSING if absent)
    undo: Dict[Key, Any] = field(default_factory=dict)


class Journal:
    """
    Flat key/value store with a stack of undo checkpoints.

    Parameters
    ----------
    initial:
        Optional starting contents (copied).
    """

    def __init__(self, initial: Optional[Mapping[Key, Any]] = None) -> None:
        self._data: Dict[Key, Any] = dict(initial or {})
        self._stack: List[_Checkpoint] = []

    # ------------------------------------------------------------------ reads

    def get(self, key: Key, default: Any = None) -> Any:
        return self._data.get(key, default)

    def contains(self, key: Key) -> bool:
        return key in self._data

    def items(self, prefix: Tuple[Hashable, ...] = ()) -> Iterator[Tuple[Key, Any]]:
        """Iterate (key, value) pairs whose key starts with `prefix`."""
        n = len(prefix)
        for k, v in list(self._data.items()):
            if k[:n] == prefix:
                yield k, v

    # ----------------------------------------------------------------- writes

    def _remember(self, key: Key) -> None:
        if self._stack:
            undo = self._stack[-1].undo
            if key not in undo:
                undo[key] = self._data.get(key, _MISSING)

    def set(self, key: Key, value: Any) -> None:
        self._remember(key)
        self._data[key] = value

    def delete(self, key: Key) -> None:
        if key not in self._data:
            return
        self._remember(key)
        del self._data[key]

    def add(self, key: Key, delta: int) -> int:
        """Integer read-modify-write; zero results delete the key. Returns the new value."""
        new = int(self._data.get(key, 0)) + int(delta)
        if new < 0:
            raise ValueError(f"journal value for {key!r} would go negative")
        if new == 0:
            self.delete(key)
        else:
            self.set(key, new)
        return new

    # ------------------------------------------------------------ checkpoints

    @property
    def depth(self) -> int:
        return len(self._stack)

    def begin(self) -> int:
        """Open a checkpoint; returns the new depth."""
        self._stack.append(_Checkpoint())
        return len(self._stack)

    def commit(self) -> None:
        """Accept the top checkpoint's writes."""
        if not self._stack:
            raise RuntimeError("commit() without begin()")
        top = self._stack.pop()
        if self._stack:
            parent = self._stack[-1].undo
            for k, prior in top.undo.items():
                parent.setdefault(k, prior)

    def revert(self) -> None:
        """Discard the top checkpoint's writes."""
        if not self._stack:
            raise RuntimeError("revert() without begin()")
        top = self._stack.pop()
        for k, prior in top.undo.items():
            if prior is _MISSING:
                self._data.pop(k, None)
            else:
                self._data[k] = prior

    @contextmanager
    def atomic(self) -> Iterator["Journal"]:
        self.begin()
        try:
            yield self
        except BaseException:
            self.revert()
            raise
        else:
            self.commit()

    # -------------------------------------------------------------- snapshots

    def snapshot(self) -> Dict[Key, Any]:
        """Shallow copy of the live state (values are immutable)."""
        return dict(self._data)

    def root(self) -> bytes:
        """
        Deterministic digest of the live state: keccak256 over the sorted
        repr() of every (key, value) pair. Equal states yield equal roots.
        """
        h = keccak.new(digest_bits=256)
        for line in sorted(repr(kv) for kv in self._data.items()):
            h.update(line.encode("utf-8"))
            h.update(b"\n")
        return h.digest()


__all__ = ["Journal", "Key"]
