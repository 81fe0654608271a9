"""
Process-pool helpers shared by the restart trainer and the cross-validator.

Read-only training arrays are copied once into shared memory; workers attach
to them zero-copy. With a single worker everything runs in-process on the
original arrays.
"""

from __future__ import annotations

import sys
from concurrent.futures import ProcessPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from multiprocessing import cpu_count, shared_memory
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

__all__ = ["effective_workers", "shared_arrays", "attached", "run_tasks"]


@dataclass(frozen=True)
class _ShmRef:
    name: str
    shape: Tuple[int, ...]
    dtype: str


def effective_workers(n_jobs: Optional[int], n_tasks: int) -> int:
    """Pool size: ``None``/-1 means all cores but one, never more than tasks."""
    if n_jobs in (None, -1):
        n_jobs = max(1, cpu_count() - 1)
    return max(1, min(int(n_jobs), int(n_tasks)))


def _open_block(name: str) -> shared_memory.SharedMemory:
    # attaching processes must not unlink blocks owned by the parent
    if sys.version_info >= (3, 13):
        return shared_memory.SharedMemory(name=name, track=False)
    return shared_memory.SharedMemory(name=name)


@contextmanager
def shared_arrays(arrays: Mapping[str, np.ndarray], enabled: bool = True) -> Iterator[Dict[str, object]]:
    """Yield picklable references to ``arrays`` placed in shared memory."""
    if not enabled:
        yield dict(arrays)
        return

    blocks: List[shared_memory.SharedMemory] = []
    refs: Dict[str, object] = {}
    try:
        for key, arr in arrays.items():
            arr = np.ascontiguousarray(arr)
            shm = shared_memory.SharedMemory(create=True, size=max(arr.nbytes, 1))
            blocks.append(shm)
            view = np.ndarray(arr.shape, dtype=arr.dtype, buffer=shm.buf)
            view[...] = arr
            del view
            refs[key] = _ShmRef(shm.name, tuple(arr.shape), arr.dtype.str)
        yield refs
    finally:
        for shm in blocks:
            shm.close()
            shm.unlink()


@contextmanager
def attached(data: Mapping[str, object]) -> Iterator[Dict[str, np.ndarray]]:
    """Resolve references from :func:`shared_arrays` into arrays."""
    handles: List[shared_memory.SharedMemory] = []
    out: Dict[str, np.ndarray] = {}
    try:
        for key, value in data.items():
            if isinstance(value, _ShmRef):
                shm = _open_block(value.name)
                handles.append(shm)
                out[key] = np.ndarray(value.shape, dtype=np.dtype(value.dtype), buffer=shm.buf)
            else:
                out[key] = value
        yield out
    finally:
        out.clear()
        for shm in handles:
            shm.close()


def run_tasks(worker: Callable, args_list: Sequence[tuple], n_jobs: Optional[int]) -> list:
    """Map ``worker`` over ``args_list``, in a process pool when it pays off."""
    max_workers = effective_workers(n_jobs, len(args_list))
    if max_workers == 1:
        return [worker(a) for a in args_list]
    with ProcessPoolExecutor(max_workers=max_workers) as ex:
        return list(ex.map(worker, args_list))
