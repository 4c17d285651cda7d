"""Device selection and release of intermediate tensors / allocator caches."""

import gc
from typing import Iterable, Optional, Union

import torch


def resolve_device(device: Optional[str]) -> torch.device:
    device = (device or "").lower().strip()
    if device in ("auto", ""):
        if torch.cuda.is_available():
            return torch.device("cuda")
        if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
            return torch.device("mps")
        return torch.device("cpu")
    if device in ("cuda", "gpu"):
        return torch.device("cuda" if torch.cuda.is_available() else "cpu")
    if device == "mps":
        if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
            return torch.device("mps")
        return torch.device("cpu")
    if device == "cpu":
        return torch.device("cpu")
    return torch.device(device)


TensorLike = Union[torch.Tensor, Iterable, None]


def dispose(*tensors: TensorLike) -> int:
    """
    Drop the gradients held by the given tensors (or nested lists/tuples of
    them) so the storage can be reclaimed once the caller lets go of its
    references. None entries are skipped.

    Returns the number of tensors released.
    """
    count = 0
    for t in tensors:
        if t is None:
            continue
        if isinstance(t, torch.Tensor):
            if t.is_leaf and t.grad is not None:
                t.grad = None
            count += 1
        elif isinstance(t, (list, tuple, set)):
            count += dispose(*t)
    return count


def free_device_memory(device: Optional[torch.device] = None) -> None:
    gc.collect()
    kind = device.type if device is not None else None
    if kind in (None, "cuda") and torch.cuda.is_available():
        torch.cuda.empty_cache()
    if kind in (None, "mps") and hasattr(torch, "mps") and hasattr(torch.backends, "mps") \
            and torch.backends.mps.is_available():
        torch.mps.empty_cache()
