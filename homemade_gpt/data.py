from logging import getLogger
from typing import Optional, Sequence, Tuple

import numpy as np
import requests
import torch
from torch.utils.data import Dataset, DataLoader

logger = getLogger(__name__)

DATASET_PRESETS = {
    "shakespeare": "https://raw.githubusercontent.com/karpathy/char-rnn/master/data/tinyshakespeare/input.txt",
}


def load_text(source: str, timeout: float = 60.0) -> str:
    """
    Load a training corpus.

    `source` is a dataset preset name, an http(s) URL or a local file path.
    """
    source = DATASET_PRESETS.get(source, source)
    if source.startswith(("http://", "https://")):
        logger.info(f"Downloading {source}")
        r = requests.get(source, timeout=timeout)
        r.raise_for_status()
        return r.text
    with open(source, "r", encoding="utf-8") as f:
        return f.read()


def split_ids(ids: Sequence[int], train_ratio: float = 0.9) -> Tuple[np.ndarray, np.ndarray]:
    if not 0.0 < train_ratio <= 1.0:
        raise ValueError(f"train_ratio must be in (0, 1], got {train_ratio}")
    arr = np.asarray(ids, dtype=np.int64)
    split_idx = int(train_ratio * len(arr))
    return arr[:split_idx], arr[split_idx:]


# =============== Dataset ===============
class TokenDataset(Dataset):
    """
    Next-token prediction dataset over a flat list of token ids.

      X = ids[i : i+block_size]
      Y = ids[i+1 : i+block_size+1]

    stride < block_size gives overlapping windows.
    """

    def __init__(self, ids: Sequence[int], block_size: int, stride: Optional[int] = None):
        self.ids = np.asarray(ids, dtype=np.int64)
        self.block_size = int(block_size)
        self.stride = int(block_size if stride is None else stride)
        if self.stride <= 0:
            raise ValueError(f"stride must be positive, got {self.stride}")
        if len(self.ids) < self.block_size + 1:
            raise ValueError(
                f"Need at least block_size + 1 = {self.block_size + 1} tokens, got {len(self.ids)}"
            )
        limit = len(self.ids) - (self.block_size + 1) + 1
        self.starts = list(range(0, limit, self.stride))

    def __len__(self) -> int:
        return len(self.starts)

    def __getitem__(self, idx: int) -> Tuple[torch.Tensor, torch.Tensor]:
        i = self.starts[idx]
        chunk = torch.from_numpy(self.ids[i : i + self.block_size + 1])
        return chunk[:-1], chunk[1:]


def spawn_dataloader(
    ids: Sequence[int],
    block_size: int,
    batch_size: int = 4,
    stride: Optional[int] = None,
    shuffle: bool = True,
    drop_last: bool = True,
    num_workers: int = 0,
) -> DataLoader:
    """
    Build a DataLoader over TokenDataset.

    - shuffle=True for training; set False for validation
    - drop_last=True to keep all batches the same size
    """
    dataset = TokenDataset(ids, block_size=block_size, stride=stride)
    return DataLoader(
        dataset,
        batch_size=batch_size,
        shuffle=shuffle,
        drop_last=drop_last,
        num_workers=num_workers,
    )


def get_batch(
    ids: np.ndarray,
    batch_size: int,
    block_size: int,
    device: torch.device = torch.device("cpu"),
    generator: Optional[torch.Generator] = None,
) -> Tuple[torch.Tensor, torch.Tensor]:
    """Sample `batch_size` random contiguous windows; y is x shifted by one token."""
    n = len(ids)
    if n < block_size + 1:
        raise ValueError(f"Need at least block_size + 1 = {block_size + 1} tokens, got {n}")
    data = torch.from_numpy(np.asarray(ids, dtype=np.int64))
    starts = torch.randint(0, n - block_size, (batch_size,), generator=generator)
    x = torch.stack([data[i : i + block_size] for i in starts.tolist()])
    y = torch.stack([data[i + 1 : i + block_size + 1] for i in starts.tolist()])
    return x.to(device), y.to(device)
