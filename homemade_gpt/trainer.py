# trainer.py
"""
Training loop for the GPT model.

Random contiguous batches are drawn from flat token-id arrays (nanoGPT
style), the model is optimised with AdamW, and train/val losses are
estimated every `eval_interval` iterations.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from logging import getLogger
from typing import Callable, Dict, List, Optional

import numpy as np
import torch
from tqdm import tqdm

from .config import TrainConfig
from .data import get_batch
from .memory import dispose, free_device_memory, resolve_device
from .model import GPT

logger = getLogger(__name__)


@dataclass
class TrainHistory:
    iters: List[int] = field(default_factory=list)
    train_losses: List[float] = field(default_factory=list)
    val_losses: List[float] = field(default_factory=list)
    tokens_seen: List[int] = field(default_factory=list)
    elapsed: float = 0.0


OnEval = Callable[[int, Dict[str, float]], Optional[bool]]


@torch.no_grad()
def estimate_loss(
    model: GPT,
    splits: Dict[str, np.ndarray],
    eval_iters: int,
    batch_size: int,
    device: torch.device,
    generator: Optional[torch.Generator] = None,
) -> Dict[str, float]:
    """Mean loss over `eval_iters` random batches per split. Too-short splits give nan."""
    was_training = model.training
    model.eval()
    out = {}
    for name, ids in splits.items():
        if ids is None or len(ids) < model.block_size + 1:
            out[name] = float("nan")
            continue
        losses = torch.zeros(eval_iters)
        for k in range(eval_iters):
            x, y = get_batch(ids, batch_size, model.block_size, device, generator)
            _, loss = model(x, y)
            losses[k] = loss.item()
        out[name] = losses.mean().item()
    if was_training:
        model.train()
    return out


def train(
    model: GPT,
    train_ids: np.ndarray,
    val_ids: Optional[np.ndarray],
    config: TrainConfig,
    optimizer: Optional[torch.optim.Optimizer] = None,
    on_eval: Optional[OnEval] = None,
    progress: bool = True,
) -> TrainHistory:
    """
    Train `model` for `config.max_iters` iterations.

    `on_eval(iter, losses)` is called after each evaluation; returning False
    stops training early.
    """
    config.validate()
    device = resolve_device(config.device)
    model.to(device)
    if optimizer is None:
        optimizer = model.configure_optimizer(config.learning_rate, config.weight_decay)

    generator = torch.Generator().manual_seed(config.seed)
    eval_generator = torch.Generator().manual_seed(config.seed + 1)
    splits = {"train": train_ids, "val": val_ids}

    tokens_per_iter = config.batch_size * model.block_size
    logger.info(
        f"Training {model.num_params():,} params on {device}: "
        f"{config.max_iters} iters, {tokens_per_iter:,} tokens/iter"
    )

    history = TrainHistory()
    t0 = time.time()
    model.train()

    pbar = tqdm(range(config.max_iters), dynamic_ncols=True, disable=not progress)
    for it in pbar:
        x, y = get_batch(train_ids, config.batch_size, model.block_size, device, generator)
        _, loss = model(x, y)

        loss_val = loss.item()
        if not math.isfinite(loss_val):
            raise RuntimeError(f"Loss became {loss_val} at iteration {it}")

        optimizer.zero_grad(set_to_none=True)
        loss.backward()
        if config.grad_clip and config.grad_clip > 0:
            torch.nn.utils.clip_grad_norm_(model.parameters(), config.grad_clip)
        optimizer.step()
        del x, y, loss
        pbar.set_description(f"iter {it + 1}/{config.max_iters} loss {loss_val:.4f}")

        last = it + 1 == config.max_iters
        if (it + 1) % config.eval_interval == 0 or last:
            losses = estimate_loss(model, splits, config.eval_iters, config.batch_size, device, eval_generator)
            history.iters.append(it + 1)
            history.train_losses.append(losses["train"])
            history.val_losses.append(losses["val"])
            history.tokens_seen.append((it + 1) * tokens_per_iter)
            logger.info(f"iter {it + 1}: train loss {losses['train']:.4f}, val loss {losses['val']:.4f}")

            if on_eval is not None and on_eval(it + 1, losses) is False:
                logger.info(f"Stopping early at iteration {it + 1}")
                break

    history.elapsed = time.time() - t0
    model.eval()
    # gradients of the last step are no longer needed once training is over
    dispose(list(model.parameters()))
    free_device_memory(device)
    return history
