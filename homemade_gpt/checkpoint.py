from dataclasses import asdict
from logging import getLogger
from typing import Any, Dict, Optional, Tuple

import torch

from .config import ModelConfig, config_from_dict
from .model import GPT
from .tokenizer import build_tokenizer

logger = getLogger(__name__)


def save_checkpoint(
    path: str,
    model: GPT,
    optimizer: Optional[torch.optim.Optimizer] = None,
    step: int = 0,
    tokenizer=None,
) -> None:
    ckpt = {
        "step": step,
        "model_state": model.state_dict(),
        "optim_state": optimizer.state_dict() if optimizer is not None else None,
        "model_args": asdict(model.config),  # dict, not pickled dataclass
        "tokenizer": tokenizer.to_dict() if tokenizer is not None else None,
    }
    torch.save(ckpt, path)
    logger.info(f"Saved checkpoint to {path} (step {step})")


def _extract_state_dict(ckpt: Any) -> Tuple[Dict[str, torch.Tensor], Dict[str, Any]]:
    """
    Supports the wrapped checkpoint formats:
      { "model_state": state_dict, "model_args": {...}, ... }
      { "model_state_dict" | "model" | "state_dict": state_dict, ... }
    Returns: (state_dict, model_args_dict)
    """
    if not isinstance(ckpt, dict):
        raise ValueError("Checkpoint must be a dict.")

    model_args = ckpt.get("model_args")
    if not isinstance(model_args, dict):
        raise ValueError("Checkpoint has no 'model_args'; cannot rebuild the model.")

    for key in ("model_state", "model_state_dict", "model", "state_dict"):
        if key in ckpt and isinstance(ckpt[key], dict):
            return ckpt[key], model_args

    raise KeyError("Could not find model weights in checkpoint (tried: model_state, model_state_dict, model, state_dict).")


def load_checkpoint(path: str, device: torch.device = torch.device("cpu")) -> Tuple[GPT, Dict[str, Any]]:
    """
    Rebuild a GPT from a checkpoint written by save_checkpoint.

    Returns the model (on `device`, eval mode) and a payload dict with
    `step`, `optim_state` and `tokenizer` (a tokenizer object or None).
    """
    ckpt = torch.load(path, map_location="cpu", weights_only=False)
    state, model_args = _extract_state_dict(ckpt)

    config = config_from_dict(ModelConfig, model_args)
    model = GPT(config)
    model.load_state_dict(state, strict=True)
    model.to(device)
    model.eval()

    tok = ckpt.get("tokenizer")
    payload = {
        "step": int(ckpt.get("step", 0)),
        "optim_state": ckpt.get("optim_state"),
        "tokenizer": build_tokenizer(tok) if tok else None,
    }
    logger.info(f"Loaded checkpoint {path} (step {payload['step']}, {model.num_params():,} params)")
    return model, payload
