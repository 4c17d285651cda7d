# config.py
"""
Model and training configuration for the GPT language model.

Configs are plain dataclasses so they can be stored inside checkpoints as
dicts (no pickled classes) and loaded back from JSON files.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict


# =============================================================================
# Model
# =============================================================================

@dataclass
class ModelConfig:
    n_layer: int = 6
    n_head: int = 6
    n_embd: int = 192
    vocab_size: int = 65
    block_size: int = 64
    embd_dropout: float = 0.1
    resid_dropout: float = 0.1
    attn_dropout: float = 0.1
    bias: bool = True
    # "fused" runs all heads in one batched matmul, "heads" runs them one by one
    attention: str = "fused"

    @property
    def head_size(self) -> int:
        return self.n_embd // self.n_head

    def validate(self) -> "ModelConfig":
        for name in ("n_layer", "n_head", "n_embd", "vocab_size", "block_size"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.n_embd % self.n_head != 0:
            raise ValueError(
                f"Cannot calculate head size: n_embd ({self.n_embd}) must be divisible by n_head ({self.n_head})"
            )
        for name in ("embd_dropout", "resid_dropout", "attn_dropout"):
            rate = getattr(self, name)
            if not 0.0 <= rate < 1.0:
                raise ValueError(f"{name} must be in [0, 1), got {rate}")
        if self.attention not in ("fused", "heads"):
            raise ValueError(f"attention must be 'fused' or 'heads', got {self.attention!r}")
        return self

    def check_tokenizer(self, vocab_size: int) -> "ModelConfig":
        # every token id the tokenizer can produce needs an embedding row
        if self.vocab_size < vocab_size:
            raise ValueError(f"model vocab_size {self.vocab_size} < tokenizer vocab_size {vocab_size}")
        return self


# Layer/head/width presets from minGPT
MODEL_PRESETS: Dict[str, Dict[str, int]] = {
    "gpt-pico": dict(n_layer=1, n_head=1, n_embd=16),
    "gpt-nano": dict(n_layer=3, n_head=3, n_embd=48),
    "gpt-micro": dict(n_layer=4, n_head=4, n_embd=128),
    "gpt-mini": dict(n_layer=6, n_head=6, n_embd=192),
    "gopher-44m": dict(n_layer=8, n_head=16, n_embd=512),
    "gpt2": dict(n_layer=12, n_head=12, n_embd=768),
}


def model_preset(name: str, vocab_size: int, block_size: int, **overrides: Any) -> ModelConfig:
    if name not in MODEL_PRESETS:
        raise ValueError(f"Unknown model preset {name!r}, expected one of {sorted(MODEL_PRESETS)}")
    params = dict(MODEL_PRESETS[name], vocab_size=vocab_size, block_size=block_size)
    params.update(overrides)
    return ModelConfig(**params).validate()


# =============================================================================
# Training
# =============================================================================

@dataclass
class TrainConfig:
    batch_size: int = 32
    learning_rate: float = 3e-4
    weight_decay: float = 0.1
    max_iters: int = 2000
    eval_interval: int = 200
    eval_iters: int = 20
    grad_clip: float = 1.0
    device: str = "auto"
    seed: int = 1337

    def validate(self) -> "TrainConfig":
        for name in ("batch_size", "max_iters", "eval_interval", "eval_iters"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.learning_rate <= 0:
            raise ValueError(f"learning_rate must be positive, got {self.learning_rate}")
        return self


# =============================================================================
# JSON helpers
# =============================================================================

def config_from_dict(cls, data: Dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**data)


def load_config(path: str, cls=ModelConfig):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    config = config_from_dict(cls, data)
    return config.validate()


def save_config(config, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(config), f, indent=2)
