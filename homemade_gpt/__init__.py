"""
homemade-gpt: a GPT language model (minGPT topology) with training and sampling.
"""

__version__ = "0.1.0"

from .config import ModelConfig, TrainConfig, model_preset, load_config, save_config
from .model import GPT
from .tokenizer import CharTokenizer, BPETokenizer, build_tokenizer
from .generation import generate, generate_text, stream_text
from .trainer import train, estimate_loss, TrainHistory
from .checkpoint import save_checkpoint, load_checkpoint

__all__ = [
    # Model
    "GPT",
    "ModelConfig",
    "TrainConfig",
    "model_preset",
    "load_config",
    "save_config",

    # Tokenizers
    "CharTokenizer",
    "BPETokenizer",
    "build_tokenizer",

    # Sampling
    "generate",
    "generate_text",
    "stream_text",

    # Training / persistence
    "train",
    "estimate_loss",
    "TrainHistory",
    "save_checkpoint",
    "load_checkpoint",
]
