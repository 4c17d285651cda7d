#!/usr/bin/env python3
"""
train.py

Train a GPT on a text corpus and save a checkpoint that carries the model
config and the tokenizer, so generation needs nothing else.

Usage:
    python scripts/train.py --data shakespeare --output_dir checkpoints --preset gpt-mini
    python scripts/train.py --data corpus.txt --tokenizer bpe --block_size 128 --max_iters 5000
"""

import argparse
import logging
import os

import torch

from homemade_gpt.config import TrainConfig, load_config, model_preset, MODEL_PRESETS
from homemade_gpt.checkpoint import save_checkpoint
from homemade_gpt.data import load_text, split_ids
from homemade_gpt.generation import generate_text
from homemade_gpt.model import GPT
from homemade_gpt.tokenizer import BPETokenizer, CharTokenizer
from homemade_gpt.trainer import train


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--data", type=str, required=True, help="Dataset preset, URL or text file")
    ap.add_argument("--output_dir", type=str, default="checkpoints")
    ap.add_argument("--tokenizer", type=str, default="char", choices=["char", "bpe"])

    ap.add_argument("--preset", type=str, default="gpt-mini", choices=sorted(MODEL_PRESETS))
    ap.add_argument("--model_config", type=str, default=None, help="JSON ModelConfig, overrides --preset")
    ap.add_argument("--block_size", type=int, default=64)
    ap.add_argument("--dropout", type=float, default=0.1)

    ap.add_argument("--batch_size", type=int, default=32)
    ap.add_argument("--lr", type=float, default=3e-4)
    ap.add_argument("--weight_decay", type=float, default=0.1)
    ap.add_argument("--grad_clip", type=float, default=1.0)
    ap.add_argument("--max_iters", type=int, default=2000)
    ap.add_argument("--eval_interval", type=int, default=200)
    ap.add_argument("--eval_iters", type=int, default=20)
    ap.add_argument("--train_ratio", type=float, default=0.9)

    ap.add_argument("--device", type=str, default="auto")
    ap.add_argument("--seed", type=int, default=1337)
    ap.add_argument("--sample_prompt", type=str, default="\n")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="[%(name)s] %(message)s")
    os.makedirs(args.output_dir, exist_ok=True)
    torch.manual_seed(args.seed)

    text = load_text(args.data)
    tokenizer = CharTokenizer.from_text(text) if args.tokenizer == "char" else BPETokenizer()
    ids = tokenizer.encode(text)
    train_ids, val_ids = split_ids(ids, args.train_ratio)
    print(f"[data] chars={len(text):,} tokens={len(ids):,} vocab={tokenizer.vocab_size}")

    if args.model_config:
        model_config = load_config(args.model_config).check_tokenizer(tokenizer.vocab_size)
    else:
        model_config = model_preset(
            args.preset,
            vocab_size=tokenizer.vocab_size,
            block_size=args.block_size,
            embd_dropout=args.dropout,
            resid_dropout=args.dropout,
            attn_dropout=args.dropout,
        )

    model = GPT(model_config)
    print(f"[model] {model.summary()}")

    train_config = TrainConfig(
        batch_size=args.batch_size,
        learning_rate=args.lr,
        weight_decay=args.weight_decay,
        max_iters=args.max_iters,
        eval_interval=args.eval_interval,
        eval_iters=args.eval_iters,
        grad_clip=args.grad_clip,
        device=args.device,
        seed=args.seed,
    )
    optimizer = model.configure_optimizer(train_config.learning_rate, train_config.weight_decay)
    history = train(model, train_ids, val_ids, train_config, optimizer=optimizer)
    print(f"[train] final train loss {history.train_losses[-1]:.4f} val loss {history.val_losses[-1]:.4f}"
          f" ({history.elapsed:.1f}s)")

    ckpt_path = os.path.join(args.output_dir, "checkpoint_latest.pt")
    save_checkpoint(ckpt_path, model, optimizer, step=history.iters[-1], tokenizer=tokenizer)
    print(f"[save] {ckpt_path}")

    sample = generate_text(model, tokenizer, args.sample_prompt, max_new_tokens=200, do_sample=True, top_k=20)
    print(sample)


if __name__ == "__main__":
    main()
