#!/usr/bin/env python3
"""
generation.py

Autoregressive sampling from a GPT model: temperature, top-k, greedy or
multinomial decoding, optional streaming callback.

Usage (CLI):
  python -m homemade_gpt.generation --ckpt checkpoints/shakespeare.pt --prompt "ROMEO:" --sample --top_k 20
"""

from __future__ import annotations

import argparse
from typing import Callable, Iterator, Optional, Tuple

import torch
import torch.nn.functional as F

from .memory import free_device_memory, resolve_device

OnToken = Callable[[int], None]


def filter_top_k(logits: torch.Tensor, top_k: int) -> torch.Tensor:
    """Keep logits >= the k-th largest per row, set the rest to -inf."""
    k = min(int(top_k), logits.size(-1))
    if k <= 0:
        raise ValueError(f"top_k must be positive, got {top_k}")
    top_logits, _ = torch.topk(logits, k)
    min_val = top_logits[:, -1].unsqueeze(-1)
    return torch.where(logits < min_val, torch.full_like(logits, float("-inf")), logits)


def sampling_device(
    probs_device: torch.device, generator: Optional[torch.Generator] = None
) -> torch.device:
    """
    Device `torch.multinomial` should run on for probabilities living on
    `probs_device`.

    multinomial on the mps backend has returned out-of-range ids on some torch
    releases, so mps probabilities are sampled on CPU. A generator pins the
    draw to the generator's device.
    """
    if generator is not None:
        return generator.device
    if probs_device.type == "mps":
        return torch.device("cpu")
    return probs_device


def sample_next(
    probs: torch.Tensor, generator: Optional[torch.Generator] = None
) -> torch.Tensor:
    """Draw one token id per row from `probs` (B, V) -> (B, 1)."""
    device = sampling_device(probs.device, generator)
    if device != probs.device:
        idx_next = torch.multinomial(probs.to(device), num_samples=1, generator=generator)
        return idx_next.to(probs.device)
    return torch.multinomial(probs, num_samples=1, generator=generator)


@torch.no_grad()
def iter_tokens(
    model,
    idx: torch.Tensor,
    max_new_tokens: int,
    temperature: float = 1.0,
    do_sample: bool = False,
    top_k: Optional[int] = None,
    eos_id: Optional[int] = None,
    generator: Optional[torch.Generator] = None,
) -> Iterator[Tuple[torch.Tensor, torch.Tensor]]:
    """
    Yield `(idx, idx_next)` after every generated token, where `idx` is the
    running sequence (B, T+1) already containing `idx_next` (B, 1).

    With `eos_id` set, generation stops once every row has produced it at
    least once; rows that finished earlier keep decoding until then.
    """
    if temperature <= 0:
        raise ValueError(f"temperature must be positive, got {temperature}")
    if max_new_tokens < 0:
        raise ValueError(f"max_new_tokens must be >= 0, got {max_new_tokens}")

    model.eval()
    block_size = model.block_size
    device = next(model.parameters()).device
    idx = idx.to(device)
    done = torch.zeros(idx.size(0), dtype=torch.bool, device=device)

    try:
        for _ in range(max_new_tokens):
            # if the sequence context is growing too long we must crop it at block_size
            idx_cond = idx if idx.size(1) <= block_size else idx[:, -block_size:]
            logits, _ = model(idx_cond)
            logits = logits[:, -1, :] / temperature  # (B, V)

            if top_k is not None:
                logits = filter_top_k(logits, top_k)

            probs = F.softmax(logits, dim=-1)
            if do_sample:
                idx_next = sample_next(probs, generator=generator)
            else:
                idx_next = torch.argmax(probs, dim=-1, keepdim=True)
            del idx_cond, logits, probs

            idx = torch.cat((idx, idx_next), dim=1)
            yield idx, idx_next

            if eos_id is not None:
                done |= idx_next.squeeze(-1) == eos_id
                if done.all():
                    break
    finally:
        free_device_memory(device)


def generate(
    model,
    idx: torch.Tensor,
    max_new_tokens: int,
    temperature: float = 1.0,
    do_sample: bool = False,
    top_k: Optional[int] = None,
    eos_id: Optional[int] = None,
    on_token: Optional[OnToken] = None,
    generator: Optional[torch.Generator] = None,
) -> torch.Tensor:
    """
    Take a conditioning sequence of indices idx (LongTensor of shape (B, T)) and
    complete it max_new_tokens times, feeding the predictions back into the
    model each time. `on_token` receives every new token id of the first row.
    """
    out = idx
    for out, idx_next in iter_tokens(
        model, idx, max_new_tokens,
        temperature=temperature, do_sample=do_sample, top_k=top_k,
        eos_id=eos_id, generator=generator,
    ):
        if on_token is not None:
            on_token(int(idx_next[0, 0].item()))
    return out


def encode_prompt(prompt: str, tokenizer, device: Optional[torch.device] = None) -> torch.Tensor:
    ids = tokenizer.encode(prompt)
    if not ids:
        raise ValueError("Prompt encodes to zero tokens")
    return torch.tensor(ids, dtype=torch.long, device=device).unsqueeze(0)  # (1, T)


def generate_text(model, tokenizer, prompt: str, max_new_tokens: int = 100, **kwargs) -> str:
    x = encode_prompt(prompt, tokenizer)
    kwargs.setdefault("eos_id", tokenizer.eos_id)
    out = generate(model, x, max_new_tokens, **kwargs)
    return tokenizer.decode(out[0].tolist())


def stream_text(model, tokenizer, prompt: str, max_new_tokens: int = 100, **kwargs) -> Iterator[str]:
    """
    Yield new text as soon as it is sampled.

    The generated suffix is decoded as a whole each step, and a trailing
    replacement character is held back, so characters spread over several
    BPE tokens come out complete.
    """
    x = encode_prompt(prompt, tokenizer)
    kwargs.setdefault("eos_id", tokenizer.eos_id)
    new_ids = []
    emitted = ""
    for _, idx_next in iter_tokens(model, x, max_new_tokens, **kwargs):
        new_ids.append(int(idx_next[0, 0].item()))
        text = tokenizer.decode(new_ids)
        if text.endswith("\ufffd") or len(text) == len(emitted):
            continue
        yield text[len(emitted):]
        emitted = text
    if new_ids:
        text = tokenizer.decode(new_ids)
        if len(text) > len(emitted):
            yield text[len(emitted):]


def main():
    from .checkpoint import load_checkpoint

    ap = argparse.ArgumentParser()
    ap.add_argument("--ckpt", type=str, required=True, help="Path to checkpoint .pt")
    ap.add_argument("--device", type=str, default="auto", help="auto, cpu, cuda, mps")
    ap.add_argument("--prompt", type=str, required=True)
    ap.add_argument("--max_new_tokens", type=int, default=200)
    ap.add_argument("--temperature", type=float, default=1.0)
    ap.add_argument("--top_k", type=int, default=None)
    ap.add_argument("--sample", action="store_true", help="Sample instead of greedy decoding")
    ap.add_argument("--seed", type=int, default=None)
    args = ap.parse_args()

    device = resolve_device(args.device)
    model, payload = load_checkpoint(args.ckpt, device)
    tokenizer = payload["tokenizer"]
    if tokenizer is None:
        raise ValueError(f"Checkpoint {args.ckpt} does not carry a tokenizer")

    if args.seed is not None:
        torch.manual_seed(args.seed)

    print(args.prompt, end="", flush=True)
    for piece in stream_text(
        model, tokenizer, args.prompt,
        max_new_tokens=args.max_new_tokens,
        temperature=args.temperature,
        do_sample=args.sample,
        top_k=args.top_k,
    ):
        print(piece, end="", flush=True)
    print()


if __name__ == "__main__":
    main()
