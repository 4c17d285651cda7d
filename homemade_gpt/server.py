import os
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from .checkpoint import load_checkpoint
from .generation import generate, encode_prompt
from .memory import resolve_device

CKPT = os.environ.get("GPT_CKPT", "./checkpoints/checkpoint_latest.pt")
DEVICE = os.environ.get("GPT_DEVICE", "cpu")

app = FastAPI(title="Homemade GPT Server")


class Sampler:
    def __init__(self, ckpt_path: str, device: str = "cpu"):
        self.device = resolve_device(device)
        self.model, payload = load_checkpoint(ckpt_path, self.device)
        self.tokenizer = payload["tokenizer"]
        if self.tokenizer is None:
            raise ValueError(f"Checkpoint {ckpt_path} does not carry a tokenizer")
        self.ckpt_path = ckpt_path


@lru_cache(maxsize=1)
def get_sampler() -> Sampler:
    return Sampler(CKPT, device=DEVICE)


class GenRequest(BaseModel):
    prompt: str = Field(min_length=1)
    max_new_tokens: int = Field(default=100, ge=0, le=2048)
    temperature: float = Field(default=1.0, gt=0.0)
    do_sample: bool = True
    top_k: Optional[int] = Field(default=None, ge=1)


@app.get("/health")
def health():
    return {"status": "ok", "device": str(resolve_device(DEVICE))}


@app.get("/summary")
def summary(sampler: Sampler = Depends(get_sampler)):
    return sampler.model.summary()


@app.post("/generate")
def generate_endpoint(req: GenRequest, sampler: Sampler = Depends(get_sampler)):
    tok = sampler.tokenizer
    try:
        x = encode_prompt(req.prompt, tok, sampler.device)
        out = generate(
            sampler.model,
            x,
            req.max_new_tokens,
            temperature=req.temperature,
            do_sample=req.do_sample,
            top_k=req.top_k,
            eos_id=tok.eos_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    new_ids = out[0, x.size(1):].tolist()
    return {"text": tok.decode(new_ids), "tokens": new_ids}
