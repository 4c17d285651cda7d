import math

import pytest
import torch

from homemade_gpt.config import ModelConfig
from homemade_gpt.model import GPT, CausalSelfAttention, MultiHeadAttention, NewGELU


def test_logits_shape(tiny_model, tiny_config):
    idx = torch.randint(0, tiny_config.vocab_size, (3, 5))
    logits, loss = tiny_model(idx)
    assert logits.shape == (3, 5, tiny_config.vocab_size)
    assert loss is None


def test_initial_loss_near_uniform(tiny_model, tiny_config):
    torch.manual_seed(1)
    idx = torch.randint(0, tiny_config.vocab_size, (4, 8))
    targets = torch.randint(0, tiny_config.vocab_size, (4, 8))
    _, loss = tiny_model(idx, targets)
    assert loss.dim() == 0
    assert abs(loss.item() - math.log(tiny_config.vocab_size)) < 0.5


def test_sequence_longer_than_block_rejected(tiny_model, tiny_config):
    idx = torch.zeros((1, tiny_config.block_size + 1), dtype=torch.long)
    with pytest.raises(ValueError, match="block size"):
        tiny_model(idx)


@pytest.mark.parametrize("attention", ["fused", "heads"])
def test_attention_is_causal(tiny_config, attention):
    tiny_config.attention = attention
    torch.manual_seed(0)
    model = GPT(tiny_config).eval()
    idx = torch.randint(0, tiny_config.vocab_size, (1, 8))
    changed = idx.clone()
    changed[0, 5] = (changed[0, 5] + 1) % tiny_config.vocab_size
    with torch.no_grad():
        a, _ = model(idx)
        b, _ = model(changed)
    assert torch.allclose(a[:, :5], b[:, :5], atol=1e-6)
    assert not torch.allclose(a[:, 5:], b[:, 5:])


def _copy_fused_into_heads(fused: CausalSelfAttention, heads: MultiHeadAttention):
    hs = fused.head_size
    with torch.no_grad():
        for i, head in enumerate(heads.heads):
            rows = slice(i * hs, (i + 1) * hs)
            for name in ("key", "query", "value"):
                src = getattr(fused, name)
                dst = getattr(head, name)
                dst.weight.copy_(src.weight[rows])
                dst.bias.copy_(src.bias[rows])
        heads.c_proj.load_state_dict(fused.c_proj.state_dict())


def test_fused_and_per_head_attention_agree(tiny_config):
    torch.manual_seed(0)
    fused = GPT(tiny_config).eval()
    tiny_config.attention = "heads"
    heads = GPT(tiny_config).eval()

    fused_state = {k: v for k, v in fused.state_dict().items() if ".attn." not in k}
    missing, unexpected = heads.load_state_dict(fused_state, strict=False)
    assert not unexpected
    assert all(".attn." in k for k in missing)
    for fb, hb in zip(fused.transformer.h, heads.transformer.h):
        _copy_fused_into_heads(fb.attn, hb.attn)

    idx = torch.randint(0, tiny_config.vocab_size, (2, 8))
    with torch.no_grad():
        a, _ = fused(idx)
        b, _ = heads(idx)
    assert torch.allclose(a, b, atol=1e-5)


def test_num_params_excludes_head(tiny_model, tiny_config):
    head = tiny_config.n_embd * tiny_config.vocab_size
    total = sum(p.numel() for p in tiny_model.parameters())
    assert tiny_model.num_params() == total - head
    assert tiny_model.num_params(non_embedding=True) == total - head
    assert tiny_model.num_params(non_embedding=False) == total


def test_summary(tiny_model):
    s = tiny_model.summary()
    assert s["params"] == tiny_model.num_params()
    assert s["layers"] == 2
    assert s["block_size"] == 8


def test_residual_projection_init_is_scaled():
    torch.manual_seed(0)
    cfg = ModelConfig(n_layer=8, n_head=4, n_embd=256, vocab_size=50, block_size=16)
    model = GPT(cfg)
    proj_std = model.transformer.h[0].mlp.c_proj.weight.std().item()
    fc_std = model.transformer.h[0].mlp.c_fc.weight.std().item()
    assert fc_std == pytest.approx(0.02, rel=0.1)
    assert proj_std == pytest.approx(0.02 / math.sqrt(16), rel=0.1)


def test_optimizer_groups(tiny_model):
    opt = tiny_model.configure_optimizer(1e-3, weight_decay=0.1)
    decay, no_decay = opt.param_groups
    assert decay["weight_decay"] == 0.1
    assert no_decay["weight_decay"] == 0.0
    assert all(p.dim() >= 2 for p in decay["params"])
    assert all(p.dim() < 2 for p in no_decay["params"])
    n_opt = sum(p.numel() for g in opt.param_groups for p in g["params"])
    assert n_opt == sum(p.numel() for p in tiny_model.parameters())


def test_gelu_matches_torch_tanh_approximation():
    x = torch.linspace(-4, 4, 101)
    assert torch.allclose(NewGELU()(x), torch.nn.functional.gelu(x, approximate="tanh"), atol=1e-6)


def test_backward_reaches_every_parameter(tiny_model, tiny_config):
    tiny_model.train()
    idx = torch.randint(0, tiny_config.vocab_size, (2, 8))
    _, loss = tiny_model(idx, idx)
    loss.backward()
    assert all(p.grad is not None for p in tiny_model.parameters())
