import pytest
import torch

from homemade_gpt.config import ModelConfig
from homemade_gpt.model import GPT
from homemade_gpt.tokenizer import CharTokenizer


CORPUS = "abcd" * 200


@pytest.fixture
def tiny_config():
    return ModelConfig(
        n_layer=2,
        n_head=2,
        n_embd=16,
        vocab_size=11,
        block_size=8,
        embd_dropout=0.0,
        resid_dropout=0.0,
        attn_dropout=0.0,
    )


@pytest.fixture
def tiny_model(tiny_config):
    torch.manual_seed(0)
    return GPT(tiny_config).eval()


@pytest.fixture
def corpus():
    return CORPUS


@pytest.fixture
def char_tokenizer(corpus):
    return CharTokenizer.from_text(corpus)


class ScriptedModel(torch.nn.Module):
    """Stand-in model whose next token for row b at step s is scripts[b][s]."""

    def __init__(self, scripts, prompt_len, vocab_size, block_size=64):
        super().__init__()
        self.scripts = scripts
        self.prompt_len = prompt_len
        self.vocab_size = vocab_size
        self.block_size = block_size
        self.dummy = torch.nn.Parameter(torch.zeros(1))

    def forward(self, idx, targets=None):
        B, T = idx.shape
        step = T - self.prompt_len
        logits = torch.zeros(B, T, self.vocab_size)
        for b in range(B):
            logits[b, -1, self.scripts[b][step]] = 10.0
        return logits, None


@pytest.fixture
def scripted_model():
    return ScriptedModel
