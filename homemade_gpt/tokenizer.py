from logging import getLogger
from typing import Dict, List

import tiktoken

logger = getLogger(__name__)


class CharTokenizer:
    """Character-level tokenizer: one token id per distinct character of the corpus."""

    kind = "char"

    def __init__(self, chars: List[str]):
        """
        Args:
            chars (List[str]): Vocabulary, one single-character string per token id.
        """
        if len(set(chars)) != len(chars):
            raise ValueError("Character vocabulary contains duplicates")
        self.chars = list(chars)
        self.stoi: Dict[str, int] = {ch: i for i, ch in enumerate(self.chars)}
        self.itos: Dict[int, str] = {i: ch for i, ch in enumerate(self.chars)}
        self.eos_id = None

    @classmethod
    def from_text(cls, text: str) -> "CharTokenizer":
        tokenizer = cls(sorted(set(text)))
        logger.info(f"Built character vocabulary of size {tokenizer.vocab_size}")
        return tokenizer

    @property
    def vocab_size(self) -> int:
        return len(self.chars)

    def encode(self, s: str) -> List[int]:
        try:
            return [self.stoi[ch] for ch in s]
        except KeyError as e:
            raise ValueError(f"Character {e.args[0]!r} is not in the vocabulary") from None

    def decode(self, t: List[int]) -> str:
        return "".join(self.itos[int(i)] for i in t)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "chars": self.chars}

    @classmethod
    def from_dict(cls, data: dict) -> "CharTokenizer":
        return cls(data["chars"])


class BPETokenizer:
    """Tokenizing and encoding/decoding text using tiktoken BPE."""

    kind = "bpe"

    def __init__(self, encoding_name: str = "gpt2", eos_token: str = "<|endoftext|>"):
        """
        Initialize the tokenizer with a tiktoken encoding.

        Args:
            encoding_name (str): Name of the tiktoken encoding to load
                                 (e.g. "gpt2", "cl100k_base").
            eos_token (str): Special token used to mark the end of a document.
        """
        self.encoding_name = encoding_name
        self.eos_token = eos_token
        self.enc = tiktoken.get_encoding(encoding_name)
        logger.info(f"Loaded tiktoken encoding '{encoding_name}'")

        ids = self.enc.encode(eos_token, allowed_special={eos_token})
        if len(ids) == 1:
            self.eos_id = ids[0]
        else:
            logger.warning(f"Token '{eos_token}' does not map to a single id (got {ids}); EOS disabled.")
            self.eos_id = None

    @property
    def vocab_size(self) -> int:
        return self.enc.n_vocab

    def encode(self, s: str) -> List[int]:
        return self.enc.encode(s, allowed_special={self.eos_token})

    def decode(self, t: List[int]) -> str:
        return self.enc.decode([int(i) for i in t])

    def to_dict(self) -> dict:
        return {"kind": self.kind, "encoding_name": self.encoding_name, "eos_token": self.eos_token}

    @classmethod
    def from_dict(cls, data: dict) -> "BPETokenizer":
        return cls(data["encoding_name"], data.get("eos_token", "<|endoftext|>"))


TOKENIZERS = {CharTokenizer.kind: CharTokenizer, BPETokenizer.kind: BPETokenizer}


def build_tokenizer(data: dict):
    kind = data.get("kind")
    if kind not in TOKENIZERS:
        raise ValueError(f"Unknown tokenizer kind {kind!r}, expected one of {sorted(TOKENIZERS)}")
    return TOKENIZERS[kind].from_dict(data)
