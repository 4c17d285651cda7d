import pytest
import torch
from fastapi.testclient import TestClient

from homemade_gpt.checkpoint import save_checkpoint
from homemade_gpt.memory import resolve_device
from homemade_gpt.model import GPT
from homemade_gpt.server import Sampler, app, get_sampler


@pytest.fixture
def client(tmp_path, tiny_config, char_tokenizer):
    tiny_config.vocab_size = char_tokenizer.vocab_size
    torch.manual_seed(0)
    path = tmp_path / "ckpt.pt"
    save_checkpoint(str(path), GPT(tiny_config), tokenizer=char_tokenizer)
    sampler = Sampler(str(path), device="cpu")
    app.dependency_overrides[get_sampler] = lambda: sampler
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_summary(client, tiny_config):
    r = client.get("/summary")
    assert r.status_code == 200
    assert r.json()["layers"] == tiny_config.n_layer


def test_generate(client):
    r = client.post("/generate", json={"prompt": "abc", "max_new_tokens": 5, "top_k": 2})
    assert r.status_code == 200
    body = r.json()
    assert len(body["tokens"]) == 5
    assert len(body["text"]) == 5
    assert set(body["text"]) <= set("abcd")


def test_greedy_generate_is_deterministic(client):
    req = {"prompt": "ab", "max_new_tokens": 4, "do_sample": False}
    assert client.post("/generate", json=req).json() == client.post("/generate", json=req).json()


def test_unknown_character_is_bad_request(client):
    r = client.post("/generate", json={"prompt": "xyz"})
    assert r.status_code == 400
    assert "vocabulary" in r.json()["detail"]


def test_invalid_temperature_rejected(client):
    r = client.post("/generate", json={"prompt": "ab", "temperature": 0})
    assert r.status_code == 422


def test_sampler_requires_tokenizer(tmp_path, tiny_model):
    path = tmp_path / "bare.pt"
    save_checkpoint(str(path), tiny_model)
    with pytest.raises(ValueError, match="tokenizer"):
        Sampler(str(path))


@pytest.mark.parametrize("requested", ["cpu", "auto", "cuda", "mps"])
def test_health_reports_resolved_device(client, monkeypatch, requested):
    monkeypatch.setattr("homemade_gpt.server.DEVICE", requested)
    r = client.get("/health")
    assert r.json()["device"] == str(resolve_device(requested))
