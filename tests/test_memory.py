import torch

from homemade_gpt.memory import dispose, free_device_memory, resolve_device


def test_resolve_cpu():
    assert resolve_device("cpu") == torch.device("cpu")
    assert resolve_device(" CPU ") == torch.device("cpu")


def test_resolve_auto_returns_available_device():
    device = resolve_device("auto")
    assert device.type in ("cpu", "cuda", "mps")
    if not torch.cuda.is_available():
        assert resolve_device("cuda") == torch.device("cpu")


def test_dispose_drops_gradients_and_skips_none():
    w = torch.ones(3, requires_grad=True)
    (w * 2).sum().backward()
    assert w.grad is not None
    assert dispose(w, None, [torch.zeros(2), (torch.zeros(1),)]) == 3
    assert w.grad is None


def test_free_device_memory_on_cpu():
    free_device_memory(torch.device("cpu"))
