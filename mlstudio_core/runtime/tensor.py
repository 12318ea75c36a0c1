"""MLStudio Tensor Runtime - Lazy Torch Adapter.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import importlib
import logging
import threading
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from mlstudio_core.errors import DependencyUnavailable

logger = logging.getLogger(__name__)


class TensorRuntime:
    """Lazily initialised handle to torch.

    Nothing is imported until the first call to ``ensure()``. A failed
    import is remembered and re-raised as ``DependencyUnavailable`` on
    every later call.

    Example:
        runtime = TensorRuntime(device="auto")
        runtime.ensure()
        x = runtime.tensor(np.zeros((4, 2)))
    """

    def __init__(self, device: str = "cpu", seed: Optional[int] = None):
        self.requested_device = device
        self.seed = seed
        self._torch: Any = None
        self._error: Optional[str] = None
        self._device: Any = None
        self._lock = threading.Lock()

    def ensure(self) -> Any:
        """Import torch if needed and return the module.

        Raises:
            DependencyUnavailable: If torch cannot be imported
        """
        with self._lock:
            if self._torch is not None:
                return self._torch
            if self._error is not None:
                raise DependencyUnavailable("torch", self._error)

            try:
                torch = importlib.import_module("torch")
            except ImportError as e:
                self._error = str(e)
                logger.error(f"Tensor runtime failed to load: {e}")
                raise DependencyUnavailable("torch", str(e)) from e

            self._torch = torch
            self._device = self._resolve_device(torch)
            logger.info(
                f"Tensor runtime ready (torch {torch.__version__}, device={self._device})"
            )
            return torch

    def _resolve_device(self, torch: Any) -> Any:
        if self.requested_device == "auto":
            name = "cuda" if torch.cuda.is_available() else "cpu"
        else:
            name = self.requested_device
        return torch.device(name)

    @property
    def available(self) -> bool:
        """True if torch imports."""
        try:
            self.ensure()
        except DependencyUnavailable:
            return False
        return True

    @property
    def torch(self) -> Any:
        return self.ensure()

    @property
    def nn(self) -> Any:
        return self.ensure().nn

    @property
    def device(self) -> Any:
        self.ensure()
        return self._device

    def seed_all(self, seed: Optional[int] = None) -> None:
        """Seed torch so weight initialisation is reproducible."""
        seed = self.seed if seed is None else seed
        if seed is not None:
            self.torch.manual_seed(seed)

    def generator(self, seed: int) -> Any:
        gen = self.torch.Generator()
        gen.manual_seed(seed)
        return gen

    def tensor(self, array: Any, dtype: str = "float32") -> Any:
        """Build a tensor on the runtime device from a numpy array."""
        torch = self.ensure()
        arr = np.ascontiguousarray(array)
        return torch.as_tensor(arr, dtype=getattr(torch, dtype), device=self._device)

    def to_numpy(self, tensor: Any) -> np.ndarray:
        return tensor.detach().cpu().numpy()

    def sequential(self, layers: Sequence[Any]) -> Any:
        """Compose layers into an ``nn.Sequential`` on the runtime device."""
        return self.nn.Sequential(*layers).to(self.device)

    def optimizer(self, name: str, parameters: Any, learning_rate: float) -> Any:
        """Create an optimizer by name.

        Raises:
            ValueError: If the optimizer name is unknown
        """
        optim = self.torch.optim
        table = {
            "adam": optim.Adam,
            "sgd": optim.SGD,
            "rmsprop": optim.RMSprop,
            "adagrad": optim.Adagrad,
        }
        key = name.lower()
        if key not in table:
            raise ValueError(f"Unknown optimizer: {name}")
        return table[key](parameters, lr=learning_rate)

    def train_step(self, model: Any, optimizer: Any, loss_fn: Any, x: Any, y: Any) -> float:
        """Run one gradient step and return the batch loss."""
        model.train()
        optimizer.zero_grad()
        loss = loss_fn(model(x), y)
        loss.backward()
        optimizer.step()
        return float(loss.item())

    def state_to_lists(self, model: Any) -> List[Dict[str, Any]]:
        """Flatten a module's state dict into JSON-friendly weight records."""
        weights = []
        for name, value in model.state_dict().items():
            arr = self.to_numpy(value)
            weights.append({
                "name": name,
                "shape": list(arr.shape),
                "dtype": str(arr.dtype),
                "data": arr.reshape(-1).tolist(),
            })
        return weights

    def load_lists(self, model: Any, weights: List[Dict[str, Any]]) -> None:
        """Inverse of ``state_to_lists``."""
        torch = self.ensure()
        state = {}
        for record in weights:
            arr = np.asarray(record["data"], dtype=record.get("dtype", "float32"))
            state[record["name"]] = torch.as_tensor(arr.reshape(record["shape"]))
        model.load_state_dict(state)

    def __repr__(self) -> str:
        status = "ready" if self._torch is not None else "unloaded"
        return f"TensorRuntime(device={self.requested_device}, {status})"


__all__ = ["TensorRuntime"]
