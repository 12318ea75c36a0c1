"""Runtime module - Tensor runtime adapter."""

from mlstudio_core.runtime.tensor import TensorRuntime

__all__ = ["TensorRuntime"]
