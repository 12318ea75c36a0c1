"""Pipeline module - Transform steps and their interpreter."""

from mlstudio_core.pipeline.step import Step, StepType
from mlstudio_core.pipeline.interpreter import TransformInterpreter, TransformedData

__all__ = ["Step", "StepType", "TransformInterpreter", "TransformedData"]
