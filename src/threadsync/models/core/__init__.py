"""Core model types."""

from .core_model import WIRE_CONFIG, CoreModel

__all__ = ["CoreModel", "WIRE_CONFIG"]
