"""Classification rules for suspicious activity."""
from .classifier import Classifier, SuspicionRule

__all__ = ["Classifier", "SuspicionRule"]
