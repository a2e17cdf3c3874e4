"""Short-form content classification."""

from feeddeck.classify.shorts import ShortClassifier

__all__ = ["ShortClassifier"]
