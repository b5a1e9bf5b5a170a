"""Email classifiers turning broadcast messages into domain events."""

from .base import EmailClassifier
from .expiry import ExpirySweeper
from .operations import OperationClassifier
from .power import PowerClassifier

__all__ = [
    "EmailClassifier",
    "ExpirySweeper",
    "OperationClassifier",
    "PowerClassifier",
]
