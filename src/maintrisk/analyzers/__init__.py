"""Analyzers for inferring maintainer activity."""

from maintrisk.analyzers.cascade import SignalCascade, SignalSourceError, SignalTier
from maintrisk.analyzers.handler import MaintainerActivityError, MaintainerActivityHandler
from maintrisk.analyzers.ledger import ActivityLedger, normalize_handle
from maintrisk.analyzers.members import PrivilegedAccountResolver
from maintrisk.analyzers.scorer import Scorer

__all__ = [
    "ActivityLedger",
    "MaintainerActivityError",
    "MaintainerActivityHandler",
    "PrivilegedAccountResolver",
    "Scorer",
    "SignalCascade",
    "SignalSourceError",
    "SignalTier",
    "normalize_handle",
]
