"""
Wallet data models.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ProvisionState(str, Enum):
    UNCHECKED = "unchecked"
    CREATE_ATTEMPTED = "create_attempted"
    RETRY_LOADED = "retry_loaded"
    LOADED = "loaded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({ProvisionState.LOADED, ProvisionState.FAILED})


class ProvisionOutcome(str, Enum):
    """How a wallet ended up loaded"""

    ALREADY_LOADED = "already_loaded"
    LOADED = "loaded"
    CREATED = "created"
    LOADED_ON_RETRY = "loaded_on_retry"


@dataclass
class WalletHandle:
    """A wallet that is loaded and usable on the node"""

    name: str
    active: bool
    outcome: ProvisionOutcome
