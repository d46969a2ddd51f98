"""
Idempotent wallet provisioning.

A wallet can be in one of three starting states on the node: loaded,
present on disk but not loaded, or absent. ensure() walks a small state
machine that handles all three, plus the case where another client loads or
creates the wallet between our calls:

    UNCHECKED --listed / load ok / create ok--> LOADED
    UNCHECKED --load and create both fail-----> CREATE_ATTEMPTED
    CREATE_ATTEMPTED --load ok----------------> RETRY_LOADED --> LOADED
    CREATE_ATTEMPTED --load fails-------------> FAILED

The retry is bounded to a single extra load.
"""

from __future__ import annotations

from loguru import logger

from btcsettle.backends.base import LedgerNode
from btcsettle.errors import NodeRPCError, WalletStateError
from btcsettle.wallet.models import (
    TERMINAL_STATES,
    ProvisionOutcome,
    ProvisionState,
    WalletHandle,
)

# Node errors that mean "this attempt failed, try the next step".
# Connectivity, auth and decode errors are fatal and propagate.
RECOVERABLE_ERRORS = (WalletStateError, NodeRPCError)


class WalletProvisioner:
    """Ensures named wallets exist and are loaded on the node."""

    def __init__(self, node: LedgerNode):
        self.node = node

    async def ensure(self, name: str) -> WalletHandle:
        """
        Make sure wallet `name` is loaded, creating it if needed.

        Returns:
            Handle for the loaded wallet

        Raises:
            WalletStateError: If the wallet could not be loaded after one retry
        """
        state = ProvisionState.UNCHECKED
        outcome: ProvisionOutcome | None = None
        last_error: Exception | None = None

        while state not in TERMINAL_STATES:
            if state == ProvisionState.UNCHECKED:
                state, outcome, last_error = await self._check_load_or_create(name)
            elif state == ProvisionState.CREATE_ATTEMPTED:
                state, last_error = await self._retry_load(name)
            elif state == ProvisionState.RETRY_LOADED:
                logger.info(f"Loaded existing {name} wallet on retry")
                outcome = ProvisionOutcome.LOADED_ON_RETRY
                state = ProvisionState.LOADED

        if state == ProvisionState.FAILED or outcome is None:
            logger.error(f"Failed to provision wallet {name}: {last_error}")
            raise WalletStateError(
                f"Could not load or create wallet: {last_error}", wallet=name
            ) from last_error

        return WalletHandle(name=name, active=True, outcome=outcome)

    async def _check_load_or_create(
        self, name: str
    ) -> tuple[ProvisionState, ProvisionOutcome | None, Exception | None]:
        if name in await self.node.list_wallets():
            logger.info(f"{name} wallet already loaded")
            return ProvisionState.LOADED, ProvisionOutcome.ALREADY_LOADED, None

        try:
            await self.node.load_wallet(name)
            logger.info(f"Loaded existing {name} wallet")
            return ProvisionState.LOADED, ProvisionOutcome.LOADED, None
        except RECOVERABLE_ERRORS as e:
            logger.debug(f"loadwallet {name} failed: {e}")

        try:
            await self.node.create_wallet(name)
            logger.info(f"Created new {name} wallet")
            return ProvisionState.LOADED, ProvisionOutcome.CREATED, None
        except RECOVERABLE_ERRORS as e:
            # Wallet exists on disk but the first load failed or raced
            logger.warning(f"createwallet {name} failed, retrying load: {e}")
            return ProvisionState.CREATE_ATTEMPTED, None, e

    async def _retry_load(self, name: str) -> tuple[ProvisionState, Exception | None]:
        try:
            await self.node.load_wallet(name)
        except RECOVERABLE_ERRORS as e:
            return ProvisionState.FAILED, e
        return ProvisionState.RETRY_LOADED, None
