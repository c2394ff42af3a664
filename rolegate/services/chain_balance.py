# ERC-721 balance lookups over JSON-RPC

import asyncio
import logging
from typing import Optional

from web3 import Web3

from rolegate.core.config import settings
from rolegate.core.errors import BalanceFetchError

logger = logging.getLogger(__name__)

ERC721_BALANCE_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class Web3BalanceSource:
    """Reads ``balanceOf(owner)`` from the configured collection contract.

    web3's HTTP provider is blocking, calls run on the default executor.
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        contract_address: Optional[str] = None,
        request_timeout: Optional[float] = None,
    ):
        rpc_url = rpc_url or settings.RPC_URL
        contract_address = contract_address or settings.CONTRACT_ADDRESS
        if not rpc_url:
            raise ValueError(f"no RPC url configured for chain {settings.CHAIN}")
        if not contract_address or not Web3.is_address(contract_address):
            raise ValueError(f"invalid collection contract address: {contract_address!r}")

        timeout = request_timeout or settings.BALANCE_TIMEOUT_SECONDS
        self._web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self._contract = self._web3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=ERC721_BALANCE_ABI
        )
        logger.info("using collection contract %s via %s", contract_address, rpc_url)

    def balance_of(self, address: str) -> int:
        if not Web3.is_address(address):
            raise BalanceFetchError(address, "not a wallet address")
        try:
            raw = self._contract.functions.balanceOf(Web3.to_checksum_address(address)).call()
        except Exception as exc:
            raise BalanceFetchError(address, str(exc)) from exc
        return int(raw)

    async def get_balance(self, address: str) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.balance_of, address)
