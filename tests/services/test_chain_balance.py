import asyncio
from unittest.mock import Mock

import pytest

from rolegate.core.errors import BalanceFetchError
from rolegate.services.chain_balance import Web3BalanceSource

CONTRACT = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
OWNER = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"


@pytest.fixture
def source():
    source = Web3BalanceSource(rpc_url="http://127.0.0.1:8545", contract_address=CONTRACT, request_timeout=1)
    source._contract = Mock()
    return source


class TestWeb3BalanceSource:
    """Test cases for the ERC-721 balance source"""

    def test_balance_of(self, source):
        source._contract.functions.balanceOf.return_value.call.return_value = 3
        assert asyncio.run(source.get_balance(OWNER.lower())) == 3
        source._contract.functions.balanceOf.assert_called_once_with(OWNER)

    def test_rpc_failure(self, source):
        source._contract.functions.balanceOf.return_value.call.side_effect = ConnectionError("rpc down")
        with pytest.raises(BalanceFetchError) as exc_info:
            asyncio.run(source.get_balance(OWNER))
        assert "rpc down" in str(exc_info.value)

    def test_invalid_owner(self, source):
        with pytest.raises(BalanceFetchError):
            source.balance_of("0x1234")

    def test_contract_address_required(self):
        with pytest.raises(ValueError):
            Web3BalanceSource(rpc_url="http://127.0.0.1:8545", contract_address="nope")
