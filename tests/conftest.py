from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

import config
from service import TokenIntegrationService

ALICE = '0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed'
BOB = '0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359'


def make_event(block: int, tx_hash: str, value: int = 10 ** 6,
               sender: str = ALICE, receiver: str = BOB) -> Dict[str, Any]:
    return {
        'event': 'Transfer',
        'blockNumber': block,
        'transactionHash': tx_hash,
        'args': {'from': sender, 'to': receiver, 'value': value},
    }


def make_tx(tx_hash: str, block: int, value: int = 0) -> Dict[str, Any]:
    return {'hash': tx_hash, 'from': ALICE, 'to': config.CONTRACT_ADDRESS, 'value': value, 'blockNumber': block}


class FakeClient:
    """In-memory stand-in for TokenContractClient."""

    def __init__(self, events: Optional[List[Dict]] = None, block_number: int = 20000,
                 decimals: int = 6, total_supply: int = 10 ** 15):
        self.rpc_url = 'http://localhost:8545'
        self.address = config.CONTRACT_ADDRESS
        self.abi = config.ERC20_ABI
        self.contract = None
        self.events = events or []
        self.block_number = block_number
        self.token = {'name': 'Tether USD', 'symbol': 'USDT', 'decimals': decimals, 'totalSupply': total_supply}
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[tuple, int] = {}
        self.transactions: Dict[str, Dict] = {}
        self.receipts: Dict[str, Dict] = {}
        self.ranges: List[tuple] = []
        self.connect_calls = 0
        self.fail: Dict[str, Exception] = {}
        self.broken: set = set()
        self.chain_id = config.CHAIN_ID

    def _maybe_fail(self, name: str):
        if name in self.fail:
            raise self.fail[name]

    def connect_contract(self):
        self._maybe_fail('connect_contract')
        self.connect_calls += 1
        self.contract = SimpleNamespace(address=self.address)
        return self.contract

    async def get_block_number(self) -> int:
        self._maybe_fail('get_block_number')
        return self.block_number

    async def get_chain_id(self) -> int:
        self._maybe_fail('get_chain_id')
        return self.chain_id

    async def get_transaction(self, tx_hash):
        self._maybe_fail('get_transaction')
        if tx_hash in self.broken:
            raise ConnectionError(f"Lookup of {tx_hash} timed out")
        return self.transactions.get(tx_hash)

    async def get_transaction_receipt(self, tx_hash):
        return self.receipts.get(tx_hash)

    async def name(self) -> str:
        self._maybe_fail('name')
        if self.contract is None:
            raise RuntimeError('Contract is not connected')
        return self.token['name']

    async def symbol(self) -> str:
        return self.token['symbol']

    async def decimals(self) -> int:
        return self.token['decimals']

    async def total_supply(self) -> int:
        return self.token['totalSupply']

    async def balance_of(self, address: str) -> int:
        self._maybe_fail('balance_of')
        return self.balances.get(address.lower(), 0)

    async def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner.lower(), spender.lower()), 0)

    async def get_transfer_events(self, start_block: int, end_block: int):
        self._maybe_fail('get_transfer_events')
        self.ranges.append((start_block, end_block))
        return [e for e in self.events if start_block <= e['blockNumber'] <= end_block]


@pytest.fixture
def fake_client() -> FakeClient:
    events = [make_event(19990 + i, f"0x{i:064x}", value=(i + 1) * 10 ** 6) for i in range(8)]
    client = FakeClient(events=events)
    for i, event in enumerate(events):
        tx_hash = event['transactionHash']
        client.transactions[tx_hash] = make_tx(tx_hash, event['blockNumber'])
        client.receipts[tx_hash] = {'gasUsed': 51000 + i, 'status': 1}
    return client


@pytest.fixture
def service(fake_client: FakeClient) -> TokenIntegrationService:
    return TokenIntegrationService(fake_client)
