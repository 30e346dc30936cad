from typing import Dict, List

# Network
NETWORK_NAME = 'sepolia'
CHAIN_ID = 11155111
RPC_URL = 'https://ethereum-sepolia-rpc.publicnode.com'

# USDT contract on Sepolia
CONTRACT_ADDRESS = '0xaA8E23Fb1079EA71e0a56F48a2aA51851D8433D0'


def _view(name: str, inputs: List[Dict], output_type: str) -> Dict:
    return {
        'type': 'function',
        'name': name,
        'stateMutability': 'view',
        'inputs': inputs,
        'outputs': [{'name': '', 'type': output_type}],
    }


def _event(name: str, inputs: List[Dict]) -> Dict:
    return {'type': 'event', 'name': name, 'anonymous': False, 'inputs': inputs}


ERC20_ABI: List[Dict] = [
    _view('name', [], 'string'),
    _view('symbol', [], 'string'),
    _view('decimals', [], 'uint8'),
    _view('totalSupply', [], 'uint256'),
    _view('balanceOf', [{'name': 'owner', 'type': 'address'}], 'uint256'),
    _view('allowance', [{'name': 'owner', 'type': 'address'},
                        {'name': 'spender', 'type': 'address'}], 'uint256'),
    _event('Transfer', [{'name': 'from', 'type': 'address', 'indexed': True},
                        {'name': 'to', 'type': 'address', 'indexed': True},
                        {'name': 'value', 'type': 'uint256', 'indexed': False}]),
    _event('Approval', [{'name': 'owner', 'type': 'address', 'indexed': True},
                        {'name': 'spender', 'type': 'address', 'indexed': True},
                        {'name': 'value', 'type': 'uint256', 'indexed': False}]),
]

CONTRACT_FUNCTIONS = [item['name'] for item in ERC20_ABI if item['type'] == 'function']
CONTRACT_EVENTS = [item['name'] for item in ERC20_ABI if item['type'] == 'event']

# Query limits
MAX_EVENTS = 5
MAX_TRANSACTIONS = 5
BLOCK_LOOKBACK = 10000

# Sample addresses for the read-only demonstration
NULL_ADDRESS = '0x0000000000000000000000000000000000000000'
EXAMPLE_WALLET = '0x0aB442ADf62723cF7A7C8C518Fc211b1134A0B67'

# HTTP server
HOST = '0.0.0.0'
PORT = 8080
API_VERSION = '1.0.0'

# Logging
LOG_PATH = 'debug.log'
LOG_FORMAT = '{time},{level},{message}'
LOG_LEVEL = 'DEBUG'
