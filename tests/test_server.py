import pytest
from fastapi.testclient import TestClient

import config
import server
from conftest import ALICE, make_event, make_tx
from service import TokenIntegrationService


@pytest.fixture
def api(monkeypatch: pytest.MonkeyPatch, fake_client):
    monkeypatch.setattr(server, 'build_service', lambda: TokenIntegrationService(fake_client))
    with TestClient(server.app) as client:
        yield client


def _ok(response) -> dict:
    assert response.status_code == 200
    payload = response.json()
    assert payload['success'] is True
    assert payload['timestamp']
    return payload['data']


def test_index_lists_routes(api):
    payload = api.get('/').json()
    assert payload['success'] is True
    paths = [endpoint['path'] for endpoint in payload['endpoints']]
    assert paths == [endpoint.path for endpoint in server.ENDPOINTS]
    assert '/balance/{address}' in paths
    assert len(paths) == 11


def test_contract_info(api):
    assert _ok(api.get('/contract-info')) == {
        'name': 'Tether USD',
        'symbol': 'USDT',
        'decimals': '6',
        'totalSupply': str(10 ** 15),
    }


def test_balance_rejects_malformed_address(api, fake_client):
    response = api.get('/balance/not-an-address')
    assert response.status_code == 400
    payload = response.json()
    assert payload['success'] is False
    assert payload['error'] == 'Invalid Ethereum address format'
    assert 'timestamp' in payload
    assert 'data' not in payload


@pytest.mark.parametrize('address', [
    '0x5aAeb6053f3E94C9b9A09f33669435E7Ef1BeAed',
    '5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed',
])
def test_balance_rejects_bad_checksum_and_missing_prefix(api, address):
    response = api.get(f"/balance/{address}")
    assert response.status_code == 400
    assert response.json()['success'] is False


def test_balance_of_valid_address(api, fake_client):
    fake_client.balances[ALICE.lower()] = 1234500000
    data = _ok(api.get(f"/balance/{ALICE}"))
    assert data == {
        'address': ALICE,
        'balance': '1234.5',
        'balanceRaw': '1234500000',
        'symbol': 'USDT',
        'decimals': '6',
    }
    assert data['balanceRaw'].isdigit()


def test_balance_read_failure(api, fake_client):
    fake_client.fail['balance_of'] = RuntimeError('execution reverted')
    response = api.get(f"/balance/{ALICE}")
    assert response.status_code == 500
    assert response.json() == {'success': False, 'error': 'execution reverted',
                               'timestamp': response.json()['timestamp']}


@pytest.mark.parametrize('path', ['/events', '/fetch-events'])
def test_events(api, path):
    data = _ok(api.get(path))
    assert data['count'] == len(data['events']) == config.MAX_EVENTS
    assert data['events'][0]['eventName'] == 'Transfer'


def test_events_stable_between_requests(api):
    first = _ok(api.get('/events'))['events']
    second = _ok(api.get('/events'))['events']
    key = lambda event: (event['blockNumber'], event['transactionHash'])  # noqa: E731
    assert sorted(first, key=key) == sorted(second, key=key)


@pytest.mark.parametrize('path', ['/transactions', '/fetch-transactions'])
def test_transactions(api, path):
    data = _ok(api.get(path))
    assert data['count'] == len(data['transactions']) == config.MAX_TRANSACTIONS
    assert {tx['status'] for tx in data['transactions']} == {'Success'}


def test_all_is_bounded(api, fake_client):
    for i in range(100, 130):
        tx_hash = f"0x{i:064x}"
        fake_client.events.append(make_event(19998, tx_hash))
        fake_client.transactions[tx_hash] = make_tx(tx_hash, 19998)
    data = _ok(api.get('/all'))
    assert data['contractInfo']['symbol'] == 'USDT'
    assert len(data['latestEvents']) <= config.MAX_EVENTS
    assert len(data['latestTransactions']) <= config.MAX_TRANSACTIONS
    assert data['network'] == 'sepolia'
    assert data['contractAddress'] == config.CONTRACT_ADDRESS


def test_transactions_skip_missing_transaction(api, fake_client):
    del fake_client.transactions[f"0x{7:064x}"]
    data = _ok(api.get('/transactions'))
    assert data['count'] == config.MAX_TRANSACTIONS - 1


def test_all_survives_failed_transaction_lookups(api, fake_client):
    fake_client.fail['get_transaction'] = ConnectionError('node unavailable')
    data = _ok(api.get('/all'))
    assert data['latestTransactions'] == []
    assert len(data['latestEvents']) == config.MAX_EVENTS
    assert data['contractInfo']['symbol'] == 'USDT'


def test_all_survives_failed_event_query(api, fake_client):
    fake_client.fail['get_transfer_events'] = ValueError('block range too large')
    data = _ok(api.get('/all'))
    assert data['latestEvents'] == []
    assert data['latestTransactions'] == []


def test_network(api):
    data = _ok(api.get('/network'))
    assert data['chainId'] == config.CHAIN_ID
    assert data['currentBlockNumber'] == 20000
    assert data['connected'] is True


def test_contract(api):
    data = _ok(api.get('/contract'))
    assert data == {
        'contractAddress': config.CONTRACT_ADDRESS,
        'abiLoaded': True,
        'functionsCount': 8,
        'network': 'sepolia',
    }


def test_read_contract_info_is_fresh(api, fake_client):
    _ok(api.get('/contract-info'))
    fake_client.token['totalSupply'] = 77
    assert _ok(api.get('/read-contract-info'))['totalSupply'] == '77'
    assert _ok(api.get('/contract-info'))['totalSupply'] == '77'


def test_read_state_variables(api, fake_client):
    fake_client.balances[config.EXAMPLE_WALLET.lower()] = 2500000
    data = _ok(api.get('/read-state-variables'))
    assert data == {
        'nullAddressBalance': '0.0',
        'exampleWalletBalance': '2.5',
        'allowance': '0.0',
        'symbol': 'USDT',
    }


def test_initialization_failure_is_reported(api, fake_client):
    fake_client.fail['get_block_number'] = ConnectionError('connection refused')
    response = api.get('/contract-info')
    assert response.status_code == 500
    payload = response.json()
    assert payload['success'] is False
    assert 'connection refused' in payload['error']

    del fake_client.fail['get_block_number']
    _ok(api.get('/contract-info'))


def test_event_query_failure_is_reported(api, fake_client):
    fake_client.fail['get_transfer_events'] = ValueError('block range too large')
    response = api.get('/events')
    assert response.status_code == 500
    assert response.json()['error'] == 'block range too large'


def test_unknown_route_uses_envelope(api):
    response = api.get('/does-not-exist')
    assert response.status_code == 404
    assert response.json()['success'] is False
