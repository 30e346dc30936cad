from typing import Any, Dict, List, Optional
from dataclasses import dataclass
from datetime import datetime, timezone
import asyncio
from loguru import logger

import config
from helpers import (
    format_address,
    format_event,
    format_number_with_commas,
    format_token_amount,
    format_transaction,
    log_separator,
    safe_execute,
)


class IntegrationError(Exception):
    """
    Base class for failures of an integration step.

    :param operation: Name of the step that failed.
    :param message: Human-readable reason.
    """

    def __init__(self, operation: str, message: str):
        super().__init__(message)
        self.operation = operation
        self.message = message


class NetworkUnreachable(IntegrationError):
    pass


class ContractBindingError(IntegrationError):
    pass


class ReadCallError(IntegrationError):
    pass


class QueryRangeError(IntegrationError):
    pass


class TransactionLookupError(IntegrationError):
    pass


@dataclass(frozen=True)
class ContractInfo:
    name: str
    symbol: str
    decimals: int
    total_supply: int

    def to_dict(self) -> Dict[str, str]:
        return {
            'name': self.name,
            'symbol': self.symbol,
            'decimals': str(self.decimals),
            'totalSupply': str(self.total_supply),
        }


@dataclass(frozen=True)
class StateSample:
    null_balance: int
    wallet_balance: int
    allowance: int


class TokenIntegrationService:
    """
    Orchestrates reads against a single ERC-20 contract.

    The steps, in order:

    1. connect to the network (verified by reading the block number)
    2. bind the contract
    3. read name, symbol, decimals and total supply (cached as :class:`ContractInfo`)
    4. read the sample balances and allowance
    5. fetch the latest Transfer events
    6. resolve the transactions behind those events

    Steps 1-3 run once through :meth:`initialize`; every other step queries the chain
    again on each call. Failures are raised as :class:`IntegrationError` subclasses.
    """

    contract_info: Optional[ContractInfo]

    def __init__(self, client: Any,
                 max_events: int = config.MAX_EVENTS,
                 max_transactions: int = config.MAX_TRANSACTIONS,
                 block_lookback: int = config.BLOCK_LOOKBACK):
        """
        :param client: Chain client exposing block, transaction, receipt, contract read and Transfer log queries.
        :param max_events: How many of the most recent events to return.
        :param max_transactions: How many of the most recent transactions to return.
        :param block_lookback: Size of the block window searched for events.
        """
        self.client = client
        self.max_events = max_events
        self.max_transactions = max_transactions
        self.block_lookback = block_lookback
        self.contract_info = None
        self.connected = False
        self._init_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self.contract_info is not None

    async def initialize(self) -> ContractInfo:
        """
        Run steps 1-3 once. Concurrent callers wait for the first one to finish.

        A failed initialization is not remembered; the next call tries again.

        :return: The cached contract info.
        """
        async with self._init_lock:
            if self.contract_info is None:
                await self.connect_to_network()
                self.connect_to_contract()
                await self.read_contract_info()
            return self.contract_info

    def _require_info(self) -> ContractInfo:
        if self.contract_info is None:
            raise ReadCallError('Read Contract Basic Information', 'Contract info has not been read yet')
        return self.contract_info

    async def connect_to_network(self) -> int:
        operation = 'Connect to Ethereum Network'
        try:
            block_number = await self.client.get_block_number()
        except Exception as e:
            self.connected = False
            logger.error(f"{operation} failed: {e}")
            raise NetworkUnreachable(operation, str(e)) from e
        self.connected = True
        logger.info(f"Current Block Number: {format_number_with_commas(block_number)}")
        logger.info('Successfully connected to Ethereum network')
        return block_number

    def connect_to_contract(self) -> Any:
        operation = 'Connect to Token Smart Contract'
        try:
            contract = self.client.connect_contract()
        except Exception as e:
            logger.error(f"{operation} failed: {e}")
            raise ContractBindingError(operation, str(e)) from e
        logger.info(f"Contract ABI loaded with {len(self.client.abi)} functions/events")
        return contract

    async def read_contract_info(self) -> ContractInfo:
        operation = 'Read Contract Basic Information'
        log_separator('CONTRACT BASIC INFORMATION')
        try:
            name = await self.client.name()
            symbol = await self.client.symbol()
            decimals = await self.client.decimals()
            total_supply = await self.client.total_supply()
        except Exception as e:
            logger.error(f"{operation} failed: {e}")
            raise ReadCallError(operation, str(e)) from e

        self.contract_info = ContractInfo(name=name, symbol=symbol, decimals=int(decimals),
                                          total_supply=int(total_supply))
        logger.info(f"Token Name: {name}")
        logger.info(f"Token Symbol: {symbol}")
        logger.info(f"Decimals: {decimals}")
        logger.info(f"Total Supply: {format_number_with_commas(format_token_amount(total_supply, decimals))} {symbol}")
        logger.info(f"Total Supply (Raw): {total_supply}")
        return self.contract_info

    async def read_public_state_variables(self) -> StateSample:
        """
        Read the null address balance, the example wallet balance and the
        allowance granted by the example wallet to the null address.
        """
        operation = 'Read Public State Variables'
        log_separator('READ-ONLY OPERATIONS DEMONSTRATION')
        info = self._require_info()
        try:
            null_balance = await self.client.balance_of(config.NULL_ADDRESS)
            wallet_balance = await self.client.balance_of(config.EXAMPLE_WALLET)
            allowance = await self.client.allowance(config.EXAMPLE_WALLET, config.NULL_ADDRESS)
        except Exception as e:
            logger.error(f"{operation} failed: {e}")
            raise ReadCallError(operation, str(e)) from e

        logger.info(f"Null address balance: {format_token_amount(null_balance, info.decimals)} {info.symbol}")
        logger.info(f"Wallet {format_address(config.EXAMPLE_WALLET)} balance: "
                    f"{format_token_amount(wallet_balance, info.decimals)} {info.symbol}")
        logger.info(f"Allowance {format_address(config.EXAMPLE_WALLET)} -> {format_address(config.NULL_ADDRESS)}: "
                    f"{format_token_amount(allowance, info.decimals)} {info.symbol}")
        return StateSample(null_balance=null_balance, wallet_balance=wallet_balance, allowance=allowance)

    async def balance_of(self, address: str) -> int:
        operation = 'Read Balance'
        try:
            return await self.client.balance_of(address)
        except Exception as e:
            logger.error(f"{operation} of {address} failed: {e}")
            raise ReadCallError(operation, str(e)) from e

    async def _query_transfer_events(self, operation: str) -> List[Any]:
        try:
            current_block = await self.client.get_block_number()
        except Exception as e:
            raise NetworkUnreachable(operation, str(e)) from e
        from_block = max(0, current_block - self.block_lookback)
        logger.info(f"Searching blocks {format_number_with_commas(from_block)} - "
                    f"{format_number_with_commas(current_block)}")
        try:
            events = await self.client.get_transfer_events(from_block, current_block)
        except Exception as e:
            logger.error(f"{operation} failed: {e}")
            raise QueryRangeError(operation, str(e)) from e
        logger.info(f"Total events found: {len(events)}")
        return events

    async def fetch_latest_events(self) -> List[Dict[str, Any]]:
        """
        Fetch the most recent Transfer events within the lookback window.

        :return: Up to ``max_events`` formatted events, oldest first.
        """
        operation = 'Fetch Latest Transfer Events'
        log_separator('LATEST TRANSFER EVENTS')
        info = self._require_info()
        events = await self._query_transfer_events(operation)
        latest = events[-self.max_events:] if self.max_events > 0 else []

        formatted_events = []
        for event in latest:
            formatted = format_event(event, info.decimals)
            if formatted is None:
                continue
            formatted_events.append(formatted)
            logger.info(f"Event #{len(formatted_events)}: block {formatted['blockNumber']} "
                        f"tx {formatted['transactionHash']} {formatted['from']} -> {formatted['to']} "
                        f"{format_number_with_commas(formatted['amount'])} {info.symbol}")
        return formatted_events

    async def fetch_latest_transactions(self) -> List[Dict[str, Any]]:
        """
        Resolve the transactions behind the most recent Transfer events.

        Hashes the node cannot return are skipped.

        :return: Up to ``max_transactions`` formatted transactions, oldest first.
        :raises TransactionLookupError: If every lookup raised.
        """
        operation = 'Fetch Latest Transactions'
        log_separator('LATEST TRANSACTIONS')
        self._require_info()
        events = await self._query_transfer_events(operation)

        # dict keeps first-seen order
        tx_hashes = (event.get('transactionHash') for event in events)
        unique_hashes = [tx_hash for tx_hash in dict.fromkeys(tx_hashes) if tx_hash is not None]
        logger.info(f"Total unique transactions found: {len(unique_hashes)}")
        latest_hashes = unique_hashes[-self.max_transactions:] if self.max_transactions > 0 else []

        transactions = []
        failures = []
        for tx_hash in latest_hashes:
            try:
                tx = await self.client.get_transaction(tx_hash)
                receipt = await self.client.get_transaction_receipt(tx_hash) if tx is not None else None
            except Exception as e:
                logger.error(f"{operation}: lookup of {tx_hash!r} failed: {e}")
                failures.append(e)
                continue
            if tx is None:
                logger.warning(f"{operation}: transaction {tx_hash!r} not found, skipping")
                continue
            formatted = format_transaction(tx, receipt)
            if formatted is None:
                continue
            transactions.append(formatted)
            logger.info(f"Transaction #{len(transactions)}: {formatted['hash']} block {formatted['blockNumber']} "
                        f"{formatted['from']} -> {formatted['to']} gas {format_number_with_commas(formatted['gasUsed'])} "
                        f"{formatted['status']}")

        # raise only when every lookup raised
        if failures and len(failures) == len(latest_hashes):
            raise TransactionLookupError(operation, str(failures[-1])) from failures[-1]
        return transactions

    async def get_network_status(self) -> Dict[str, Any]:
        block_number = await self.connect_to_network()
        try:
            chain_id = await self.client.get_chain_id()
        except Exception as e:
            logger.error(f"Read chain id failed: {e}")
            raise NetworkUnreachable('Connect to Ethereum Network', str(e)) from e
        return {
            'network': config.NETWORK_NAME,
            'chainId': chain_id,
            'rpcUrl': self.client.rpc_url,
            'currentBlockNumber': block_number,
            'connected': self.connected,
        }

    def get_contract_details(self) -> Dict[str, Any]:
        contract = self.client.contract
        if contract is None:
            raise ContractBindingError('Connect to Token Smart Contract', 'Contract is not connected')
        return {
            'contractAddress': contract.address,
            'abiLoaded': True,
            'functionsCount': len(self.client.abi),
            'network': config.NETWORK_NAME,
        }

    def get_all_data(self) -> Dict[str, Any]:
        return {
            'contractInfo': self.contract_info.to_dict() if self.contract_info else None,
            'network': config.NETWORK_NAME,
            'contractAddress': config.CONTRACT_ADDRESS,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }

    async def run_all(self) -> bool:
        """
        Run all six steps in order, logging each failure and carrying on.

        Steps 4-6 need the contract info and are skipped if steps 1-3 failed.

        :return: True if every step succeeded.
        """
        async def _connect_contract():
            return self.connect_to_contract()

        results = [
            await safe_execute(self.connect_to_network, 'Connect to Ethereum Network'),
            await safe_execute(_connect_contract, 'Connect to Token Smart Contract'),
            await safe_execute(self.read_contract_info, 'Read Contract Basic Information'),
        ]
        if self.contract_info is None:
            logger.error('Contract info unavailable, skipping the remaining steps')
            return False

        results += [
            await safe_execute(self.read_public_state_variables, 'Read Public State Variables'),
            await safe_execute(self.fetch_latest_events, 'Fetch Latest Transfer Events'),
            await safe_execute(self.fetch_latest_transactions, 'Fetch Latest Transactions'),
        ]
        return all(result is not None for result in results)
