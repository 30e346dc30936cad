from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.contract.async_contract import AsyncContract
from web3.exceptions import TransactionNotFound
from eth_utils import to_checksum_address
from typing import Any, Dict, List, Optional
import asyncio
import time
from loguru import logger

import config
from helpers import format_timestamp, log_separator
from service import TokenIntegrationService

logger.add(config.LOG_PATH, format=config.LOG_FORMAT, level=config.LOG_LEVEL)


class TokenContractClient:
    """
    Read-only access to an ERC-20 token contract over JSON-RPC.
    """

    contract: Optional[AsyncContract]

    def __init__(self, rpc_url: str, contract_address: str, abi: List[Dict]):
        """
        Initialize the TokenContractClient class.

        The contract is not bound until :meth:`connect_contract` is called.

        :param rpc_url: URL of the RPC server.
        :param contract_address: Address of the ERC-20 token contract.
        :param abi: The contract ABI.
        """
        self.rpc_url = rpc_url
        self.address = contract_address
        self.abi = abi
        self.web3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.contract = None

    def connect_contract(self) -> AsyncContract:
        """
        Bind the contract handle from the configured address and ABI.

        :return: The bound contract.
        """
        self.contract = self.web3.eth.contract(address=to_checksum_address(self.address), abi=self.abi)
        return self.contract

    def _bound(self) -> AsyncContract:
        if self.contract is None:
            raise RuntimeError('Contract is not connected')
        return self.contract

    async def get_block_number(self) -> int:
        return await self.web3.eth.block_number

    async def get_chain_id(self) -> int:
        return await self.web3.eth.chain_id

    async def get_transaction(self, tx_hash: str) -> Any:
        """
        Retrieve a transaction by hash.

        :param tx_hash: The transaction hash.
        :return: The transaction, or None if the node does not have it.
        """
        try:
            return await self.web3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            logger.warning(f"Transaction {tx_hash} not found")
            return None

    async def get_transaction_receipt(self, tx_hash: str) -> Any:
        """
        Retrieve a transaction receipt.

        :param tx_hash: The transaction hash.
        :return: The receipt, or None if the node does not have one.
        """
        try:
            return await self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            logger.warning(f"No receipt for transaction {tx_hash}")
            return None

    async def name(self) -> str:
        return await self._bound().functions.name().call()

    async def symbol(self) -> str:
        return await self._bound().functions.symbol().call()

    async def decimals(self) -> int:
        return await self._bound().functions.decimals().call()

    async def total_supply(self) -> int:
        return await self._bound().functions.totalSupply().call()

    async def balance_of(self, address: str) -> int:
        return await self._bound().functions.balanceOf(to_checksum_address(address)).call()

    async def allowance(self, owner: str, spender: str) -> int:
        return await self._bound().functions.allowance(
            to_checksum_address(owner), to_checksum_address(spender)).call()

    async def get_transfer_events(self, start_block: int, end_block: int) -> List[Any]:
        """
        Retrieve decoded Transfer events from a range of blocks.

        :param start_block: The starting block number.
        :param end_block: The ending block number (inclusive).
        :return: A list of decoded Transfer events, oldest first.
        """
        try:
            events = await self._bound().events.Transfer.get_logs(from_block=start_block, to_block=end_block)
            return list(events)
        except Exception as e:
            logger.error(f"Error fetching logs from block {start_block} to {end_block}: {e}")
            raise


def create_client() -> TokenContractClient:
    return TokenContractClient(config.RPC_URL, config.CONTRACT_ADDRESS, config.ERC20_ABI)


async def main():
    log_separator('ETHEREUM TOKEN CONTRACT INTEGRATION STARTED')
    logger.info(f"Timestamp: {format_timestamp(time.time())}")
    logger.info(f"Network: {config.NETWORK_NAME.upper()}")
    logger.info(f"RPC URL: {config.RPC_URL}")
    logger.info(f"Contract Address: {config.CONTRACT_ADDRESS}")

    service = TokenIntegrationService(create_client())
    completed = await service.run_all()
    if completed:
        log_separator('ALL OPERATIONS COMPLETED SUCCESSFULLY')
    else:
        log_separator('INTEGRATION FINISHED WITH ERRORS')
    logger.info(service.get_all_data())


if __name__ == '__main__':
    asyncio.run(main())
