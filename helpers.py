from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar, Union
from datetime import datetime
from eth_utils import encode_hex, is_checksum_address, is_hex_address
from loguru import logger

T = TypeVar('T')

SEPARATOR_WIDTH = 80


def format_address(address: Optional[str]) -> Optional[str]:
    """
    Shorten an address for display, e.g. 0x742d35Cc...f0bEb -> 0x742d...f0bEb.

    :param address: The full address.
    :return: The shortened address, or the input itself when it is empty or shorter than 10 characters.
    """
    if not address or len(address) < 10:
        return address
    return f"{address[:6]}...{address[-5:]}"


def _to_int(value: Union[int, str]) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Unsupported amount type: {type(value).__name__}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith(('0x', '-0x')):
        return int(text, 16)
    return int(text)


def format_units(value: Union[int, str], decimals: int) -> str:
    """
    Scale an integer amount given in the smallest unit by 10 ** -decimals.

    The result always carries a fractional part with trailing zeros trimmed,
    so 1000000 with 6 decimals becomes "1.0" and 1500000 becomes "1.5".

    :param value: Amount in the smallest unit (int, decimal string or 0x-prefixed hex string).
    :param decimals: Number of decimal places of the unit.
    :return: Decimal string.
    :raises ValueError: If the amount cannot be parsed or decimals is negative.
    """
    amount = _to_int(value)
    decimals = int(decimals)
    if decimals < 0:
        raise ValueError(f"Negative decimals: {decimals}")
    sign = '-' if amount < 0 else ''
    whole, fraction = divmod(abs(amount), 10 ** decimals)
    fraction_digits = str(fraction).rjust(decimals, '0').rstrip('0') if decimals else ''
    return f"{sign}{whole}.{fraction_digits or '0'}"


def format_token_amount(raw_amount: Union[int, str], decimals: int = 18) -> str:
    """
    Convert a raw token amount to a human-readable decimal string.

    :param raw_amount: Amount in the smallest unit.
    :param decimals: Token decimals (18 for most tokens, 6 for USDT).
    :return: Formatted amount, "0" if the amount cannot be converted.
    """
    try:
        return format_units(raw_amount, decimals)
    except (TypeError, ValueError) as e:
        logger.error(f"Error formatting token amount {raw_amount!r}: {e}")
        return '0'


def format_ether(wei: Union[int, str]) -> str:
    """
    :param wei: Amount in wei.
    :return: Amount in ETH as a decimal string.
    """
    return format_units(wei, 18)


def format_number_with_commas(value: Any) -> Any:
    """
    Insert thousands separators into the integer part of a number: 1000000 -> 1,000,000.

    :param value: Number or numeric string.
    :return: Formatted string, or the input unchanged if it is not numeric.
    """
    try:
        text = str(value)
        sign = ''
        if text.startswith('-'):
            sign, text = '-', text[1:]
        whole, dot, fraction = text.partition('.')
        if not whole.isdigit():
            return value
        return f"{sign}{int(whole):,}{dot}{fraction}"
    except (TypeError, ValueError):
        return value


def format_timestamp(timestamp: Union[int, float]) -> str:
    """Unix timestamp -> local date-time string."""
    try:
        return datetime.fromtimestamp(timestamp).strftime('%Y-%m-%d %H:%M:%S')
    except (TypeError, ValueError, OverflowError, OSError):
        return 'Invalid Date'


def _to_hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return encode_hex(bytes(value))
    return str(value)


def format_event(event: Any, decimals: int = 18) -> Optional[Dict[str, Any]]:
    """
    Flatten a decoded Transfer log into a JSON-friendly dict.

    :param event: Decoded event (web3 AttributeDict or a plain mapping with an ``args`` mapping).
    :param decimals: Token decimals used for ``amount``.
    :return: The formatted event, or None if a required field is missing.
    """
    try:
        args = event['args']
        sender, receiver, value = args['from'], args['to'], args['value']
        return {
            'blockNumber': event['blockNumber'],
            'transactionHash': _to_hex(event['transactionHash']),
            'from': format_address(sender),
            'fromFull': sender,
            'to': format_address(receiver),
            'toFull': receiver,
            'amount': format_token_amount(value, decimals),
            'amountRaw': str(value),
            'eventName': event.get('event') or 'Transfer',
        }
    except Exception as e:
        logger.error(f"Error formatting event: {e!r}")
        return None


def format_transaction(tx: Any, receipt: Any = None) -> Optional[Dict[str, Any]]:
    """
    Flatten a transaction and its optional receipt.

    :param tx: Transaction as returned by ``eth_getTransactionByHash``.
    :param receipt: Receipt, or None when it is not available.
    :return: The formatted transaction, or None if a required field is missing.
    """
    try:
        receiver = tx.get('to')
        if receipt:
            gas_used = str(receipt['gasUsed'])
            status = 'Success' if receipt['status'] == 1 else 'Failed'
        else:
            gas_used, status = 'N/A', 'Unknown'
        return {
            'hash': _to_hex(tx['hash']),
            'from': format_address(tx['from']),
            'fromFull': tx['from'],
            'to': format_address(receiver),
            'toFull': receiver,
            'value': format_ether(tx['value']),
            'blockNumber': tx['blockNumber'],
            'gasUsed': gas_used,
            'status': status,
        }
    except Exception as e:
        logger.error(f"Error formatting transaction: {e!r}")
        return None


def is_valid_address(address: Any) -> bool:
    """
    Check for a 0x-prefixed 20-byte hex address. Mixed-case input must carry a valid EIP-55 checksum.

    :param address: Value to check.
    :return: True if the address is well formed.
    """
    try:
        if not isinstance(address, str) or not address.startswith('0x'):
            return False
        if not is_hex_address(address):
            return False
        digits = address[2:]
        if digits != digits.lower() and digits != digits.upper():
            return bool(is_checksum_address(address))
        return True
    except Exception:
        return False


def log_separator(title: str = '') -> None:
    line = '=' * SEPARATOR_WIDTH
    if title:
        logger.info(f"\n{line}\n  {title}\n{line}")
    else:
        logger.info(line)


async def safe_execute(fn: Callable[[], Awaitable[T]], operation_name: str = 'Operation') -> Optional[T]:
    """
    Await ``fn()`` and log the outcome instead of raising.

    :param fn: Zero-argument coroutine function.
    :param operation_name: Name used in the log lines.
    :return: The result of ``fn()``, or None if it raised.
    """
    logger.info(f"Starting: {operation_name}...")
    try:
        result = await fn()
    except Exception as e:
        logger.error(f"Failed: {operation_name}: {e}")
        return None
    logger.info(f"Completed: {operation_name}")
    return result
