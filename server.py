from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel, Field
from typing import Any, List
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import asyncio
from loguru import logger

import config
from helpers import format_token_amount, is_valid_address
from main import create_client
from service import IntegrationError, TokenIntegrationService


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# Response models
class SuccessResponse(BaseModel):
    success: bool = True
    data: Any = None
    timestamp: str = Field(default_factory=_timestamp)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    timestamp: str = Field(default_factory=_timestamp)


class Endpoint(BaseModel):
    path: str
    method: str = 'GET'
    description: str


class DocsResponse(BaseModel):
    success: bool = True
    message: str
    version: str
    description: str
    endpoints: List[Endpoint]
    timestamp: str = Field(default_factory=_timestamp)


ENDPOINTS = [
    Endpoint(path='/contract-info', description='Get basic contract information (cached)'),
    Endpoint(path='/events', description='Get latest Transfer events'),
    Endpoint(path='/transactions', description='Get latest transactions'),
    Endpoint(path='/balance/{address}', description='Get token balance for an address'),
    Endpoint(path='/all', description='Get all data at once'),
    Endpoint(path='/network', description='[Step 1] Connect to Ethereum network'),
    Endpoint(path='/contract', description='[Step 2] Get smart contract connection details'),
    Endpoint(path='/read-contract-info', description='[Step 3] Read contract info (fresh call)'),
    Endpoint(path='/read-state-variables', description='[Step 4] Read public state variables'),
    Endpoint(path='/fetch-events', description='[Step 5] Fetch latest transfer events'),
    Endpoint(path='/fetch-transactions', description='[Step 6] Fetch latest transactions'),
]


def build_service() -> TokenIntegrationService:
    return TokenIntegrationService(create_client())


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting token API for {config.CONTRACT_ADDRESS} on {config.NETWORK_NAME}")
    app.state.service = build_service()
    yield
    logger.info('Shutting down token API')


app = FastAPI(title='Ethereum Token Integration API', version=config.API_VERSION, lifespan=lifespan)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=ErrorResponse(error=str(exc.detail)).model_dump())


@app.exception_handler(IntegrationError)
async def integration_error_handler(request: Request, exc: IntegrationError):
    logger.error(f"Error in {request.url.path} ({exc.operation}): {exc.message}")
    return JSONResponse(status_code=500, content=ErrorResponse(error=exc.message).model_dump())


async def get_service(request: Request) -> TokenIntegrationService:
    service: TokenIntegrationService = request.app.state.service
    await service.initialize()
    return service


@app.get('/', response_model=DocsResponse)
async def index():
    return DocsResponse(
        message='Ethereum Token Integration API',
        version=config.API_VERSION,
        description='Every integration step is available as a direct API endpoint',
        endpoints=ENDPOINTS,
    )


@app.get('/contract-info', response_model=SuccessResponse)
async def contract_info(service: TokenIntegrationService = Depends(get_service)):
    logger.info('API Request: GET /contract-info')
    return SuccessResponse(data=service.contract_info.to_dict())


async def _events(service: TokenIntegrationService, path: str) -> SuccessResponse:
    logger.info(f"API Request: GET {path}")
    try:
        events = await service.fetch_latest_events()
    except Exception as e:
        logger.error(f"Error in {path}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return SuccessResponse(data={'events': events, 'count': len(events)})


async def _transactions(service: TokenIntegrationService, path: str) -> SuccessResponse:
    logger.info(f"API Request: GET {path}")
    try:
        transactions = await service.fetch_latest_transactions()
    except Exception as e:
        logger.error(f"Error in {path}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return SuccessResponse(data={'transactions': transactions, 'count': len(transactions)})


@app.get('/events', response_model=SuccessResponse)
async def events(service: TokenIntegrationService = Depends(get_service)):
    return await _events(service, '/events')


@app.get('/fetch-events', response_model=SuccessResponse)
async def fetch_events(service: TokenIntegrationService = Depends(get_service)):
    return await _events(service, '/fetch-events')


@app.get('/transactions', response_model=SuccessResponse)
async def transactions(service: TokenIntegrationService = Depends(get_service)):
    return await _transactions(service, '/transactions')


@app.get('/fetch-transactions', response_model=SuccessResponse)
async def fetch_transactions(service: TokenIntegrationService = Depends(get_service)):
    return await _transactions(service, '/fetch-transactions')


@app.get('/balance/{address}', response_model=SuccessResponse)
async def balance(address: str, request: Request):
    logger.info(f"API Request: GET /balance/{address}")
    if not is_valid_address(address):
        raise HTTPException(status_code=400, detail='Invalid Ethereum address format')

    service = await get_service(request)
    try:
        balance_raw = await service.balance_of(address)
    except Exception as e:
        logger.error(f"Error in /balance: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    info = service.contract_info
    return SuccessResponse(data={
        'address': address,
        'balance': format_token_amount(balance_raw, info.decimals),
        'balanceRaw': str(balance_raw),
        'symbol': info.symbol,
        'decimals': str(info.decimals),
    })


@app.get('/all', response_model=SuccessResponse)
async def all_data(service: TokenIntegrationService = Depends(get_service)):
    logger.info('API Request: GET /all')
    results = await asyncio.gather(
        service.fetch_latest_events(),
        service.fetch_latest_transactions(),
        return_exceptions=True,
    )
    latest_events, latest_transactions = [
        [] if isinstance(result, Exception) else result for result in results
    ]
    for name, result in zip(('events', 'transactions'), results):
        if isinstance(result, Exception):
            logger.error(f"Error in /all fetching {name}: {result}")

    try:
        details = service.get_contract_details()
    except Exception as e:
        logger.error(f"Error in /all: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return SuccessResponse(data={
        'contractInfo': service.contract_info.to_dict(),
        'latestEvents': latest_events,
        'latestTransactions': latest_transactions,
        'network': config.NETWORK_NAME,
        'contractAddress': details['contractAddress'],
    })


@app.get('/network', response_model=SuccessResponse)
async def network(service: TokenIntegrationService = Depends(get_service)):
    logger.info('API Request: GET /network')
    try:
        status = await service.get_network_status()
    except Exception as e:
        logger.error(f"Error in /network: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return SuccessResponse(data=status)


@app.get('/contract', response_model=SuccessResponse)
async def contract(service: TokenIntegrationService = Depends(get_service)):
    logger.info('API Request: GET /contract')
    try:
        details = service.get_contract_details()
    except Exception as e:
        logger.error(f"Error in /contract: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return SuccessResponse(data=details)


@app.get('/read-contract-info', response_model=SuccessResponse)
async def read_contract_info(service: TokenIntegrationService = Depends(get_service)):
    logger.info('API Request: GET /read-contract-info')
    try:
        info = await service.read_contract_info()
    except Exception as e:
        logger.error(f"Error in /read-contract-info: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return SuccessResponse(data=info.to_dict())


@app.get('/read-state-variables', response_model=SuccessResponse)
async def read_state_variables(service: TokenIntegrationService = Depends(get_service)):
    logger.info('API Request: GET /read-state-variables')
    try:
        sample = await service.read_public_state_variables()
    except Exception as e:
        logger.error(f"Error in /read-state-variables: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    info = service.contract_info
    data = {
        'nullAddressBalance': format_token_amount(sample.null_balance, info.decimals),
        'exampleWalletBalance': format_token_amount(sample.wallet_balance, info.decimals),
        'allowance': format_token_amount(sample.allowance, info.decimals),
        'symbol': info.symbol,
    }
    return SuccessResponse(data=data)


# Run the server
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
