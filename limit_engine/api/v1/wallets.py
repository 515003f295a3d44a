from fastapi import APIRouter, Depends, HTTPException, Query

from limit_engine.core.container import Container
from limit_engine.core.deps import current_user_id, get_container
from limit_engine.core.errors import ChainError, InvalidOrderInput
from limit_engine.schemas.wallet import BalanceOut, WalletCreate, WalletOut
from limit_engine.services.chain import NATIVE_TOKEN

router = APIRouter()


@router.post("/wallets", response_model=WalletOut, status_code=201)
def register_wallet(
    payload: WalletCreate,
    user_id: int = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    try:
        return container.wallets.register_wallet(user_id, payload.private_key)
    except InvalidOrderInput as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/wallets", response_model=list[WalletOut])
def list_wallets(
    user_id: int = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    return container.wallets.list_wallets(user_id)


@router.get("/wallets/{address}/balance", response_model=BalanceOut)
def wallet_balance(
    address: str,
    token: str = Query(NATIVE_TOKEN, description="Token address; zero address for the native asset"),
    user_id: int = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    try:
        balance = container.wallets.balance_of(user_id, address, token)
    except InvalidOrderInput as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ChainError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return BalanceOut(address=address, token=token, balance=str(balance))
