from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form, Query
from sqlalchemy.ext.asyncio import AsyncSession
from decimal import Decimal
from typing import Optional, List

from tradevault.core.database import get_db
from tradevault.core.dependencies import get_current_user, require_not_frozen
from tradevault.core.storage import save_upload
from tradevault.modules.users.models import User
from tradevault.modules.wallet import schemas
from tradevault.modules.wallet.models import TransactionType
from tradevault.modules.wallet.services import AssetService, WalletService

router = APIRouter(prefix="/api/v1/wallet", tags=["wallet"])


@router.get("", response_model=schemas.WalletResponse)
async def get_wallet(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Balances per currency, including funds held for pending withdrawals"""
    assets = await AssetService.get_balances(db, current_user.id)
    return {"assets": assets}


@router.get("/transactions", response_model=schemas.TransactionListResponse)
async def list_transactions(
    type: Optional[str] = Query(None, description="Filter by transaction type"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get the current user's ledger, newest first"""
    txn_type = None
    if type:
        try:
            txn_type = TransactionType(type)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid transaction type: {type}"
            )

    transactions, total = await WalletService.list_transactions(
        db, current_user.id, txn_type=txn_type, page=page, page_size=page_size
    )
    return {
        "transactions": transactions,
        "total": total,
        "page": page,
        "page_size": page_size
    }


@router.post("/deposit", response_model=schemas.TransactionResponse, status_code=status.HTTP_201_CREATED)
async def request_deposit(
    amount: Decimal = Form(..., gt=0),
    network: str = Form(..., max_length=30),
    tx_hash: Optional[str] = Form(None, max_length=120),
    receipt: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_not_frozen)
):
    """
    Submit a recharge for confirmation.

    - Send funds to the address from /recharge-addresses first
    - Attach the transfer receipt (JPG, PNG, WEBP or PDF, max 5 MB)
    - The balance is credited once an administrator confirms
    """
    receipt_url = await save_upload(receipt, current_user.id, "receipts", "deposit")
    return await WalletService.request_deposit(
        db, current_user, amount, network, tx_hash=tx_hash, receipt_url=receipt_url
    )


@router.post("/withdraw", response_model=schemas.TransactionResponse, status_code=status.HTTP_201_CREATED)
async def request_withdrawal(
    withdraw_data: schemas.WithdrawRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Request a withdrawal.

    - Minimum 10 USDT, 0.5% fee
    - Requires a credit score of 100
    - Three attempts within an hour block withdrawals and cost 10 credit points
    - The amount is held until an administrator approves or rejects
    """
    return await WalletService.request_withdrawal(
        db,
        current_user,
        withdraw_data.amount,
        withdraw_data.address,
        withdraw_data.network,
        withdraw_data.currency
    )


@router.get("/recharge-addresses", response_model=List[schemas.RechargeAddress])
async def get_recharge_addresses(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Platform deposit addresses per network"""
    addresses = await WalletService.get_recharge_addresses(db)
    return [{"network": network, "address": address} for network, address in sorted(addresses.items())]
