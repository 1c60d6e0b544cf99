from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Dict
import logging

from tradevault.core.config import settings
from tradevault.core.database import utcnow
from tradevault.core.exceptions import (
    AccountFrozen, CreditScoreTooLow, InsufficientFunds, InvalidAmount,
    InvalidTransition, NotFound, OutOfRange
)
from tradevault.core.security import generate_reference
from tradevault.modules.users.models import User
from tradevault.modules.admin.models import SystemConfig, RECHARGE_ADDRESS_PREFIX
from tradevault.modules.credit.models import AttemptKind
from tradevault.modules.credit.services import CreditService
from tradevault.modules.notifications.models import NotificationType
from tradevault.modules.notifications.services import NotificationService
from tradevault.modules.wallet.models import Asset, Transaction, TransactionType, TransactionStatus

logger = logging.getLogger(__name__)

WITHDRAW_FEE_RATE = Decimal("0.005")
MIN_WITHDRAW_AMOUNT = Decimal("10")

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class AssetService:
    """
    Balance mutations.

    Every change is a single UPDATE evaluated by the database, debits carry
    their own sufficiency check in the WHERE clause. Callers never read a
    balance and write it back.
    """

    @staticmethod
    async def get_balances(db: AsyncSession, user_id: int) -> List[Asset]:
        result = await db.execute(
            select(Asset)
            .where(Asset.user_id == user_id)
            .order_by(Asset.currency)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_balance(db: AsyncSession, user_id: int, currency: str = None) -> Decimal:
        currency = currency or settings.DEFAULT_CURRENCY
        result = await db.execute(
            select(Asset.balance).where(Asset.user_id == user_id, Asset.currency == currency)
        )
        balance = result.scalar_one_or_none()
        return balance if balance is not None else Decimal("0")

    @staticmethod
    async def credit(db: AsyncSession, user_id: int, amount: Decimal, currency: str = None) -> None:
        """Add to the balance, creating the asset row on first use"""
        currency = currency or settings.DEFAULT_CURRENCY
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmount()

        result = await db.execute(
            update(Asset)
            .where(Asset.user_id == user_id, Asset.currency == currency)
            .values(balance=Asset.balance + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.add(Asset(user_id=user_id, currency=currency, balance=amount, frozen_balance=Decimal("0")))
            await db.flush()

        logger.info(f"Credited {amount} {currency} to user {user_id}")

    @staticmethod
    async def debit(db: AsyncSession, user_id: int, amount: Decimal, currency: str = None) -> None:
        """Subtract from the balance; InsufficientFunds if it would go negative"""
        currency = currency or settings.DEFAULT_CURRENCY
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmount()

        result = await db.execute(
            update(Asset)
            .where(
                Asset.user_id == user_id,
                Asset.currency == currency,
                Asset.balance >= amount
            )
            .values(balance=Asset.balance - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InsufficientFunds()

        logger.info(f"Debited {amount} {currency} from user {user_id}")

    @staticmethod
    async def hold(db: AsyncSession, user_id: int, amount: Decimal, currency: str = None) -> None:
        """Move funds from balance into frozen_balance"""
        currency = currency or settings.DEFAULT_CURRENCY
        amount = to_money(amount)
        result = await db.execute(
            update(Asset)
            .where(
                Asset.user_id == user_id,
                Asset.currency == currency,
                Asset.balance >= amount
            )
            .values(
                balance=Asset.balance - amount,
                frozen_balance=Asset.frozen_balance + amount,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InsufficientFunds()

    @staticmethod
    async def release_hold(db: AsyncSession, user_id: int, amount: Decimal, currency: str = None) -> None:
        """Drop held funds once they have left the platform"""
        currency = currency or settings.DEFAULT_CURRENCY
        amount = to_money(amount)
        result = await db.execute(
            update(Asset)
            .where(
                Asset.user_id == user_id,
                Asset.currency == currency,
                Asset.frozen_balance >= amount
            )
            .values(frozen_balance=Asset.frozen_balance - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InsufficientFunds("Held balance is lower than the withdrawal amount")

    @staticmethod
    async def return_hold(db: AsyncSession, user_id: int, amount: Decimal, currency: str = None) -> None:
        """Move held funds back to the spendable balance"""
        currency = currency or settings.DEFAULT_CURRENCY
        amount = to_money(amount)
        result = await db.execute(
            update(Asset)
            .where(
                Asset.user_id == user_id,
                Asset.currency == currency,
                Asset.frozen_balance >= amount
            )
            .values(
                balance=Asset.balance + amount,
                frozen_balance=Asset.frozen_balance - amount,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InsufficientFunds("Held balance is lower than the withdrawal amount")


class WalletService:
    """Deposits, withdrawals and the transaction ledger"""

    @staticmethod
    async def record_entry(
        db: AsyncSession,
        user_id: int,
        txn_type: TransactionType,
        amount: Decimal,
        note: str = None,
        related_entity_type: str = None,
        related_entity_id: int = None,
        currency: str = None
    ) -> Transaction:
        """Append a completed ledger row for a balance change made elsewhere"""
        txn = Transaction(
            reference_code=generate_reference("TXN"),
            user_id=user_id,
            type=txn_type,
            status=TransactionStatus.COMPLETED,
            amount=to_money(amount),
            currency=currency or settings.DEFAULT_CURRENCY,
            note=note,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id
        )
        db.add(txn)
        await db.flush()
        return txn

    @staticmethod
    async def list_transactions(
        db: AsyncSession,
        user_id: int,
        txn_type: Optional[TransactionType] = None,
        page: int = 1,
        page_size: int = 20
    ) -> tuple[List[Transaction], int]:
        query = select(Transaction).where(Transaction.user_id == user_id)
        if txn_type:
            query = query.where(Transaction.type == txn_type)

        total = await db.scalar(select(func.count()).select_from(query.subquery()))

        query = query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await db.execute(query)
        return list(result.scalars().all()), total or 0

    @staticmethod
    async def get_transaction(db: AsyncSession, transaction_id: int) -> Transaction:
        result = await db.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        txn = result.scalar_one_or_none()
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    @staticmethod
    async def request_deposit(
        db: AsyncSession,
        user: User,
        amount: Decimal,
        network: str,
        tx_hash: Optional[str] = None,
        receipt_url: Optional[str] = None
    ) -> Transaction:
        """Queue a deposit for admin confirmation; nothing is credited yet"""
        if amount is None or not amount.is_finite() or amount <= 0:
            raise InvalidAmount()

        txn = Transaction(
            reference_code=generate_reference("DEP"),
            user_id=user.id,
            type=TransactionType.DEPOSIT,
            status=TransactionStatus.PENDING,
            amount=to_money(amount),
            currency=settings.DEFAULT_CURRENCY,
            network=network,
            tx_hash=tx_hash,
            receipt_url=receipt_url,
            note=f"Recharge {to_money(amount)} {settings.DEFAULT_CURRENCY} via {network}"
        )
        db.add(txn)
        await db.flush()
        await db.refresh(txn)

        logger.info(f"Deposit {txn.reference_code} requested by user {user.id}: {txn.amount}")
        return txn

    @staticmethod
    async def request_withdrawal(
        db: AsyncSession,
        user: User,
        amount: Decimal,
        address: str,
        network: str,
        currency: str = None
    ) -> Transaction:
        """
        Hold the amount and queue a withdrawal for admin review.

        Order: frozen account, amount, credit score, then the attempt is
        recorded before the hourly limit is checked, so the blocked attempt
        counts too.
        """
        currency = currency or settings.DEFAULT_CURRENCY

        if user.is_frozen:
            raise AccountFrozen()
        if amount is None or not amount.is_finite() or amount <= 0:
            raise InvalidAmount()
        if amount < MIN_WITHDRAW_AMOUNT:
            raise OutOfRange(f"Minimum withdrawal is {MIN_WITHDRAW_AMOUNT} {currency}")
        if not CreditService.can_withdraw(user):
            raise CreditScoreTooLow(
                f"Credit score {user.credit_score} is below 100; withdrawals are disabled"
            )

        await CreditService.record_attempt(db, user.id, AttemptKind.WITHDRAW)
        await CreditService.check_withdrawal_limit(db, user.id)

        amount = to_money(amount)
        await AssetService.hold(db, user.id, amount, currency)

        fee = to_money(amount * WITHDRAW_FEE_RATE)
        txn = Transaction(
            reference_code=generate_reference("WDR"),
            user_id=user.id,
            type=TransactionType.WITHDRAW,
            status=TransactionStatus.PENDING,
            amount=amount,
            currency=currency,
            fee=fee,
            network=network,
            address=address,
            note=f"Withdraw {amount} {currency} to {address} via {network}"
        )
        db.add(txn)
        await db.flush()
        await db.refresh(txn)

        logger.info(f"Withdrawal {txn.reference_code} requested by user {user.id}: {amount} (fee {fee})")
        return txn

    @staticmethod
    async def _transition(
        db: AsyncSession,
        transaction_id: int,
        new_status: TransactionStatus,
        **values
    ) -> Transaction:
        """Compare-and-set a pending transaction into new_status"""
        txn = await WalletService.get_transaction(db, transaction_id)
        result = await db.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.PENDING
            )
            .values(status=new_status, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"Transaction {transaction_id} is no longer pending ({txn.status.value})")
            raise InvalidTransition(f"Transaction is already {txn.status.value}")
        return txn

    @staticmethod
    async def approve_transaction(db: AsyncSession, transaction_id: int) -> Transaction:
        """Deposit: credit the balance. Withdrawal: the held funds leave."""
        txn = await WalletService._transition(db, transaction_id, TransactionStatus.COMPLETED)

        if txn.type == TransactionType.DEPOSIT:
            await AssetService.credit(db, txn.user_id, txn.amount, txn.currency)
            title = "Deposit confirmed"
            message = f"Your deposit of {txn.amount} {txn.currency} has been credited."
        elif txn.type == TransactionType.WITHDRAW:
            await AssetService.release_hold(db, txn.user_id, txn.amount, txn.currency)
            title = "Withdrawal completed"
            message = (
                f"Your withdrawal of {txn.amount} {txn.currency} has been sent. "
                f"You receive {txn.amount - txn.fee} {txn.currency} after fees."
            )
        else:
            raise InvalidTransition(f"{txn.type.value} entries are not reviewed")

        await NotificationService.notify(
            db, txn.user_id, NotificationType.WALLET, title, message,
            related_entity_type="transaction", related_entity_id=txn.id
        )
        logger.info(f"Transaction {txn.reference_code} approved")
        return await WalletService.get_transaction(db, transaction_id)

    @staticmethod
    async def reject_transaction(db: AsyncSession, transaction_id: int, reason: str = None) -> Transaction:
        """Withdrawal: the held funds return to the balance. Deposit: nothing to undo."""
        txn = await WalletService.get_transaction(db, transaction_id)
        if txn.type not in (TransactionType.DEPOSIT, TransactionType.WITHDRAW):
            raise InvalidTransition(f"{txn.type.value} entries are not reviewed")

        note = f"{txn.note or ''} | Rejected: {reason}" if reason else txn.note
        txn = await WalletService._transition(db, transaction_id, TransactionStatus.CANCELLED, note=note)

        if txn.type == TransactionType.WITHDRAW:
            await AssetService.return_hold(db, txn.user_id, txn.amount, txn.currency)

        kind = "deposit" if txn.type == TransactionType.DEPOSIT else "withdrawal"
        await NotificationService.notify(
            db, txn.user_id, NotificationType.WALLET,
            f"{kind.capitalize()} rejected",
            f"Your {kind} of {txn.amount} {txn.currency} was rejected." + (f" Reason: {reason}" if reason else ""),
            related_entity_type="transaction", related_entity_id=txn.id
        )
        logger.info(f"Transaction {txn.reference_code} rejected")
        return await WalletService.get_transaction(db, transaction_id)

    @staticmethod
    async def completed_deposit_total(db: AsyncSession, user_id: int) -> Decimal:
        total = await db.scalar(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.user_id == user_id,
                Transaction.type == TransactionType.DEPOSIT,
                Transaction.status == TransactionStatus.COMPLETED
            )
        )
        return to_money(total or 0)

    @staticmethod
    async def get_recharge_addresses(db: AsyncSession) -> Dict[str, str]:
        """Deposit addresses per network, as configured by admins"""
        result = await db.execute(
            select(SystemConfig).where(SystemConfig.key.like(f"{RECHARGE_ADDRESS_PREFIX}%"))
        )
        return {
            row.key[len(RECHARGE_ADDRESS_PREFIX):]: row.value
            for row in result.scalars().all()
            if row.value
        }
