import logging
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone
from rest_framework.exceptions import NotFound

from gigstream.exceptions import (
    AlreadyProcessed,
    BelowMinimumWithdrawal,
    IdempotencyKeyReused,
    InsufficientBalance,
    PaymentProviderError,
    Unauthorized,
)
from notifications.services import notify
from payments.services import PaymentService
from .models import LedgerEntry, Wallet, WithdrawalRequest
from .utils import percentage_of, to_money

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def get_or_create_wallet(user):
    wallet, _ = Wallet.objects.get_or_create(
        user=user,
        defaults={'currency': settings.DEFAULT_CURRENCY},
    )
    return wallet


def lock_wallet(user):
    """Return the user's wallet row locked for update. Must run inside ``transaction.atomic``."""
    wallet = get_or_create_wallet(user)
    return Wallet.objects.select_for_update().get(pk=wallet.pk)


def post_entry(wallet, *, entry_type, bucket, amount, order=None, withdrawal=None,
               description='', status='completed', external_id=''):
    """
    Apply a signed ``amount`` to one bucket of a locked wallet and append the
    matching ledger row. A second entry of the same type for the same order or
    withdrawal raises ``AlreadyProcessed``.
    """
    amount = to_money(amount)

    if bucket == LedgerEntry.AVAILABLE:
        new_value = wallet.balance + amount
        if new_value < ZERO:
            raise InsufficientBalance()
        wallet.balance = new_value
    elif bucket == LedgerEntry.PENDING:
        new_value = wallet.pending_clearance + amount
        if new_value < ZERO:
            raise InsufficientBalance("Pending clearance cannot become negative.")
        wallet.pending_clearance = new_value
    else:
        raise ValueError(f"Unknown ledger bucket: {bucket}")

    try:
        with transaction.atomic():
            entry = LedgerEntry.objects.create(
                wallet=wallet,
                user_id=wallet.user_id,
                order=order,
                withdrawal=withdrawal,
                entry_type=entry_type,
                bucket=bucket,
                amount=amount,
                balance_after=new_value,
                currency=wallet.currency,
                status=status,
                description=description,
                external_id=external_id,
            )
    except IntegrityError:
        raise AlreadyProcessed(f"{entry_type} has already been recorded for this record.")

    wallet.save(update_fields=['balance', 'pending_clearance', 'updated_at'])
    return entry


def get_escrow_balance(user):
    wallet = Wallet.objects.filter(user=user).first()
    if wallet is None:
        return {'available': ZERO, 'pending': ZERO, 'total': ZERO}
    return {
        'available': wallet.balance,
        'pending': wallet.pending_clearance,
        'total': wallet.balance + wallet.pending_clearance,
    }


def reconcile_wallet(wallet):
    """Compare stored balances against the sums of the wallet's ledger entries."""
    sums = {
        bucket: LedgerEntry.objects.filter(wallet=wallet, bucket=bucket).aggregate(
            total=Coalesce(Sum('amount'), Value(ZERO))
        )['total']
        for bucket in (LedgerEntry.AVAILABLE, LedgerEntry.PENDING)
    }
    expected_balance = to_money(sums[LedgerEntry.AVAILABLE])
    expected_pending = to_money(sums[LedgerEntry.PENDING])
    return {
        'wallet_id': wallet.id,
        'user_id': wallet.user_id,
        'balance': wallet.balance,
        'expected_balance': expected_balance,
        'pending_clearance': wallet.pending_clearance,
        'expected_pending_clearance': expected_pending,
        'balanced': wallet.balance == expected_balance and wallet.pending_clearance == expected_pending,
    }


def reconcile_all_wallets():
    mismatches = []
    for wallet in Wallet.objects.all().iterator():
        report = reconcile_wallet(wallet)
        if not report['balanced']:
            logger.error(f"Wallet {wallet.id} out of balance: {report}")
            mismatches.append(report)
    return mismatches


class WithdrawalService:
    """
    Seller payouts. The requested amount leaves the available balance as soon as
    the request is created; rejection, cancellation and rail failures put it back
    with a reversal entry.
    """
    def __init__(self, payment_service=None):
        self.payment_service = payment_service or PaymentService()

    def request(self, *, user, amount, method, account_details, idempotency_key=None):
        amount = to_money(amount)
        if amount < settings.MIN_WITHDRAWAL_AMOUNT:
            raise BelowMinimumWithdrawal(
                f"Minimum withdrawal amount is {settings.MIN_WITHDRAWAL_AMOUNT}."
            )

        with transaction.atomic():
            wallet = lock_wallet(user)

            if idempotency_key:
                existing = self._find_by_key(user, idempotency_key)
                if existing:
                    return self._replay(existing, amount, method), False

            if amount > wallet.balance:
                raise InsufficientBalance()

            fee = percentage_of(amount, settings.WITHDRAWAL_FEE_PERCENT)
            try:
                with transaction.atomic():
                    withdrawal = WithdrawalRequest.objects.create(
                        user=user,
                        amount=amount,
                        fee=fee,
                        net_amount=amount - fee,
                        currency=wallet.currency,
                        method=method,
                        account_details=account_details,
                        idempotency_key=idempotency_key or None,
                    )
            except IntegrityError:
                if not idempotency_key:
                    raise
                # Another request with the same key committed first.
                existing = WithdrawalRequest.objects.get(user=user, idempotency_key=idempotency_key)
                return self._replay(existing, amount, method), False

            post_entry(
                wallet,
                entry_type=LedgerEntry.WITHDRAWAL,
                bucket=LedgerEntry.AVAILABLE,
                amount=-amount,
                withdrawal=withdrawal,
                status='pending',
                description=f"Withdrawal request via {method}",
            )

            notify(
                user,
                'withdrawal_submitted',
                'Withdrawal Request Submitted',
                f"Your withdrawal request for {amount} {wallet.currency} has been submitted and is being processed.",
                link='/dashboard/wallet',
            )

        logger.info(f"Withdrawal {withdrawal.id} requested by user {user.id}: {amount} via {method}")
        return withdrawal, True

    def _find_by_key(self, user, idempotency_key):
        return WithdrawalRequest.objects.filter(user=user, idempotency_key=idempotency_key).first()

    def _replay(self, existing, amount, method):
        if existing.amount != amount or existing.method != method:
            raise IdempotencyKeyReused()
        logger.info(f"Replayed withdrawal request {existing.id} for key {existing.idempotency_key}")
        return existing

    def process(self, *, withdrawal_id, approve, notes='', processed_by=None):
        with transaction.atomic():
            withdrawal = WithdrawalRequest.objects.select_for_update().filter(pk=withdrawal_id).first()
            if withdrawal is None:
                raise NotFound("Withdrawal request not found.")
            if withdrawal.status != WithdrawalRequest.PENDING:
                raise AlreadyProcessed("Withdrawal request already processed.")

            withdrawal.processed_by = processed_by
            withdrawal.processed_at = timezone.now()
            withdrawal.notes = notes or ''

            if not approve:
                withdrawal.status = WithdrawalRequest.REJECTED
                withdrawal.rejection_reason = notes or ''
                withdrawal.save()
                self._reverse(withdrawal, f"Withdrawal {withdrawal.id} rejected")
                notify(
                    withdrawal.user,
                    'withdrawal_rejected',
                    'Withdrawal Rejected',
                    f"Your withdrawal of {withdrawal.amount} {withdrawal.currency} was rejected. "
                    f"The amount is back in your wallet.",
                    link='/dashboard/wallet',
                )
                logger.info(f"Withdrawal {withdrawal.id} rejected by {processed_by}")
                return withdrawal

            withdrawal.status = WithdrawalRequest.PROCESSING
            withdrawal.save()

        # The payout rail is called outside the row lock; PROCESSING blocks re-entry.
        try:
            result = self.payment_service.transfer_to_seller(
                seller=withdrawal.user,
                amount=withdrawal.net_amount,
                method=withdrawal.method,
                account_details=withdrawal.account_details,
                reference=f"withdrawal-{withdrawal.id}",
            )
        except Exception as e:
            logger.error(f"Payout for withdrawal {withdrawal.id} raised: {str(e)}")
            result = {'status': 'error', 'message': str(e)}

        if result.get('status') != 'success':
            message = result.get('message') or 'Payout failed'
            self._fail(withdrawal.id, message)
            raise PaymentProviderError(message)

        return self._complete(withdrawal.id, result)

    def cancel(self, *, withdrawal_id, user):
        with transaction.atomic():
            withdrawal = WithdrawalRequest.objects.select_for_update().filter(pk=withdrawal_id).first()
            if withdrawal is None:
                raise NotFound("Withdrawal request not found.")
            if withdrawal.user_id != user.id and not user.is_staff:
                raise Unauthorized("You cannot cancel this withdrawal request.")
            if withdrawal.status != WithdrawalRequest.PENDING:
                raise AlreadyProcessed("Can only cancel pending withdrawal requests.")

            withdrawal.status = WithdrawalRequest.CANCELLED
            withdrawal.processed_at = timezone.now()
            withdrawal.save(update_fields=['status', 'processed_at'])
            self._reverse(withdrawal, f"Withdrawal {withdrawal.id} cancelled")

        logger.info(f"Withdrawal {withdrawal.id} cancelled by user {user.id}")
        return withdrawal

    def _reverse(self, withdrawal, description):
        wallet = lock_wallet(withdrawal.user)
        post_entry(
            wallet,
            entry_type=LedgerEntry.WITHDRAWAL_REVERSAL,
            bucket=LedgerEntry.AVAILABLE,
            amount=withdrawal.amount,
            withdrawal=withdrawal,
            description=description,
        )
        LedgerEntry.objects.filter(
            withdrawal=withdrawal, entry_type=LedgerEntry.WITHDRAWAL
        ).update(status='failed')

    def _complete(self, withdrawal_id, result):
        reference = result.get('reference') or result.get('transfer_id') or ''
        with transaction.atomic():
            withdrawal = WithdrawalRequest.objects.select_for_update().get(pk=withdrawal_id)
            withdrawal.status = WithdrawalRequest.COMPLETED
            withdrawal.completed_at = timezone.now()
            withdrawal.payout_reference = reference
            withdrawal.save(update_fields=['status', 'completed_at', 'payout_reference'])

            wallet = lock_wallet(withdrawal.user)
            wallet.total_withdrawals += withdrawal.amount
            wallet.save(update_fields=['total_withdrawals', 'updated_at'])

            LedgerEntry.objects.filter(
                withdrawal=withdrawal, entry_type=LedgerEntry.WITHDRAWAL
            ).update(status='completed', external_id=reference)

            notify(
                withdrawal.user,
                'withdrawal_completed',
                'Withdrawal Completed',
                f"{withdrawal.net_amount} {withdrawal.currency} has been sent via {withdrawal.get_method_display()}. "
                f"Reference: {reference}",
                link='/dashboard/wallet',
            )

        logger.info(f"Withdrawal {withdrawal.id} completed with reference {reference}")
        return withdrawal

    def _fail(self, withdrawal_id, message):
        with transaction.atomic():
            withdrawal = WithdrawalRequest.objects.select_for_update().get(pk=withdrawal_id)
            withdrawal.status = WithdrawalRequest.FAILED
            withdrawal.notes = f"{withdrawal.notes}\nPayout failed: {message}".strip()
            withdrawal.save(update_fields=['status', 'notes'])
            self._reverse(withdrawal, f"Withdrawal {withdrawal.id} payout failed")

            notify(
                withdrawal.user,
                'withdrawal_failed',
                'Withdrawal Failed',
                f"We could not send your withdrawal of {withdrawal.amount} {withdrawal.currency}. "
                f"The amount is back in your wallet.",
                link='/dashboard/wallet',
            )

        logger.error(f"Withdrawal {withdrawal.id} failed: {message}")
        return withdrawal
