import logging

from celery import shared_task

from .services import reconcile_all_wallets

logger = logging.getLogger(__name__)


@shared_task
def task_reconcile_wallets():
    mismatches = reconcile_all_wallets()
    if mismatches:
        logger.error(f"{len(mismatches)} wallet(s) do not match their ledger")
    else:
        logger.info("All wallets match their ledger")
    return len(mismatches)
