from django.core.management.base import BaseCommand

from wallet.models import Wallet
from wallet.services import reconcile_wallet


class Command(BaseCommand):
    help = "Checks every wallet's balances against the sums of its ledger entries."

    def add_arguments(self, parser):
        parser.add_argument('--user-id', type=int, help='Only reconcile the wallet of this user')

    def handle(self, *args, **options):
        wallets = Wallet.objects.all()
        if options['user_id']:
            wallets = wallets.filter(user_id=options['user_id'])

        mismatches = 0
        for wallet in wallets.iterator():
            report = reconcile_wallet(wallet)
            if report['balanced']:
                continue
            mismatches += 1
            self.stdout.write(self.style.ERROR(
                f"Wallet {wallet.id} (user {wallet.user_id}): "
                f"balance {report['balance']} vs ledger {report['expected_balance']}, "
                f"pending {report['pending_clearance']} vs ledger {report['expected_pending_clearance']}"
            ))

        if mismatches:
            self.stdout.write(self.style.ERROR(f"{mismatches} wallet(s) out of balance."))
        else:
            self.stdout.write(self.style.SUCCESS("All wallets match their ledger."))
