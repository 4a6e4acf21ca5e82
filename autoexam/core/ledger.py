"""
Credit ledger: purchased vs. used test credits per account
"""
import logging

from .errors import InsufficientCredit, NotFound, ValidationError

logger = logging.getLogger(__name__)


class Ledger:
    def __init__(self, storage):
        self.storage = storage

    def _account(self, account_id):
        account = self.storage.get_account(account_id)
        if not account:
            raise NotFound('User not found')
        return account

    def available(self, account_id):
        account = self._account(account_id)
        return account['credits_purchased'] - account['credits_used']

    def summary(self, account_id):
        account = self._account(account_id)
        return {
            'testsPurchased': account['credits_purchased'],
            'testsUsed': account['credits_used'],
            'availableTests': account['credits_purchased'] - account['credits_used'],
        }

    def increment(self, account_id, amount):
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValidationError('Credit amount must be a positive integer')
        if not self.storage.add_purchased_credits(account_id, amount):
            raise NotFound('User not found')
        logger.info(f"Added {amount} credits to user {account_id}")

    def consume(self, account_id):
        """Use one credit; callers run this inside the session-creation transaction"""
        if not self.storage.consume_credit(account_id):
            self._account(account_id)
            raise InsufficientCredit()

    def apply_payment(self, account_id, provider_session_id, plan):
        """Credit a completed checkout exactly once. Returns False for repeats."""
        credits = int(plan)
        with self.storage.transaction():
            self._account(account_id)
            if not self.storage.record_payment(account_id, provider_session_id, plan, credits):
                logger.info(f"Checkout {provider_session_id} already applied, skipping")
                return False
            self.increment(account_id, credits)
        return True
