"""
Tests for deposit orchestration

Covers amount handling, ownership, atomicity of append plus balance update,
and concurrent deposits on both storage backends.
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from unittest.mock import patch

from securebank.accounts import AccountManager
from securebank.exceptions import BadRequestError, InternalInconsistencyError, NotFoundError
from securebank.funding import FundingProcessor, FundingSource
from securebank.models import AccountStatus
from securebank.transactions import TransactionJournal


CARD = FundingSource(type="card", account_number="4111111111111111")
BANK = FundingSource(type="bank", account_number="000123456789", routing_number="021000021")


class BankFixture:
    def __init__(self, storage, config):
        self.storage = storage
        self.accounts = AccountManager(storage, config=config)
        self.journal = TransactionJournal(storage)
        self.funding = FundingProcessor(storage, self.accounts, self.journal, config)


@pytest.fixture
def bank(any_storage, config):
    return BankFixture(any_storage, config)


class TestScenario:
    """Create, fund twice, read history"""

    def test_create_fund_history(self, bank):
        account = bank.accounts.create_account(1, "checking")
        assert account.balance == Decimal("0")
        assert account.status == AccountStatus.ACTIVE

        first = bank.funding.fund_account(1, account.id, "100.00", CARD)
        second = bank.funding.fund_account(1, account.id, "50.00", BANK)

        assert first.new_balance == Decimal("100.00")
        assert second.new_balance == Decimal("150.00")
        assert second.transaction.description == "Funding from bank"

        history = bank.funding.get_transactions(1, account.id)
        assert [entry.id for entry in history] == [second.transaction.id, first.transaction.id]
        assert history[0].account_number == account.account_number

    def test_result_serializes_amounts(self, bank):
        account = bank.accounts.create_account(1, "savings")
        result = bank.funding.fund_account(1, account.id, "0.50", CARD)
        data = result.to_dict()
        assert data["new_balance"] == "0.50"
        assert data["transaction"]["amount"] == "0.50"


class TestAmountHandling:
    """Amount normalization and rejection"""

    @pytest.mark.parametrize("amount", ["", "0", "0.00", "-5", "abc", "NaN", "1.001", "10000.01"])
    def test_rejected_amounts(self, bank, amount):
        account = bank.accounts.create_account(1, "checking")
        with pytest.raises(BadRequestError):
            bank.funding.fund_account(1, account.id, amount, CARD)
        assert bank.storage.count("transactions") == 0

    def test_multiple_leading_zeros_rejected_with_message(self, bank):
        account = bank.accounts.create_account(1, "checking")
        with pytest.raises(BadRequestError) as exc_info:
            bank.funding.fund_account(1, account.id, "000100.00", CARD)
        assert "multiple leading zeros" in exc_info.value.message

    def test_ceiling_is_configurable(self, any_storage, config):
        config.max_deposit_amount = "50.00"
        bank = BankFixture(any_storage, config)
        account = bank.accounts.create_account(1, "checking")

        bank.funding.fund_account(1, account.id, "50.00", CARD)
        with pytest.raises(BadRequestError) as exc_info:
            bank.funding.fund_account(1, account.id, "50.01", CARD)
        assert exc_info.value.message == "Amount cannot exceed $50.00"

    def test_ceiling_accepted(self, bank):
        account = bank.accounts.create_account(1, "checking")
        result = bank.funding.fund_account(1, account.id, "10000.00", CARD)
        assert result.new_balance == Decimal("10000.00")


class TestAuthorization:
    """Ownership, status and funding source checks"""

    def test_other_users_account_not_found(self, bank):
        account = bank.accounts.create_account(1, "checking")
        with pytest.raises(NotFoundError):
            bank.funding.fund_account(2, account.id, "10.00", CARD)
        with pytest.raises(NotFoundError):
            bank.funding.get_transactions(2, account.id)

    def test_inactive_account_rejected(self, bank):
        account = bank.accounts.create_account(1, "checking")
        frozen = bank.accounts.get_account(account.id)
        frozen.status = AccountStatus.FROZEN
        with patch.object(bank.accounts, "get_owned_account", return_value=frozen):
            with pytest.raises(BadRequestError) as exc_info:
                bank.funding.fund_account(1, account.id, "10.00", CARD)
        assert exc_info.value.message == "Account is not active"

    def test_bad_card_message_passes_through(self, bank):
        account = bank.accounts.create_account(1, "checking")
        bad_card = FundingSource(type="card", account_number="4111111111111112")
        with pytest.raises(BadRequestError) as exc_info:
            bank.funding.fund_account(1, account.id, "10.00", bad_card)
        assert exc_info.value.message == "Invalid card number - checksum failed"

    def test_bank_requires_routing_number(self, bank):
        account = bank.accounts.create_account(1, "checking")
        source = FundingSource(type="bank", account_number="123456")
        with pytest.raises(BadRequestError) as exc_info:
            bank.funding.fund_account(1, account.id, "10.00", source)
        assert exc_info.value.message == "Routing number is required"


class TestFailureHandling:
    """No partial success and no fabricated results"""

    def test_failed_balance_update_rolls_back_journal(self, bank):
        account = bank.accounts.create_account(1, "checking")
        with patch.object(bank.storage, "increment", return_value=False):
            with pytest.raises(InternalInconsistencyError):
                bank.funding.fund_account(1, account.id, "10.00", CARD)

        assert bank.storage.count("transactions") == 0
        assert bank.accounts.get_account(account.id).balance == Decimal("0")

    def test_store_error_during_update_rolls_back(self, bank):
        from securebank.exceptions import StorageError

        account = bank.accounts.create_account(1, "checking")
        with patch.object(bank.storage, "increment", side_effect=StorageError("disk I/O error")):
            with pytest.raises(StorageError):
                bank.funding.fund_account(1, account.id, "10.00", CARD)
        assert bank.storage.count("transactions") == 0

    def test_failed_reread_is_fatal(self, bank):
        account = bank.accounts.create_account(1, "checking")
        original_load = bank.storage.load

        def load(table, record_id):
            if table == "accounts":
                return None
            return original_load(table, record_id)

        with patch.object(bank.storage, "load", side_effect=load):
            with pytest.raises(InternalInconsistencyError):
                bank.funding.fund_account(1, account.id, "10.00", CARD)

        # The deposit itself was committed
        assert bank.accounts.get_account(account.id).balance == Decimal("10.00")


class TestConcurrency:
    """Concurrent deposits never lose an amount"""

    def test_concurrent_deposits_sum_exactly(self, bank):
        account = bank.accounts.create_account(1, "checking")
        amounts = [Decimal("0.01") * (i + 1) for i in range(40)] + [Decimal("9999.99")]

        def deposit(amount):
            return bank.funding.fund_account(1, account.id, str(amount), CARD)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(deposit, amounts))

        final = bank.accounts.get_account(account.id)
        assert final.balance == sum(amounts)
        assert bank.funding.reconcile(final)

        history = bank.journal.history(account.id)
        assert len(history) == len(amounts)
        assert all(t.account_id == account.id for t in history)
        ids = [t.id for t in history]
        assert ids == sorted(ids, reverse=True)
        assert len(set(ids)) == len(ids)

        # Each caller got back its own record
        assert sorted(r.transaction.amount for r in results) == sorted(amounts)

    def test_concurrent_deposits_across_accounts(self, bank):
        checking = bank.accounts.create_account(1, "checking")
        savings = bank.accounts.create_account(1, "savings")

        def deposit(index):
            target = checking if index % 2 else savings
            return bank.funding.fund_account(1, target.id, "1.00", CARD)

        with ThreadPoolExecutor(max_workers=6) as pool:
            list(pool.map(deposit, range(30)))

        assert bank.accounts.get_account(checking.id).balance == Decimal("15.00")
        assert bank.accounts.get_account(savings.id).balance == Decimal("15.00")
        assert len(bank.journal.history(checking.id)) == 15
