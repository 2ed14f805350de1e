import pytest

from dairyledger.repositories.base import DuplicateRecordError


class TestAtomic:
    def test_commits_on_success(self, repos, sample_customer):
        with repos.tx.atomic():
            user = repos.users.create(sample_customer())
            repos.users.adjust_pending_amount(user.id, 1000)
        repos.conn.rollback()
        assert repos.users.get_by_id(user.id).pending_amount == 1000

    def test_rolls_back_on_error(self, repos, sample_customer):
        user = repos.users.create(sample_customer())
        with pytest.raises(RuntimeError):
            with repos.tx.atomic():
                repos.users.adjust_pending_amount(user.id, 1000)
                raise RuntimeError("boom")
        assert repos.users.get_by_id(user.id).pending_amount == 0

    def test_nested_blocks_join_outer(self, repos, sample_customer):
        user = repos.users.create(sample_customer())
        with pytest.raises(RuntimeError):
            with repos.tx.atomic():
                with repos.tx.atomic():
                    repos.users.adjust_pending_amount(user.id, 500)
                raise RuntimeError("outer fails")
        assert repos.users.get_by_id(user.id).pending_amount == 0

    def test_duplicate_inside_block_rolls_back_everything(self, repos, sample_customer):
        from datetime import datetime

        from dairyledger.models.payment import Payment, PaymentMethod

        user = repos.users.create(sample_customer())
        payment = Payment(
            user_id=user.id,
            amount=100,
            method=PaymentMethod.CASH,
            transaction_id="TXN-1",
            paid_at=datetime(2025, 4, 1),
        )
        repos.payments.create(payment)

        with pytest.raises(DuplicateRecordError):
            with repos.tx.atomic():
                repos.users.adjust_pending_amount(user.id, 999)
                repos.payments.create(payment)
        assert repos.users.get_by_id(user.id).pending_amount == 0

    def test_depth_resets(self, repos):
        with pytest.raises(ValueError):
            with repos.tx.atomic():
                raise ValueError()
        assert repos.conn.info.get("dairyledger.tx_depth") == 0
