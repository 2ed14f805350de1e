from unittest.mock import patch

from dairyledger.models.bill import BillStatus
from dairyledger.models.user import UserRole


@patch("dairyledger.scripts.seed.NUM_CUSTOMERS", 2)
@patch("dairyledger.scripts.seed.initialize_db")
def test_seed_populates_a_billed_month(mock_init_db, db_connection, repos):
    from dairyledger.scripts.seed import PRODUCT_CATALOG, main

    with (
        patch("dairyledger.scripts.seed.get_connection", return_value=db_connection),
        patch("dairyledger.db.get_connection", return_value=db_connection),
    ):
        main()

    mock_init_db.assert_called_once()
    assert len(repos.products.list_all()) == len(PRODUCT_CATALOG)
    assert [u.role for u in repos.users.list_admins()] == [UserRole.ADMIN]

    customers = repos.users.list_active_customers()
    assert len(customers) == 2
    bills = repos.bills.list_bills()
    assert len(bills) == 2
    for bill in bills:
        assert bill.total_amount > 0
        assert bill.paid_amount + bill.pending_amount >= bill.total_amount
        assert bill.status != BillStatus.DRAFT

    # cached balances agree with the bills
    for customer in customers:
        unpaid = sum(b.pending_amount for b in repos.bills.list_unpaid_for_user(customer.id))
        assert customer.pending_amount == unpaid


def test_truncate_clears_tables(db_connection, repos, sample_product):
    from dairyledger.scripts.seed import _truncate_all

    repos.products.create(sample_product())

    _truncate_all(db_connection)

    assert repos.products.list_all() == []
