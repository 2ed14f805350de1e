from unittest.mock import MagicMock, patch

from dairyledger.models.job_run import JobRun, JobRunStatus


class TestBuildServices:
    @patch("dairyledger.cli.app.get_channels", return_value={})
    @patch("dairyledger.cli.app.get_job_run_repository")
    @patch("dairyledger.cli.app.get_transaction_manager")
    @patch("dairyledger.cli.app.get_product_repository")
    @patch("dairyledger.cli.app.get_delivery_repository")
    @patch("dairyledger.cli.app.get_payment_repository")
    @patch("dairyledger.cli.app.get_bill_repository")
    @patch("dairyledger.cli.app.get_user_repository")
    @patch("dairyledger.cli.app.get_notification_repository")
    @patch("dairyledger.cli.app.get_audit_log_repository")
    def test_returns_correct_types(self, *mocks):
        from dairyledger.cli.app import build_services
        from dairyledger.services.bill_service import BillService
        from dairyledger.services.payment_service import PaymentService
        from dairyledger.services.scheduler import Scheduler

        bill_svc, payment_svc, scheduler = build_services()

        assert isinstance(bill_svc, BillService)
        assert isinstance(payment_svc, PaymentService)
        assert isinstance(scheduler, Scheduler)
        assert set(scheduler.jobs) == {"materialize_deliveries", "payment_reminders", "overdue_bills", "daily_report"}


class TestRunJobMenu:
    @patch("dairyledger.cli.app.questionary")
    def test_runs_selected_job(self, mock_q):
        from dairyledger.cli.app import run_job_menu

        scheduler = MagicMock()
        scheduler.jobs = {"overdue_bills": MagicMock()}
        scheduler.run_job.return_value = JobRun(
            job_name="overdue_bills",
            run_key="2025-04-08",
            status=JobRunStatus.PARTIAL,
            processed=3,
            failed=1,
            errors=[{"itemId": 4, "error": "boom"}],
        )
        mock_q.select.return_value.ask.return_value = "overdue_bills"
        mock_q.confirm.return_value.ask.return_value = False

        run_job_menu(scheduler)

        scheduler.run_job.assert_called_once_with("overdue_bills", force=False)

    @patch("dairyledger.cli.app.questionary")
    def test_already_ran(self, mock_q):
        from dairyledger.cli.app import run_job_menu

        scheduler = MagicMock()
        scheduler.jobs = {"daily_report": MagicMock()}
        scheduler.run_job.return_value = None
        mock_q.select.return_value.ask.return_value = "daily_report"
        mock_q.confirm.return_value.ask.return_value = True

        run_job_menu(scheduler)

        scheduler.run_job.assert_called_once_with("daily_report", force=True)

    @patch("dairyledger.cli.app.questionary")
    def test_back(self, mock_q):
        from dairyledger.cli.app import run_job_menu

        scheduler = MagicMock()
        scheduler.jobs = {}
        mock_q.select.return_value.ask.return_value = "Back"

        run_job_menu(scheduler)

        scheduler.run_job.assert_not_called()


class TestMainMenu:
    @patch("dairyledger.cli.app.build_services")
    @patch("dairyledger.cli.app.questionary")
    def test_exit_immediately(self, mock_q, mock_build):
        from dairyledger.cli.app import main_menu

        mock_build.return_value = (MagicMock(), MagicMock(), MagicMock())
        mock_q.select.return_value.ask.return_value = "Exit"

        main_menu()
        mock_q.select.return_value.ask.assert_called_once()

    @patch("dairyledger.cli.app.build_services")
    @patch("dairyledger.cli.app.questionary")
    def test_ctrl_c_exits(self, mock_q, mock_build):
        from dairyledger.cli.app import main_menu

        mock_build.return_value = (MagicMock(), MagicMock(), MagicMock())
        mock_q.select.return_value.ask.return_value = None

        main_menu()

    @patch("dairyledger.cli.app.run_job_menu")
    @patch("dairyledger.cli.app.generate_all_bills_menu")
    @patch("dairyledger.cli.app.generate_bill_menu")
    @patch("dairyledger.cli.app.list_bills_menu")
    @patch("dairyledger.cli.app.build_services")
    @patch("dairyledger.cli.app.questionary")
    def test_dispatches_choices(self, mock_q, mock_build, mock_list, mock_generate, mock_generate_all, mock_jobs):
        from dairyledger.cli.app import main_menu

        bill_svc, payment_svc, scheduler = MagicMock(), MagicMock(), MagicMock()
        mock_build.return_value = (bill_svc, payment_svc, scheduler)
        mock_q.select.return_value.ask.side_effect = [
            "List Bills",
            "Generate Bill",
            "Generate Bills for All Customers",
            "Run Scheduler Job",
            "Exit",
        ]

        main_menu()

        mock_list.assert_called_once_with(bill_svc, payment_svc)
        mock_generate.assert_called_once_with(bill_svc)
        mock_generate_all.assert_called_once_with(bill_svc)
        mock_jobs.assert_called_once_with(scheduler)
