from datetime import date
from unittest import mock

from hostel_ledger import circulation


def test_sweep_overdue_command(app):
    with app.app_context():
        circulation.add_book("Dune", "Frank Herbert", "B1", 450, 2)
        circulation.issue_book("B1", "X", date(2024, 1, 1))
        circulation.issue_book("B1", "Y", date(2024, 1, 2))

    hook = mock.Mock()
    hook.send_reminder.return_value = True
    app.extensions["notification_hook"] = hook

    result = app.test_cli_runner().invoke(args=["sweep-overdue", "--remind"])

    assert result.exit_code == 0, result.output
    assert "Flagged 2 loan(s) as overdue." in result.output
    assert "Delivered 2 reminder(s)." in result.output
    with app.app_context():
        assert {l.status for l in circulation.list_issued()} == {"overdue"}
