import tempfile
import unittest
from datetime import date
from pathlib import Path
from types import SimpleNamespace
from uuid import uuid4

from werkzeug.security import generate_password_hash

from ketus import create_app, db
from ketus.ai import parse_chat_response
from ketus.models import KetoLog, Profile, User
from ketus.store import (
    DEFAULT_PROGRESS_NOTE,
    NotAuthenticatedError,
    fetch_logs,
    get_profile,
    normalize_metrics,
    save_log,
)


class NormalizeMetricsTestCase(unittest.TestCase):
    def test_valid_arguments_pass_through(self):
        args = {"weight": 79.4, "wellBeing": 7, "sleepQuality": 8, "progressNote": "Stabilna adaptacja"}
        self.assertEqual(normalize_metrics(args), args)

    def test_defaults_for_missing_fields(self):
        self.assertEqual(
            normalize_metrics({"weight": 79}),
            {"weight": 79.0, "wellBeing": 5, "sleepQuality": 5, "progressNote": DEFAULT_PROGRESS_NOTE},
        )
        self.assertEqual(normalize_metrics(None)["weight"], 0.0)

    def test_zero_scores_fall_back_to_default(self):
        metrics = normalize_metrics({"weight": 80, "wellBeing": 0, "sleepQuality": None})
        self.assertEqual(metrics["wellBeing"], 5)
        self.assertEqual(metrics["sleepQuality"], 5)

    def test_scores_are_clamped_and_rounded(self):
        metrics = normalize_metrics({"weight": 80, "wellBeing": 14, "sleepQuality": -3})
        self.assertEqual(metrics["wellBeing"], 10)
        self.assertEqual(metrics["sleepQuality"], 1)
        self.assertEqual(normalize_metrics({"wellBeing": 6.6})["wellBeing"], 7)

    def test_string_numbers_are_coerced(self):
        metrics = normalize_metrics({"weight": "81,25 kg", "wellBeing": "8/10", "sleepQuality": "six"})
        self.assertEqual(metrics["weight"], 81.2)
        self.assertEqual(metrics["wellBeing"], 8)
        self.assertEqual(metrics["sleepQuality"], 5)

    def test_non_finite_numbers_are_treated_as_missing(self):
        metrics = normalize_metrics(
            {"weight": float("nan"), "wellBeing": float("nan"), "sleepQuality": float("inf")}
        )
        self.assertEqual(metrics["weight"], 0.0)
        self.assertEqual(metrics["wellBeing"], 5)
        self.assertEqual(metrics["sleepQuality"], 5)
        self.assertEqual(normalize_metrics({"weight": float("-inf")})["weight"], 0.0)
        self.assertEqual(normalize_metrics({"weight": 10**400})["weight"], 0.0)

    def test_non_finite_tool_arguments_from_the_model(self):
        response = SimpleNamespace(
            output_text="Zapisuję.",
            output=[
                SimpleNamespace(
                    type="function_call",
                    name="logMetrics",
                    arguments='{"weight": Infinity, "wellBeing": NaN, "sleepQuality": 7, "progressNote": "ok"}',
                )
            ],
        )
        args = parse_chat_response(response).metric_calls[0]
        self.assertEqual(
            normalize_metrics(args),
            {"weight": 0.0, "wellBeing": 5, "sleepQuality": 7, "progressNote": "ok"},
        )

    def test_negative_weight_and_long_note(self):
        metrics = normalize_metrics({"weight": -4, "progressNote": "  " + "x" * 900})
        self.assertEqual(metrics["weight"], 0.0)
        self.assertEqual(len(metrics["progressNote"]), 500)
        self.assertEqual(normalize_metrics({"progressNote": "   "})["progressNote"], DEFAULT_PROGRESS_NOTE)


class PersistenceGatewayTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.db_file = Path(tempfile.gettempdir()) / f"ketus-store-{uuid4().hex}.db"
        cls.app = create_app(
            {
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{cls.db_file.as_posix()}",
                "SECRET_KEY": "test-secret",
                "TESTING": True,
            }
        )

    @classmethod
    def tearDownClass(cls):
        with cls.app.app_context():
            db.session.remove()
            db.drop_all()
            db.engine.dispose()
        if cls.db_file.exists():
            try:
                cls.db_file.unlink()
            except PermissionError:
                pass

    def setUp(self):
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.drop_all()
        db.create_all()

        self.user = User(email="anna@example.com", password_hash=generate_password_hash("pass12345"))
        self.other = User(email="bob@example.com", password_hash=generate_password_hash("pass12345"))
        db.session.add_all([self.user, self.other])
        db.session.flush()
        db.session.add(Profile(user_id=self.user.id, first_name="Anna", last_name="Nowak", is_premium=True))
        db.session.add_all(
            [
                KetoLog(user_id=self.user.id, date=date(2024, 1, 3), weight=78.0, progress_note="third"),
                KetoLog(user_id=self.user.id, date=date(2024, 1, 1), weight=80.0, progress_note="first"),
                KetoLog(user_id=self.other.id, date=date(2024, 1, 2), weight=99.0, progress_note="OTHER_USER"),
            ]
        )
        db.session.commit()

    def tearDown(self):
        db.session.remove()
        self.ctx.pop()

    def test_fetch_logs_is_user_scoped_and_date_ordered(self):
        logs = fetch_logs(self.user)
        self.assertEqual([log["date"] for log in logs], ["2024-01-01", "2024-01-03"])
        self.assertNotIn("OTHER_USER", [log["progressNote"] for log in logs])
        self.assertEqual(set(logs[0]), {"id", "date", "weight", "wellBeing", "sleepQuality", "progressNote"})

    def test_fetch_and_save_require_a_user(self):
        with self.assertRaises(NotAuthenticatedError):
            fetch_logs(None)
        with self.assertRaises(NotAuthenticatedError):
            save_log(None, {"weight": 80})

    def test_save_log_returns_server_row(self):
        saved = save_log(
            self.user,
            {"date": "2024-01-04", "weight": 77.5, "wellBeing": 9, "sleepQuality": 8, "progressNote": "Keto flu minęła"},
        )
        self.assertIsInstance(saved["id"], int)
        self.assertEqual(saved["date"], "2024-01-04")
        self.assertEqual(saved["weight"], 77.5)
        self.assertEqual(saved["wellBeing"], 9)
        self.assertEqual(saved["progressNote"], "Keto flu minęła")

        row = db.session.get(KetoLog, saved["id"])
        self.assertEqual(row.user_id, self.user.id)
        self.assertEqual(fetch_logs(self.user)[-1]["id"], saved["id"])

    def test_save_log_applies_defaults(self):
        saved = save_log(self.user, {"date": "2024-01-05", "weight": 79})
        self.assertEqual(saved["wellBeing"], 5)
        self.assertEqual(saved["sleepQuality"], 5)
        self.assertEqual(saved["progressNote"], DEFAULT_PROGRESS_NOTE)

    def test_get_profile(self):
        self.assertEqual(
            get_profile(self.user),
            {"first_name": "Anna", "last_name": "Nowak", "is_premium": True},
        )
        self.assertIsNone(get_profile(self.other))
        self.assertIsNone(get_profile(None))


if __name__ == "__main__":
    unittest.main()
