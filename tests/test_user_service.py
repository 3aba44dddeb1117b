from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from support import DEFAULT_PASSWORD, add_user, make_session_factory

from merch_mate.errors import AuthenticationError, ConflictError
from merch_mate.models import UserRole, UserStatus
from merch_mate.services import user_service
from merch_mate.services.audit_service import log_login_attempt, login_failure_reason


class CreateUserTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)

    def _create(self, **overrides):
        fields = {
            'first_name': '  jane ',
            'middle_name': None,
            'last_name': 'doe',
            'national_id_no': 12345678,
            'staff_no': 501,
            'username': 'JaneD',
            'email': 'Jane@MerchMate.co.ke',
            'password': 'secret123',
            'role': 'merchandiser',
        }
        fields.update(overrides)
        return user_service.create_user(self.db, **fields)

    def test_normalizes_names_and_credentials(self) -> None:
        user = self._create()

        self.assertEqual(user.first_name, 'Jane')
        self.assertEqual(user.last_name, 'Doe')
        self.assertEqual(user.username, 'janed')
        self.assertEqual(user.email, 'jane@merchmate.co.ke')
        self.assertEqual(user.role, UserRole.MERCHANDISER)
        self.assertEqual(user.status, UserStatus.ACTIVE)
        self.assertNotEqual(user.password_hash, 'secret123')

    def test_rejects_short_password(self) -> None:
        with self.assertRaises(ValueError):
            self._create(password='abc')

    def test_rejects_unknown_role(self) -> None:
        with self.assertRaises(ValueError):
            self._create(role='supervisor')

    def test_rejects_long_name(self) -> None:
        with self.assertRaises(ValueError):
            self._create(first_name='a' * 201)

    def test_duplicate_staff_number_is_bad_request(self) -> None:
        self._create()
        with self.assertRaises(ValueError) as ctx:
            self._create(username='other', email='other@merchmate.co.ke', national_id_no=999)
        self.assertNotIsInstance(ctx.exception, ConflictError)

    def test_duplicate_email_is_conflict(self) -> None:
        self._create()
        with self.assertRaises(ConflictError):
            self._create(username='other', staff_no=502, national_id_no=999)


class AuthenticateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)

    def test_success_records_last_login(self) -> None:
        add_user(self.db, username='mary', role=UserRole.MANAGER, staff_no=1)

        user = user_service.authenticate(self.db, email='MARY@merchmate.co.ke', password=DEFAULT_PASSWORD)

        self.assertEqual(user.username, 'mary')
        self.assertIsNotNone(user.last_login)

    def test_unknown_email(self) -> None:
        with self.assertRaises(LookupError):
            user_service.authenticate(self.db, email='ghost@merchmate.co.ke', password='whatever')

    def test_blocked_user(self) -> None:
        add_user(self.db, username='mary', role=UserRole.MANAGER, staff_no=1, status=UserStatus.BLOCKED)
        with self.assertRaises(ConflictError):
            user_service.authenticate(self.db, email='mary@merchmate.co.ke', password=DEFAULT_PASSWORD)

    def test_wrong_password(self) -> None:
        add_user(self.db, username='mary', role=UserRole.MANAGER, staff_no=1)
        with self.assertRaises(AuthenticationError):
            user_service.authenticate(self.db, email='mary@merchmate.co.ke', password='not-it')

    def test_expired_password(self) -> None:
        add_user(
            self.db,
            username='mary',
            role=UserRole.MANAGER,
            staff_no=1,
            last_password_change=datetime.now(tz=timezone.utc) - timedelta(days=15),
        )
        with self.assertRaises(PermissionError):
            user_service.authenticate(self.db, email='mary@merchmate.co.ke', password=DEFAULT_PASSWORD)

    def test_change_password_resets_expiry(self) -> None:
        add_user(
            self.db,
            username='mary',
            role=UserRole.MANAGER,
            staff_no=1,
            last_password_change=datetime.now(tz=timezone.utc) - timedelta(days=15),
        )

        user_service.change_password(
            self.db,
            email='mary@merchmate.co.ke',
            old_password=DEFAULT_PASSWORD,
            new_password='brand-new-pass',
        )

        user = user_service.authenticate(self.db, email='mary@merchmate.co.ke', password='brand-new-pass')
        self.assertEqual(user.username, 'mary')

    def test_change_password_requires_different_password(self) -> None:
        add_user(self.db, username='mary', role=UserRole.MANAGER, staff_no=1)
        with self.assertRaises(ValueError):
            user_service.change_password(
                self.db,
                email='mary@merchmate.co.ke',
                old_password=DEFAULT_PASSWORD,
                new_password=DEFAULT_PASSWORD,
            )


class LoginAttemptTests(unittest.TestCase):
    def test_failure_reasons_follow_the_refusing_error(self) -> None:
        self.assertEqual(login_failure_reason(ConflictError('blocked')), 'BLOCKED_USER')
        self.assertEqual(login_failure_reason(AuthenticationError('bad')), 'BAD_PASSWORD')
        self.assertEqual(login_failure_reason(PermissionError('expired')), 'PASSWORD_EXPIRED')
        self.assertEqual(login_failure_reason(LookupError('missing')), 'UNKNOWN_EMAIL')
        self.assertEqual(login_failure_reason(RuntimeError('boom')), 'ERROR')

    def test_attempt_is_recorded_with_normalized_email(self) -> None:
        db = make_session_factory()()
        self.addCleanup(db.close)

        event = log_login_attempt(db, email=' Mary@MerchMate.co.ke ', ip='10.0.0.1', user_agent=None)
        db.flush()

        self.assertTrue(event.success)
        self.assertIsNone(event.failure_reason)
        self.assertEqual(event.attempted_email, 'mary@merchmate.co.ke')


if __name__ == '__main__':
    unittest.main()
