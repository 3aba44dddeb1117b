from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from unittest import mock

from sqlalchemy import select

from support import add_facility, add_kpi, add_user, make_session_factory

from merch_mate.config import settings
from merch_mate.errors import ConflictError
from merch_mate.models import (
    InstructionStatus,
    MerchandiserPerformance,
    Notification,
    ResponseStatus,
    UserRole,
)
from merch_mate.services import response_service, route_plan_service
from merch_mate.services.route_plan_service import InstructionDraft, create_route_plan
from merch_mate.services.scoring_service import TOTAL_KEY

TODAY = date(2026, 3, 10)
VISIT_DAY = datetime(2026, 3, 12, 10, 0)


class ParseAnswerKeyTests(unittest.TestCase):
    def test_parses_metric_and_field(self) -> None:
        self.assertEqual(response_service.parse_answer_key('response[Shelf Share][text]'), ('Shelf Share', 'text'))
        self.assertEqual(response_service.parse_answer_key('response[Shelf Share][image]'), ('Shelf Share', 'image'))

    def test_ignores_other_keys(self) -> None:
        self.assertIsNone(response_service.parse_answer_key('route_plan_id'))
        self.assertIsNone(response_service.parse_answer_key('response[Shelf Share][video]'))


class ResponseWorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        admin = add_user(self.db, username='ada', role=UserRole.ADMIN, staff_no=1)
        self.manager = add_user(self.db, username='mary', role=UserRole.MANAGER, staff_no=2)
        self.other_manager = add_user(self.db, username='moses', role=UserRole.MANAGER, staff_no=4)
        self.merchandiser = add_user(self.db, username='mike', role=UserRole.MERCHANDISER, staff_no=3001)
        self.other_merchandiser = add_user(self.db, username='mo', role=UserRole.MERCHANDISER, staff_no=3002)
        facility = add_facility(self.db, self.manager)
        add_kpi(
            self.db,
            admin,
            {
                'Shelf Share': {'text': True, 'image': False},
                'Display Photo': {'text': False, 'image': True},
            },
        )
        self.plan = create_route_plan(
            self.db,
            manager_id=self.manager.id,
            staff_no=3001,
            status='pending',
            start_date=date(2026, 3, 11),
            end_date=date(2026, 3, 20),
            instructions=[
                InstructionDraft(
                    facility_id=facility.id,
                    start=datetime(2026, 3, 12, 9),
                    end=datetime(2026, 3, 12, 11),
                    kpi_metrics=['Shelf Share'],
                    instruction_id='visit-1',
                ),
                InstructionDraft(
                    facility_id=facility.id,
                    start=datetime(2026, 3, 13, 9),
                    end=datetime(2026, 3, 13, 11),
                    kpi_metrics=['Display Photo'],
                    instruction_id='visit-2',
                ),
            ],
            today=TODAY,
        )

    def _submit(self, instruction_id: str = 'visit-1', answers: dict | None = None, merchandiser_id: int | None = None):
        return response_service.submit_response(
            self.db,
            merchandiser_id=merchandiser_id or self.merchandiser.id,
            route_plan_id=self.plan.id,
            instruction_id=instruction_id,
            answers=answers if answers is not None else {'Shelf Share': {'text': 'x' * 600}},
            submitted_at=VISIT_DAY,
        )

    def _approve(self, response, manager_id: int | None = None):
        return response_service.approve_response(
            self.db,
            response_id=response.id,
            instruction_id=response.instruction_id,
            route_plan_id=self.plan.id,
            manager_id=manager_id or self.manager.id,
            today=TODAY,
        )

    def test_submit_marks_instruction_responded(self) -> None:
        response = self._submit()

        instruction = self.plan.instructions[0]
        self.assertEqual(response.status, ResponseStatus.PENDING)
        self.assertEqual(response.manager_id, self.manager.id)
        self.assertEqual(instruction.status, InstructionStatus.SUBMITTED)
        self.assertTrue(instruction.responded)

    def test_submit_requires_text_for_text_metric(self) -> None:
        with self.assertRaises(ValueError):
            self._submit(answers={'Shelf Share': {'text': '   '}})

    def test_submit_requires_image_for_image_only_metric(self) -> None:
        with self.assertRaises(ValueError):
            self._submit(instruction_id='visit-2', answers={'Display Photo': {'text': 'photo coming'}})

        response = self._submit(instruction_id='visit-2', answers={'Display Photo': {'image': 'abc.png'}})
        self.assertEqual(response.payload['Display Photo']['image'], 'abc.png')

    def test_submit_rejects_metrics_not_on_instruction(self) -> None:
        with self.assertRaises(ValueError):
            self._submit(answers={'Shelf Share': {'text': 'ok'}, 'Footfall': {'text': '12'}})

    def test_cannot_submit_for_someone_elses_plan(self) -> None:
        with self.assertRaises(PermissionError):
            self._submit(merchandiser_id=self.other_merchandiser.id)

    def test_second_submission_while_pending_conflicts(self) -> None:
        self._submit()
        with self.assertRaises(ConflictError):
            self._submit()

    def test_approve_completes_instruction_and_records_performance(self) -> None:
        response = self._submit()

        approved, scores = self._approve(response)

        self.assertEqual(approved.status, ResponseStatus.APPROVED)
        self.assertEqual(self.plan.instructions[0].status, InstructionStatus.COMPLETE)
        self.assertEqual(scores['Shelf Share'], 100.0)
        self.assertEqual(scores['timeliness'], 100.0)
        self.assertEqual(scores['completeness'], 50.0)
        self.assertAlmostEqual(scores[TOTAL_KEY], 100.0 * 0.6 + 50.0 * 0.4)

        entry = self.db.execute(select(MerchandiserPerformance)).scalar_one()
        self.assertEqual(entry.day, TODAY)
        self.assertEqual(entry.weekday, 'Tuesday')
        self.assertEqual(entry.performance, scores)

    def test_approve_checks_instruction_reference(self) -> None:
        response = self._submit()
        with self.assertRaises(ValueError):
            response_service.approve_response(
                self.db,
                response_id=response.id,
                instruction_id='visit-2',
                route_plan_id=self.plan.id,
                manager_id=self.manager.id,
                today=TODAY,
            )

    def test_only_owning_manager_may_decide(self) -> None:
        response = self._submit()
        with self.assertRaises(PermissionError):
            self._approve(response, manager_id=self.other_manager.id)

    def test_reject_reopens_instruction_and_notifies(self) -> None:
        response = self._submit()

        rejected = response_service.reject_response(
            self.db, response_id=response.id, manager_id=self.manager.id, reason='Photo is blurry'
        )

        instruction = self.plan.instructions[0]
        self.assertEqual(rejected.status, ResponseStatus.REJECTED)
        self.assertEqual(rejected.rejection_reason, 'Photo is blurry')
        self.assertEqual(instruction.status, InstructionStatus.PENDING)
        self.assertFalse(instruction.responded)
        notification = self.db.execute(select(Notification)).scalar_one()
        self.assertEqual(notification.merchandiser_id, self.merchandiser.id)
        self.assertEqual(notification.message, 'Photo is blurry')

        resubmitted = self._submit()
        self.assertEqual(resubmitted.status, ResponseStatus.PENDING)

    def test_reopening_after_approval_allows_resubmission(self) -> None:
        self._approve(self._submit())

        instruction = route_plan_service.set_instruction_status(
            self.db,
            route_plan_id=self.plan.id,
            instruction_id='visit-1',
            status='pending',
            manager_id=self.manager.id,
        )

        self.assertEqual(instruction.status, InstructionStatus.PENDING)
        self.assertFalse(instruction.responded)
        resubmitted = self._submit()
        self.assertEqual(resubmitted.status, ResponseStatus.PENDING)
        self.assertTrue(instruction.responded)

    def test_reopening_keeps_responded_while_review_is_pending(self) -> None:
        self._submit()

        instruction = route_plan_service.set_instruction_status(
            self.db,
            route_plan_id=self.plan.id,
            instruction_id='visit-1',
            status='pending',
            manager_id=self.manager.id,
        )

        self.assertTrue(instruction.responded)
        with self.assertRaises(ConflictError):
            self._submit()

    def test_utc_submission_is_stored_in_local_time(self) -> None:
        route_plan_service.modify_instruction_window(
            self.db,
            route_plan_id=self.plan.id,
            instruction_id='visit-2',
            start=datetime(2026, 3, 14, 1),
            end=datetime(2026, 3, 14, 2),
            manager_id=self.manager.id,
        )
        local_submission = datetime(2026, 3, 14, 0, 30, tzinfo=timezone(timedelta(hours=3)))

        with mock.patch.object(settings, 'timezone', 'Africa/Nairobi'):
            response = response_service.submit_response(
                self.db,
                merchandiser_id=self.merchandiser.id,
                route_plan_id=self.plan.id,
                instruction_id='visit-2',
                answers={'Display Photo': {'image': 'abc.png'}},
                submitted_at=local_submission.astimezone(timezone.utc),
            )

        self.assertEqual(response.submitted_at, datetime(2026, 3, 14, 0, 30))
        _, scores = self._approve(response)
        self.assertEqual(scores['timeliness'], 100.0)

    def test_reject_requires_reason(self) -> None:
        response = self._submit()
        with self.assertRaises(ValueError):
            response_service.reject_response(self.db, response_id=response.id, manager_id=self.manager.id, reason=' ')

    def test_first_decision_wins(self) -> None:
        response = self._submit()
        self._approve(response)

        with self.assertRaises(ConflictError):
            response_service.reject_response(
                self.db, response_id=response.id, manager_id=self.manager.id, reason='Too late'
            )
        with self.assertRaises(ConflictError):
            self._approve(response)

    def test_pending_queue_drops_decided_responses(self) -> None:
        response = self._submit()
        self.assertEqual(
            [r.id for r in response_service.list_pending_for_manager(self.db, manager_id=self.manager.id)],
            [response.id],
        )

        self._approve(response)

        self.assertEqual(response_service.list_pending_for_manager(self.db, manager_id=self.manager.id), [])

    def test_serialized_images_are_absolute(self) -> None:
        response = self._submit(instruction_id='visit-2', answers={'Display Photo': {'image': 'abc.png'}})

        row = response_service.serialize_response(response, image_url_base='http://testserver/images/')

        self.assertEqual(row['response']['Display Photo']['image'], 'http://testserver/images/abc.png')
        self.assertEqual(row['merchandiser'], 'Mike Tester')


if __name__ == '__main__':
    unittest.main()
