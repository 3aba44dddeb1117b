from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from unittest import mock

from support import add_facility, add_kpi, add_user, make_session_factory

from merch_mate.config import settings
from merch_mate.models import InstructionStatus, RoutePlan, RoutePlanStatus, UserRole
from merch_mate.services import route_plan_service
from merch_mate.services.route_plan_service import InstructionDraft, wall_clock, windows_overlap

TODAY = date(2026, 3, 10)


class WindowsOverlapTests(unittest.TestCase):
    def test_same_day_intersecting_windows_overlap(self) -> None:
        self.assertTrue(
            windows_overlap(
                datetime(2026, 3, 12, 9),
                datetime(2026, 3, 12, 11),
                datetime(2026, 3, 12, 10),
                datetime(2026, 3, 12, 12),
            )
        )

    def test_back_to_back_windows_do_not_overlap(self) -> None:
        self.assertFalse(
            windows_overlap(
                datetime(2026, 3, 12, 9),
                datetime(2026, 3, 12, 11),
                datetime(2026, 3, 12, 11),
                datetime(2026, 3, 12, 12),
            )
        )

    def test_different_days_do_not_overlap(self) -> None:
        self.assertFalse(
            windows_overlap(
                datetime(2026, 3, 12, 9),
                datetime(2026, 3, 12, 11),
                datetime(2026, 3, 13, 9),
                datetime(2026, 3, 13, 11),
            )
        )


class WallClockTests(unittest.TestCase):
    def test_aware_value_is_converted_to_local_time(self) -> None:
        with mock.patch.object(settings, 'timezone', 'Africa/Nairobi'):
            local = wall_clock(datetime(2026, 3, 13, 21, 30, tzinfo=timezone.utc))
        self.assertEqual(local, datetime(2026, 3, 14, 0, 30))

    def test_naive_value_is_kept(self) -> None:
        self.assertEqual(wall_clock(datetime(2026, 3, 14, 0, 30)), datetime(2026, 3, 14, 0, 30))


class CreateRoutePlanTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.admin = add_user(self.db, username='ada', role=UserRole.ADMIN, staff_no=1)
        self.manager = add_user(self.db, username='mary', role=UserRole.MANAGER, staff_no=2)
        self.merchandiser = add_user(self.db, username='mike', role=UserRole.MERCHANDISER, staff_no=3001)
        self.facility = add_facility(self.db, self.manager)
        add_kpi(self.db, self.admin, {'Shelf Share': {'text': True, 'image': False}})

    def _draft(self, day: int = 12, start_hour: int = 9, end_hour: int = 11, **overrides) -> InstructionDraft:
        fields = {
            'facility_id': self.facility.id,
            'start': datetime(2026, 3, day, start_hour),
            'end': datetime(2026, 3, day, end_hour),
            'instructions': 'Check the shelves',
            'kpi_metrics': ['Shelf Share'],
        }
        fields.update(overrides)
        return InstructionDraft(**fields)

    def _create(self, instructions: list[InstructionDraft], **overrides) -> RoutePlan:
        fields = {
            'manager_id': self.manager.id,
            'staff_no': 3001,
            'status': 'pending',
            'start_date': date(2026, 3, 11),
            'end_date': date(2026, 3, 20),
            'instructions': instructions,
            'today': TODAY,
        }
        fields.update(overrides)
        return route_plan_service.create_route_plan(self.db, **fields)

    def test_creates_plan_with_ordered_pending_instructions(self) -> None:
        plan = self._create([self._draft(day=12), self._draft(day=13, instruction_id='visit-2')])

        self.assertEqual(plan.merchandiser_id, self.merchandiser.id)
        self.assertEqual(plan.status, RoutePlanStatus.PENDING)
        self.assertEqual([i.position for i in plan.instructions], [0, 1])
        self.assertEqual(plan.instructions[1].instruction_id, 'visit-2')
        self.assertTrue(plan.instructions[0].instruction_id)
        self.assertTrue(all(i.status == InstructionStatus.PENDING and not i.responded for i in plan.instructions))

    def test_staff_number_must_belong_to_merchandiser(self) -> None:
        with self.assertRaises(ValueError):
            self._create([self._draft()], staff_no=2)

    def test_dates_must_fall_in_current_month(self) -> None:
        with self.assertRaises(ValueError):
            self._create(
                [self._draft()],
                start_date=date(2026, 3, 25),
                end_date=date(2026, 4, 2),
            )

    def test_instruction_outside_plan_dates_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self._create([self._draft(day=25)])

    def test_start_must_precede_end(self) -> None:
        with self.assertRaises(ValueError):
            self._create([self._draft(start_hour=11, end_hour=9)])

    def test_unknown_metric_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self._create([self._draft(kpi_metrics=['Footfall'])])

    def test_unknown_facility_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self._create([self._draft(facility_id=999)])

    def test_overlapping_instructions_in_one_plan(self) -> None:
        with self.assertRaises(ValueError):
            self._create([self._draft(start_hour=9, end_hour=11), self._draft(start_hour=10, end_hour=12)])

    def test_overlap_with_existing_plan_of_the_month(self) -> None:
        self._create([self._draft(start_hour=9, end_hour=11)])

        with self.assertRaises(ValueError) as ctx:
            self._create([self._draft(start_hour=10, end_hour=12)])
        self.assertIn('already has another assignment', str(ctx.exception))

    def test_non_overlapping_second_plan_is_accepted(self) -> None:
        self._create([self._draft(start_hour=9, end_hour=11)])
        plan = self._create([self._draft(start_hour=11, end_hour=13)])
        self.assertEqual(len(plan.instructions), 1)


class RoutePlanQueryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.manager = add_user(self.db, username='mary', role=UserRole.MANAGER, staff_no=2)
        self.other_manager = add_user(self.db, username='moses', role=UserRole.MANAGER, staff_no=4)
        self.merchandiser = add_user(self.db, username='mike', role=UserRole.MERCHANDISER, staff_no=3001)
        self.facility = add_facility(self.db, self.manager)
        self.plan = route_plan_service.create_route_plan(
            self.db,
            manager_id=self.manager.id,
            staff_no=3001,
            status='pending',
            start_date=date(2026, 3, 11),
            end_date=date(2026, 3, 20),
            instructions=[
                InstructionDraft(
                    facility_id=self.facility.id,
                    start=datetime(2026, 3, 12, 9),
                    end=datetime(2026, 3, 12, 11),
                    instruction_id='visit-1',
                )
            ],
            today=TODAY,
        )

    def test_merchandiser_month_routes_include_names(self) -> None:
        rows = route_plan_service.list_merchandiser_month_routes(
            self.db, merchandiser_id=self.merchandiser.id, today=TODAY
        )

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['manager_name'], 'Mary Tester')
        self.assertEqual(rows[0]['instructions'][0]['facility_name'], 'Downtown Supermarket')

    def test_next_month_hides_plan(self) -> None:
        rows = route_plan_service.list_merchandiser_month_routes(
            self.db, merchandiser_id=self.merchandiser.id, today=date(2026, 4, 2)
        )
        self.assertEqual(rows, [])

    def test_manager_month_routes_only_include_plans_starting_this_month(self) -> None:
        route_plan_service.create_route_plan(
            self.db,
            manager_id=self.manager.id,
            staff_no=3001,
            status='pending',
            start_date=date(2026, 2, 20),
            end_date=date(2026, 2, 27),
            instructions=[
                InstructionDraft(
                    facility_id=self.facility.id,
                    start=datetime(2026, 2, 23, 9),
                    end=datetime(2026, 2, 23, 11),
                )
            ],
            today=date(2026, 2, 20),
        )

        rows = route_plan_service.list_manager_month_routes(self.db, manager_id=self.manager.id, today=TODAY)

        self.assertEqual([row['id'] for row in rows], [self.plan.id])
        self.assertEqual(
            route_plan_service.list_manager_month_routes(self.db, manager_id=self.other_manager.id, today=TODAY),
            [],
        )

    def test_other_manager_cannot_modify(self) -> None:
        with self.assertRaises(PermissionError):
            route_plan_service.set_instruction_status(
                self.db,
                route_plan_id=self.plan.id,
                instruction_id='visit-1',
                status='complete',
                manager_id=self.other_manager.id,
            )

    def test_admin_scope_can_modify(self) -> None:
        instruction = route_plan_service.set_instruction_status(
            self.db,
            route_plan_id=self.plan.id,
            instruction_id='visit-1',
            status='complete',
            manager_id=None,
        )
        self.assertEqual(instruction.status, InstructionStatus.COMPLETE)

    def test_modify_window_moves_instruction(self) -> None:
        instruction = route_plan_service.modify_instruction_window(
            self.db,
            route_plan_id=self.plan.id,
            instruction_id='visit-1',
            start=datetime(2026, 3, 14, 8),
            end=datetime(2026, 3, 14, 9),
            manager_id=self.manager.id,
        )
        self.assertEqual(instruction.start, datetime(2026, 3, 14, 8))

    def test_modify_window_must_stay_inside_plan_dates(self) -> None:
        with self.assertRaisesRegex(ValueError, 'outside the route plan dates'):
            route_plan_service.modify_instruction_window(
                self.db,
                route_plan_id=self.plan.id,
                instruction_id='visit-1',
                start=datetime(2026, 3, 25, 8),
                end=datetime(2026, 3, 25, 9),
                manager_id=self.manager.id,
            )

    def test_delete_removes_plan(self) -> None:
        route_plan_service.delete_route_plan(self.db, route_plan_id=self.plan.id, manager_id=self.manager.id)

        with self.assertRaises(LookupError):
            route_plan_service.get_route_plan(self.db, self.plan.id)


if __name__ == '__main__':
    unittest.main()
