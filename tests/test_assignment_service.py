from __future__ import annotations

import unittest
from datetime import date

from support import add_facility, add_user, make_session_factory

from merch_mate.errors import ConflictError
from merch_mate.models import NotificationStatus, UserRole
from merch_mate.services import assignment_service, facility_service, location_service, notification_service


class AssignmentServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.manager = add_user(self.db, username='mary', role=UserRole.MANAGER, staff_no=2)
        self.other_manager = add_user(self.db, username='moses', role=UserRole.MANAGER, staff_no=4)
        self.mike = add_user(self.db, username='mike', role=UserRole.MERCHANDISER, staff_no=3001)
        self.nina = add_user(self.db, username='nina', role=UserRole.MERCHANDISER, staff_no=3002)

    def test_assignment_is_stored_for_the_month(self) -> None:
        rows = assignment_service.assign_merchandisers(
            self.db,
            manager_id=self.manager.id,
            merchandiser_ids=[self.mike.id, self.nina.id, self.mike.id],
            month=date(2026, 3, 17),
        )

        self.assertEqual([row.merchandiser_id for row in rows], [self.mike.id, self.nina.id])
        self.assertEqual({row.month for row in rows}, {date(2026, 3, 1)})

        listed = assignment_service.list_manager_merchandisers(
            self.db, manager_id=self.manager.id, today=date(2026, 3, 2)
        )
        self.assertEqual([row['merchandiser_name'] for row in listed], ['Mike Tester', 'Nina Tester'])
        self.assertEqual(listed[0]['month'], 'March')

    def test_merchandiser_belongs_to_one_manager_per_month(self) -> None:
        assignment_service.assign_merchandisers(
            self.db, manager_id=self.manager.id, merchandiser_ids=[self.mike.id], month=date(2026, 3, 1)
        )

        with self.assertRaisesRegex(ConflictError, 'Mike Tester is already assigned'):
            assignment_service.assign_merchandisers(
                self.db, manager_id=self.other_manager.id, merchandiser_ids=[self.mike.id], month=date(2026, 3, 9)
            )
        april = assignment_service.assign_merchandisers(
            self.db, manager_id=self.other_manager.id, merchandiser_ids=[self.mike.id], month=date(2026, 4, 1)
        )
        self.assertEqual(len(april), 1)

    def test_only_merchandisers_can_be_assigned(self) -> None:
        with self.assertRaisesRegex(ValueError, 'is not a merchandiser'):
            assignment_service.assign_merchandisers(
                self.db, manager_id=self.manager.id, merchandiser_ids=[self.other_manager.id], month=date(2026, 3, 1)
            )

    def test_next_month_has_no_merchandisers(self) -> None:
        assignment_service.assign_merchandisers(
            self.db, manager_id=self.manager.id, merchandiser_ids=[self.mike.id], month=date(2026, 3, 1)
        )
        self.assertEqual(
            assignment_service.list_manager_merchandisers(self.db, manager_id=self.manager.id, today=date(2026, 4, 1)),
            [],
        )


class LocationServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.mike = add_user(self.db, username='mike', role=UserRole.MERCHANDISER, staff_no=3001)
        self.nina = add_user(self.db, username='nina', role=UserRole.MERCHANDISER, staff_no=3002)

    def test_latest_location_per_merchandiser(self) -> None:
        location_service.record_location(self.db, merchandiser_id=self.mike.id, latitude=-1.28, longitude=36.82)
        location_service.record_location(self.db, merchandiser_id=self.mike.id, latitude=-1.30, longitude=36.80)
        location_service.record_location(self.db, merchandiser_id=self.nina.id, latitude=-4.04, longitude=39.66)

        rows = {row['merchandiser_id']: row for row in location_service.latest_locations(self.db)}

        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[self.mike.id]['latitude'], -1.30)
        self.assertEqual(rows[self.nina.id]['longitude'], 39.66)

    def test_out_of_range_coordinates_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            location_service.record_location(self.db, merchandiser_id=self.mike.id, latitude=91, longitude=0)
        with self.assertRaises(ValueError):
            location_service.record_location(self.db, merchandiser_id=self.mike.id, latitude=0, longitude=-181)


class NotificationServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.manager = add_user(self.db, username='mary', role=UserRole.MANAGER, staff_no=2)
        self.mike = add_user(self.db, username='mike', role=UserRole.MERCHANDISER, staff_no=3001)
        self.nina = add_user(self.db, username='nina', role=UserRole.MERCHANDISER, staff_no=3002)
        self.notice = notification_service.notify(
            self.db, manager_id=self.manager.id, merchandiser_id=self.mike.id, message='Photo is blurry'
        )

    def test_unread_is_visible_to_both_parties(self) -> None:
        self.assertEqual(len(notification_service.list_unread(self.db, user_id=self.mike.id)), 1)
        self.assertEqual(len(notification_service.list_unread(self.db, user_id=self.manager.id)), 1)
        self.assertEqual(notification_service.list_unread(self.db, user_id=self.nina.id), [])

    def test_mark_read_and_reply_reopens(self) -> None:
        notification_service.mark_read(self.db, notification_id=self.notice.id, user_id=self.mike.id)
        self.assertEqual(notification_service.list_unread(self.db, user_id=self.mike.id), [])

        entry = notification_service.reply(
            self.db, notification_id=self.notice.id, user_id=self.mike.id, sender='Mike Tester', text=' Retaken '
        )

        self.assertEqual(entry.reply, 'Retaken')
        self.assertEqual(self.notice.status, NotificationStatus.UNREAD)

    def test_outsiders_cannot_touch_notification(self) -> None:
        with self.assertRaises(PermissionError):
            notification_service.mark_read(self.db, notification_id=self.notice.id, user_id=self.nina.id)
        with self.assertRaises(ValueError):
            notification_service.reply(
                self.db, notification_id=self.notice.id, user_id=self.mike.id, sender='Mike Tester', text='  '
            )
        with self.assertRaises(LookupError):
            notification_service.mark_read(self.db, notification_id=999, user_id=self.mike.id)


class FacilityServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.manager = add_user(self.db, username='mary', role=UserRole.MANAGER, staff_no=2)
        self.other_manager = add_user(self.db, username='moses', role=UserRole.MANAGER, staff_no=4)

    def test_create_and_list_by_manager(self) -> None:
        facility_service.create_facility(
            self.db, manager_id=self.manager.id, name=' Westgate Mall ', location='Westlands', type_='mall'
        )
        add_facility(self.db, self.other_manager, name='Harbour Kiosk')

        mine = facility_service.list_facilities(self.db, manager_id=self.manager.id)

        self.assertEqual([facility.name for facility in mine], ['Westgate Mall'])
        self.assertEqual(len(facility_service.list_facilities(self.db)), 2)

    def test_only_managers_own_facilities(self) -> None:
        merchandiser = add_user(self.db, username='mike', role=UserRole.MERCHANDISER, staff_no=3001)
        with self.assertRaises(ValueError):
            facility_service.create_facility(
                self.db, manager_id=merchandiser.id, name='Shop', location='Town', type_='kiosk'
            )
        with self.assertRaises(ValueError):
            facility_service.create_facility(self.db, manager_id=self.manager.id, name=' ', location='Town', type_='kiosk')


if __name__ == '__main__':
    unittest.main()
