from __future__ import annotations

from typing import NamedTuple

from merch_mate.client.session_store import SessionState


class RouteEntry(NamedTuple):
    path: str
    label: str


PUBLIC_PATHS = frozenset({'/', '/login', '/signup', '/reset-password', '/contact-us'})
ENTRY_PATHS = frozenset({'/', '/login'})

MERCHANDISER_ROUTES = (
    RouteEntry('/merch-calendar', 'Calendar'),
    RouteEntry('/merch-routes', 'Routes'),
    RouteEntry('/performance', 'Performance'),
    RouteEntry('/leaderboard', 'Leaderboard'),
    RouteEntry('/notifications', 'Notifications'),
    RouteEntry('/settings', 'Settings'),
    RouteEntry('/contact-us', 'Contact Us'),
)

MANAGER_ROUTES = (
    RouteEntry('/map', 'Home'),
    RouteEntry('/routes', 'Routes'),
    RouteEntry('/calendar', 'Create Routes'),
    RouteEntry('/outlet', 'Create Outlet'),
    RouteEntry('/response', 'Response'),
    RouteEntry('/merchandisers', 'Merchandisers'),
    RouteEntry('/leaderboard', 'Leaderboard'),
    RouteEntry('/profile', 'Profile'),
    RouteEntry('/settings', 'Settings'),
)

ADMIN_ROUTES = (
    RouteEntry('/map', 'Home'),
    RouteEntry('/signup', 'Create User'),
    RouteEntry('/resetuser', 'Reset User'),
    RouteEntry('/manageusers', 'Manage users'),
    RouteEntry('/assign/merchandisers', 'Assign Merchandisers'),
    RouteEntry('/new/kpi', 'New KPIs'),
    RouteEntry('/manage/kpi', 'Manage KPIs'),
    RouteEntry('/performances', 'Performance'),
    RouteEntry('/settings', 'Settings'),
)


def route_table(state: SessionState) -> tuple[RouteEntry, ...]:
    if state.admin:
        return ADMIN_ROUTES
    if state.role_check:
        return MANAGER_ROUTES
    return MERCHANDISER_ROUTES


def sidebar(state: SessionState) -> list[str]:
    return [entry.label for entry in route_table(state)]


def home_route(state: SessionState) -> str:
    return route_table(state)[0].path


def is_allowed(state: SessionState, path: str) -> bool:
    return any(entry.path == path for entry in route_table(state))


def resolve_route(state: SessionState, requested: str) -> str:
    """Return the path that should actually be rendered for ``requested``.

    Signed-out users only reach public pages. Signed-in users landing on the
    entry pages resume ``previous_route`` when their role can still see it.
    """
    path = requested or '/'
    if not state.access_token:
        return path if path in PUBLIC_PATHS else '/'

    if path in ENTRY_PATHS:
        if state.previous_route and is_allowed(state, state.previous_route):
            return state.previous_route
        return home_route(state)
    if is_allowed(state, path) or path in PUBLIC_PATHS:
        return path
    return home_route(state)
