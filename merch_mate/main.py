import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from merch_mate.config import settings
from merch_mate.envelope import envelope, install_error_handlers
from merch_mate.logging_setup import setup_logging
from merch_mate.routers import (
    assignments,
    auth,
    facilities,
    kpis,
    notifications,
    performance,
    responses,
    route_plans,
    users,
)
from merch_mate.security.headers import install_security_headers

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title='Merch Mate')

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=['*'],
    allow_headers=['*'],
)
install_security_headers(app)
install_error_handlers(app)

app.include_router(auth.router)
app.include_router(facilities.router)
app.include_router(route_plans.router)
app.include_router(responses.router)
app.include_router(responses.images_router)
app.include_router(kpis.router)
app.include_router(performance.router)
app.include_router(notifications.router)
app.include_router(assignments.router)
app.include_router(users.router)


@app.get('/')
def root():
    return envelope('Merch Mate API is running')
