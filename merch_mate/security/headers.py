from fastapi import FastAPI, Request
from starlette.responses import Response

API_HEADERS = {
    'X-Robots-Tag': 'noindex, nofollow, noarchive',
    'X-Content-Type-Options': 'nosniff',
    'Referrer-Policy': 'no-referrer',
}
IMAGE_PREFIX = '/images/'
IMAGE_CACHE_CONTROL = 'private, max-age=86400'


def install_security_headers(app: FastAPI) -> None:
    @app.middleware('http')
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        for name, value in API_HEADERS.items():
            response.headers[name] = value
        if request.url.path.startswith(IMAGE_PREFIX) and response.status_code == 200:
            response.headers['Cache-Control'] = IMAGE_CACHE_CONTROL
        else:
            response.headers['Cache-Control'] = 'no-store'
        return response
