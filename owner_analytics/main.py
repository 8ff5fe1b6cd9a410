import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from owner_analytics.config import settings
from owner_analytics.routers import reports

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='POS Owner Analytics')

app.include_router(reports.router)


@app.get('/healthz', response_class=PlainTextResponse)
def healthz() -> str:
    return 'ok'


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
