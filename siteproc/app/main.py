from fastapi import FastAPI

from siteproc.app.api.errors import register_exception_handlers
from siteproc.app.api.v1.router import router as v1_router
from siteproc.app.config import settings
from siteproc.app.logging_config import configure_logging

configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
register_exception_handlers(app)
app.include_router(v1_router, prefix="/v1")
