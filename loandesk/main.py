from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from loandesk import __version__
from loandesk.api.v1 import api_router
from loandesk.core.errors import register_exception_handlers
from loandesk.core.response_envelope import register_response_envelope
from loandesk.core.limiter import limiter
from loandesk.core.logging import configure_logging
from loandesk.core.settings import settings
from loandesk.events import register_event_handlers
from loandesk.middlewares.request_context import RequestContextMiddleware
from loandesk.middlewares.security_headers import SecurityHeadersMiddleware
from loandesk.middlewares.trust_proxies import TrustedProxiesMiddleware


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Loandesk Backend", version=__version__)
    register_exception_handlers(app)
    register_response_envelope(app)
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(TrustedProxiesMiddleware, proxies_count=settings.proxies_count)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.enable_hsts)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.include_router(api_router, prefix="/api/v1")
    register_event_handlers(app)
    return app


app = create_app()
