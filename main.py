import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pymongo.errors import PyMongoError

from marketplace.api.routers import auth, files, locations, orders, partners
from marketplace.core.config import settings
from marketplace.core.database import close_mongo_connection, db, ensure_indexes
from marketplace.core.errors import DomainError, InvalidOtpCode
from marketplace.core.logging import setup_logging
from marketplace.core.redis import close_redis
from marketplace.middleware.logging import RequestLoggingMiddleware

log = logging.getLogger(__name__)
prefix = settings.API_V1_PREFIX

TAGS = ["Root", "Auth", "Orders", "Locations", "Partners", "Files"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and make sure the indexes exist on startup,
    and close Mongo and Redis on shutdown."""
    setup_logging()
    await ensure_indexes(db)
    log.info("%s started", settings.PROJECT_NAME)

    yield  # <--- app runs while this yields

    await close_mongo_connection()
    await close_redis()


app = FastAPI(
    title=settings.PROJECT_NAME,
    servers=[{"url": settings.BACKEND_BASE_URL}],
    swagger_ui_oauth2_redirect_url="/docs/oauth2-redirect",
    docs_url=None,
    lifespan=lifespan,
)

""" Added CORS Middle ware to allow cross origin resouce sharing
    Currently in development so allowed all origins, methods, headers, with credentials
"""
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

"""Custom middle to log meta data of request and computation time for each request"""
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    body = {"detail": exc.message}
    if isinstance(exc, InvalidOtpCode) and exc.remaining_attempts is not None:
        body["remaining_attempts"] = exc.remaining_attempts
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(PyMongoError)
async def mongo_error_handler(request: Request, exc: PyMongoError):
    log.error("database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=503, content={"detail": "Database unavailable"})


"""Over ridding inbuilt swagger/ui to add drop down for filtering routes based on tags"""
@app.get("/docs", include_in_schema=False)
def custom_docs():
    options = "\n".join(f'<option value="{t}">{t}</option>' for t in TAGS)
    html = """
    <!DOCTYPE html>
    <html>
    <head>
        <link type="text/css" rel="stylesheet" href="https://cdn.jsdelivr.net/npm/swagger-ui-dist@5/swagger-ui.css">
        <link rel="shortcut icon" href="https://fastapi.tiangolo.com/img/favicon.png">
        <title>__TITLE__</title>
    </head>
    <body>
        <div id="swagger-ui"></div>
        <script src="https://cdn.jsdelivr.net/npm/swagger-ui-dist@5/swagger-ui-bundle.js"></script>
        <script>
        const ui = SwaggerUIBundle({
            url: '/openapi.json',
            dom_id: '#swagger-ui',
            layout: 'BaseLayout',
            deepLinking: true,
            presets: [
                SwaggerUIBundle.presets.apis,
                SwaggerUIBundle.SwaggerUIStandalonePreset
            ],
            onComplete: () => {
                setTimeout(() => {
                    const authWrapper = document.querySelector('.auth-wrapper');
                    if (!authWrapper) return;
                    const dropdown = document.createElement('select');
                    dropdown.innerHTML = `<option value="">Show All</option>__OPTIONS__`;
                    dropdown.style.marginRight = '10px';
                    dropdown.style.padding = '8px';
                    dropdown.style.border = '1px solid #ccc';
                    dropdown.style.borderRadius = '4px';
                    dropdown.onchange = function() {
                        const tag = this.value;
                        document.querySelectorAll('.opblock-tag-section').forEach(sec => {
                            const tagName = sec.querySelector('.opblock-tag').textContent.trim();
                            sec.style.display = (!tag || tagName === tag) ? '' : 'none';
                        });
                    };
                    authWrapper.parentNode.insertBefore(dropdown, authWrapper);
                }, 100);
            }
        });
        </script>
    </body>
    </html>
    """
    html = html.replace("__TITLE__", settings.PROJECT_NAME).replace("__OPTIONS__", options)
    return HTMLResponse(content=html)


"""Adding all the routes to FastAPI instance"""

app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["Auth"])
app.include_router(orders.router, prefix=f"{prefix}/orders", tags=["Orders"])
app.include_router(locations.router, prefix=f"{prefix}/locations", tags=["Locations"])
app.include_router(partners.router, prefix=f"{prefix}/partners", tags=["Partners"])
app.include_router(files.router, prefix=f"{prefix}/files", tags=["Files"])


@app.get("/", tags=["Root"])
async def root():
    return {"message": f"{settings.PROJECT_NAME} is running"}
