from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum
from fastapi.responses import HTMLResponse
from fastapi import Request
from config import ENVIRONMENT, DEBUG, LOG_LEVEL, CORS_ORIGINS
import logging

from routers.auth.auth import router as auth_router
from routers.orders.orders import router as orders_router
from routers.chats.chats import router as chats_router
from routers.notifications.notifications import router as notifications_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

IS_PRODUCTION = ENVIRONMENT == "prod"

app = FastAPI(
    title="SurplusMandi API",
    description="Orders, chats and notifications for SurplusMandi, a marketplace where street food vendors trade surplus stock.",
    version="1.0.0",
    debug=DEBUG,
    root_path="/Prod" if IS_PRODUCTION else "",
    docs_url="/apidocs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    servers=[
        {"url": "https://your-aws-api.execute-api.region.amazonaws.com/Prod", "description": "Production Server"},
        {"url": "http://localhost:8000", "description": "Local Development Server"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(orders_router)
app.include_router(chats_router)
app.include_router(notifications_router)


@app.get("/docs", include_in_schema=False)
async def api_documentation(request: Request):
    openapi_url = "/Prod/openapi.json" if IS_PRODUCTION else "/openapi.json"

    return HTMLResponse(
        f"""
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1, shrink-to-fit=no">
    <title>SurplusMandi API DOCS</title>

    <script src="https://unpkg.com/@stoplight/elements/web-components.min.js"></script>
    <link rel="stylesheet" href="https://unpkg.com/@stoplight/elements/styles.min.css">
  </head>
  <body>

    <elements-api
      apiDescriptionUrl="{openapi_url}"
      router="hash"
      theme="dark"
    />

  </body>
</html>"""
    )


@app.get("/", response_class=HTMLResponse)
def home():
    """Landing page of the SurplusMandi backend"""
    return """
    <html>
      <head>
        <title>SurplusMandi API</title>
        <style>
          body { font-family: Arial, sans-serif; margin: 40px; background-color: #f8f9fa; }
          h1 { color: #333; }
          ul { list-style-type: none; padding: 0; }
          li { margin: 10px 0; }
          a { color: #0066cc; text-decoration: none; }
        </style>
      </head>
      <body>
        <h1>Welcome to SurplusMandi API</h1>
        <hr>
        <ul>
          <li><a href="/docs">Spotlight API Documentation</a></li>
          <li><a href="/redoc">Redoc API Documentation</a></li>
          <li><a href="/apidocs">Swagger API Documentation</a></li>
          <li><a href="/openapi.json">OpenAPI Specification</a></li>
        </ul>
      </body>
    </html>
    """


handler = Mangum(app)
