from mangum import Mangum
from main import app

# API Gateway entry point; tables are managed by Alembic, not on startup
handler = Mangum(app, lifespan="off")


def lambda_handler(event, context):
    return handler(event, context)
