"""AWS Lambda entry point.

Mangum translates API Gateway HTTP API (v2) events into ASGI, letting
the FastAPI app run unchanged on Lambda. Background tenant loops only
live as long as the execution environment, so health sweeps and queue
draining are best-effort there.
"""

from mangum import Mangum

from messageflow.main import app

handler = Mangum(app, lifespan="off")
