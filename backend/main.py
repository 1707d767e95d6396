import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.core import config
from backend.core.errors import ServiceError
from backend.database import Base, engine, ensure_appointment_schema, ensure_doctor_schema
from backend.models import appointment, doctor, user  # noqa: F401
from backend.routes import admin_routes, appointment_routes, doctor_routes, payment_routes

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_doctor_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(ServiceError)
def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.retryable:
        logger.warning('%s %s failed with retryable error: %s', request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={'success': False, 'message': exc.message})


@app.exception_handler(StarletteHTTPException)
def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={'success': False, 'message': exc.detail},
        headers=getattr(exc, 'headers', None),
    )


@app.exception_handler(RequestValidationError)
def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(error['loc'][-1]) for error in exc.errors() if error.get('loc')})
    message = 'Missing or invalid details: ' + ', '.join(fields) if fields else 'Invalid request.'
    return JSONResponse(status_code=400, content={'success': False, 'message': message})


@app.get('/')
def root():
    return {'status': 'Appointment Booking API Running'}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(payment_routes.router, prefix='/payments')
app.include_router(doctor_routes.router, prefix='/doctors')
app.include_router(admin_routes.router, prefix='/admin')
