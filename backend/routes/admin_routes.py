from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin
from backend.auth.principal import Principal
from backend.database import get_db
from backend.routes.appointment_routes import ensure_database_ready
from backend.routes.schemas import AppointmentResponse
from backend.services import dashboard

router = APIRouter(tags=['admin'])


@router.get('/dashboard')
def admin_dashboard(
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del principal
    ensure_database_ready()

    data = dashboard.admin_dashboard(db)
    data['latest_appointments'] = [
        AppointmentResponse.model_validate(appointment) for appointment in data['latest_appointments']
    ]
    return {'success': True, 'dashboard': data}
