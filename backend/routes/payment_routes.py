import logging

from fastapi import APIRouter, Body, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_patient
from backend.auth.principal import Principal
from backend.database import get_db
from backend.routes.appointment_routes import ensure_database_ready
from backend.services import payments
from backend.services.payment_providers import PaymentProvider, StripeProvider, get_payment_provider

router = APIRouter(tags=['payments'])

logger = logging.getLogger(__name__)


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    appointment_id: int = Field(alias='appointmentId')


def resolve_provider(provider: str) -> PaymentProvider:
    return get_payment_provider(provider)


def resolve_stripe_provider() -> StripeProvider:
    return get_payment_provider(StripeProvider.name)


def _settle_stripe_event(provider: StripeProvider, db: Session, raw_body: bytes, signature: str | None) -> dict:
    result = provider.verify_webhook(raw_body, signature)
    if result is None:
        return {'success': True, 'message': 'Event ignored'}

    ensure_database_ready()
    payments.reconcile(db, result)
    return {'success': True, 'message': 'Payment successful'}


@router.post('/stripe/webhook')
async def stripe_webhook(
    request: Request,
    provider: StripeProvider = Depends(resolve_stripe_provider),
    db: Session = Depends(get_db),
):
    # Signature checks need the exact bytes Stripe signed.
    raw_body = await request.body()
    return await run_in_threadpool(
        _settle_stripe_event,
        provider,
        db,
        raw_body,
        request.headers.get('stripe-signature'),
    )


@router.post('/{provider}/order')
def create_order(
    data: CreateOrderRequest,
    request: Request,
    provider: PaymentProvider = Depends(resolve_provider),
    principal: Principal = Depends(require_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    order = payments.create_order(
        db,
        provider,
        principal.id,
        data.appointment_id,
        origin=request.headers.get('origin'),
    )
    response = {
        'success': True,
        'order': {
            'provider': order.provider,
            'id': order.order_id,
            'amount': order.amount,
            'currency': order.currency,
        },
    }
    if order.redirect_url:
        response['session_url'] = order.redirect_url
    return response


@router.post('/{provider}/verify')
def verify_payment(
    payload: dict = Body(...),
    provider: PaymentProvider = Depends(resolve_provider),
    principal: Principal = Depends(require_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment, result = payments.verify_payment(db, provider, payload)
    if appointment.patient_id != principal.id:
        logger.warning(
            'Patient %s confirmed payment for appointment %s owned by patient %s',
            principal.id,
            appointment.id,
            appointment.patient_id,
        )
    return {'success': True, 'message': 'Payment successful', 'confidence': result.confidence.value}
