"""Payment provider integrations.

Each provider creates an order for an appointment and turns the provider's
callback into a :class:`VerificationResult`. The result states how far the
confirmation can be trusted, so callers never treat a browser redirect as
equivalent to a signed or server-confirmed payment.
"""

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError, SignatureVerificationError
import requests
import stripe

from backend.core import config
from backend.core.errors import (
    Invalid,
    OrderNotFound,
    PaymentDeclined,
    ProviderNotFound,
    ProviderUnavailable,
    SignatureMismatch,
)
from backend.models.appointment import Appointment

logger = logging.getLogger(__name__)


class VerificationConfidence(str, enum.Enum):
    SIGNATURE_VERIFIED = 'signature_verified'
    PROVIDER_CONFIRMED = 'provider_confirmed'
    REDIRECT_TRUSTED = 'redirect_trusted'


@dataclass(frozen=True)
class OrderHandle:
    provider: str
    order_id: str
    amount: int
    currency: str
    redirect_url: str | None = None
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class VerificationResult:
    provider: str
    appointment_id: int
    confidence: VerificationConfidence
    reference: str | None = None


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def parse_appointment_id(value: Any) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise OrderNotFound('Order is not linked to an appointment.') from exc


class PaymentProvider(ABC):
    name: str

    @abstractmethod
    def create_order(self, appointment: Appointment, origin: str | None = None) -> OrderHandle:
        """Request an order/session for the appointment's amount."""

    @abstractmethod
    def verify(self, payload: dict) -> VerificationResult:
        """Validate a callback payload and identify the appointment it pays for."""


class RazorpayProvider(PaymentProvider):
    """Orders API; callbacks are signed with the key secret and checked by the SDK."""

    name = 'razorpay'

    def __init__(self, key_id: str, key_secret: str, currency: str, timeout: float, client=None):
        self.currency = currency
        self.timeout = timeout
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    def create_order(self, appointment: Appointment, origin: str | None = None) -> OrderHandle:
        options = {
            'amount': to_minor_units(appointment.amount),
            'currency': self.currency,
            'receipt': str(appointment.id),
            'notes': {'appointment_id': str(appointment.id)},
        }
        try:
            order = self.client.order.create(data=options, timeout=self.timeout)
        except (BadRequestError, ServerError, GatewayError, requests.RequestException) as exc:
            logger.exception('Razorpay order creation failed for appointment %s', appointment.id)
            raise ProviderUnavailable() from exc

        return OrderHandle(
            provider=self.name,
            order_id=order['id'],
            amount=order.get('amount', options['amount']),
            currency=order.get('currency', self.currency),
            details=order,
        )

    def verify(self, payload: dict) -> VerificationResult:
        order_id = payload.get('razorpay_order_id')
        payment_id = payload.get('razorpay_payment_id')
        signature = payload.get('razorpay_signature')
        if not order_id or not payment_id or not signature:
            raise Invalid('Missing Razorpay verification details.')

        try:
            self.client.utility.verify_payment_signature(
                {
                    'razorpay_order_id': order_id,
                    'razorpay_payment_id': payment_id,
                    'razorpay_signature': signature,
                }
            )
        except SignatureVerificationError as exc:
            logger.warning('Razorpay signature mismatch for order %s', order_id)
            raise SignatureMismatch() from exc

        try:
            order = self.client.order.fetch(order_id, timeout=self.timeout)
        except BadRequestError as exc:
            raise OrderNotFound() from exc
        except (ServerError, GatewayError, requests.RequestException) as exc:
            logger.exception('Razorpay order fetch failed for %s', order_id)
            raise ProviderUnavailable() from exc

        receipt = (order or {}).get('receipt')
        if not receipt:
            raise OrderNotFound('Order receipt not found.')

        return VerificationResult(
            provider=self.name,
            appointment_id=parse_appointment_id(receipt),
            confidence=VerificationConfidence.SIGNATURE_VERIFIED,
            reference=payment_id,
        )


class StripeProvider(PaymentProvider):
    """Checkout Sessions, confirmed server-side or through signed webhooks."""

    name = 'stripe'

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        currency: str,
        timeout: float,
        frontend_url: str,
        trust_redirect: bool = False,
        sdk=None,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.currency = currency.lower()
        self.frontend_url = frontend_url
        self.trust_redirect = trust_redirect
        self.sdk = sdk or stripe
        if sdk is None:
            stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def create_order(self, appointment: Appointment, origin: str | None = None) -> OrderHandle:
        base_url = (origin or self.frontend_url).rstrip('/')
        amount = to_minor_units(appointment.amount)
        try:
            session = self.sdk.checkout.Session.create(
                api_key=self.api_key,
                mode='payment',
                client_reference_id=str(appointment.id),
                metadata={'appointment_id': str(appointment.id)},
                line_items=[
                    {
                        'price_data': {
                            'currency': self.currency,
                            'product_data': {'name': 'Appointment Fees'},
                            'unit_amount': amount,
                        },
                        'quantity': 1,
                    }
                ],
                success_url=(
                    f'{base_url}/verify?success=true&appointmentId={appointment.id}'
                    '&session_id={CHECKOUT_SESSION_ID}'
                ),
                cancel_url=f'{base_url}/verify?success=false&appointmentId={appointment.id}',
            )
        except stripe.StripeError as exc:
            logger.exception('Stripe session creation failed for appointment %s', appointment.id)
            raise ProviderUnavailable() from exc

        return OrderHandle(
            provider=self.name,
            order_id=session['id'],
            amount=amount,
            currency=self.currency,
            redirect_url=session['url'],
        )

    def _result_from_session(self, session, confidence: VerificationConfidence) -> VerificationResult:
        metadata = session.get('metadata') or {}
        appointment_ref = metadata.get('appointment_id') or session.get('client_reference_id')
        if not appointment_ref:
            raise OrderNotFound('Checkout session is not linked to an appointment.')
        if session.get('payment_status') != 'paid':
            raise PaymentDeclined()
        return VerificationResult(
            provider=self.name,
            appointment_id=parse_appointment_id(appointment_ref),
            confidence=confidence,
            reference=session.get('id'),
        )

    def verify(self, payload: dict) -> VerificationResult:
        session_id = payload.get('session_id') or payload.get('sessionId')
        if session_id:
            try:
                session = self.sdk.checkout.Session.retrieve(session_id, api_key=self.api_key)
            except stripe.InvalidRequestError as exc:
                raise OrderNotFound() from exc
            except stripe.StripeError as exc:
                logger.exception('Stripe session lookup failed for %s', session_id)
                raise ProviderUnavailable() from exc
            return self._result_from_session(session, VerificationConfidence.PROVIDER_CONFIRMED)

        appointment_ref = payload.get('appointmentId') or payload.get('appointment_id')
        if not appointment_ref:
            raise Invalid('appointmentId is required.')
        if not self.trust_redirect:
            raise Invalid('Stripe verification requires a checkout session id.')

        appointment_id = parse_appointment_id(appointment_ref)
        if str(payload.get('success')).lower() != 'true':
            raise PaymentDeclined()

        logger.warning(
            'Accepting unverified Stripe redirect for appointment %s (confidence=%s)',
            appointment_id,
            VerificationConfidence.REDIRECT_TRUSTED.value,
        )
        return VerificationResult(
            provider=self.name,
            appointment_id=appointment_id,
            confidence=VerificationConfidence.REDIRECT_TRUSTED,
        )

    def verify_webhook(self, raw_body: bytes, signature_header: str | None) -> VerificationResult | None:
        """Validate a webhook delivery; returns None for events that do not settle a payment."""
        if not signature_header:
            raise SignatureMismatch()
        try:
            event = self.sdk.Webhook.construct_event(raw_body, signature_header, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            logger.warning('Stripe webhook signature mismatch')
            raise SignatureMismatch() from exc
        except ValueError as exc:
            raise Invalid('Malformed webhook payload.') from exc

        if event['type'] not in ('checkout.session.completed', 'checkout.session.async_payment_succeeded'):
            logger.debug('Ignoring Stripe event %s', event['type'])
            return None

        session = event['data']['object']
        if session.get('payment_status') != 'paid':
            return None
        return self._result_from_session(session, VerificationConfidence.SIGNATURE_VERIFIED)


_providers: dict[str, PaymentProvider] = {}


def build_payment_provider(name: str) -> PaymentProvider:
    if name == RazorpayProvider.name:
        return RazorpayProvider(
            key_id=config.RAZORPAY_KEY_ID,
            key_secret=config.RAZORPAY_KEY_SECRET,
            currency=config.CURRENCY,
            timeout=config.PAYMENT_PROVIDER_TIMEOUT_SECONDS,
        )
    if name == StripeProvider.name:
        return StripeProvider(
            api_key=config.STRIPE_SECRET_KEY,
            webhook_secret=config.STRIPE_WEBHOOK_SECRET,
            currency=config.CURRENCY,
            timeout=config.PAYMENT_PROVIDER_TIMEOUT_SECONDS,
            frontend_url=config.FRONTEND_URL,
            trust_redirect=config.STRIPE_TRUST_REDIRECT,
        )
    raise ProviderNotFound()


def get_payment_provider(name: str) -> PaymentProvider:
    normalized = (name or '').strip().lower()
    if normalized not in _providers:
        _providers[normalized] = build_payment_provider(normalized)
    return _providers[normalized]
