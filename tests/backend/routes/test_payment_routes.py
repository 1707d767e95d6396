import asyncio
import hashlib
import hmac
from types import SimpleNamespace

import pytest
import razorpay
import stripe

from backend.main import app
from backend.models.appointment import Appointment
from backend.routes.payment_routes import resolve_provider, resolve_stripe_provider
from backend.services.booking import book
from backend.services.payment_providers import RazorpayProvider, StripeProvider

KEY_SECRET = 'rzp_test_secret'


class FakeOrders:
    def __init__(self):
        self.receipts = {}

    def create(self, data, **kwargs):
        order_id = f"order_{data['receipt']}"
        self.receipts[order_id] = data['receipt']
        return {'id': order_id, 'amount': data['amount'], 'currency': data['currency'], 'receipt': data['receipt']}

    def fetch(self, order_id, **kwargs):
        return {'id': order_id, 'receipt': self.receipts.get(order_id)}


@pytest.fixture
def razorpay_provider():
    client = razorpay.Client(auth=('rzp_test_key', KEY_SECRET))
    client.order = FakeOrders()
    provider = RazorpayProvider(
        key_id='rzp_test_key',
        key_secret=KEY_SECRET,
        currency='INR',
        timeout=5,
        client=client,
    )
    app.dependency_overrides[resolve_provider] = lambda: provider
    return provider


@pytest.fixture
def booked(db, doctor, patient) -> Appointment:
    return book(db, patient.id, doctor.id, '2024-06-01', '10:00')


def _signature(order_id: str, payment_id: str) -> str:
    return hmac.new(KEY_SECRET.encode(), f'{order_id}|{payment_id}'.encode(), hashlib.sha256).hexdigest()


def test_order_then_verify_marks_appointment_paid(client, db, booked, patient_headers, razorpay_provider) -> None:
    order_response = client.post(
        '/payments/razorpay/order',
        json={'appointmentId': booked.id},
        headers=patient_headers,
    )
    assert order_response.status_code == 200
    order = order_response.json()['order']
    assert order['amount'] == 50000
    assert order['currency'] == 'INR'

    payload = {
        'razorpay_order_id': order['id'],
        'razorpay_payment_id': 'pay_1',
        'razorpay_signature': _signature(order['id'], 'pay_1'),
    }
    verify_response = client.post('/payments/razorpay/verify', json=payload, headers=patient_headers)

    assert verify_response.status_code == 200
    assert verify_response.json() == {
        'success': True,
        'message': 'Payment successful',
        'confidence': 'signature_verified',
    }
    db.refresh(booked)
    assert booked.paid is True

    repeated = client.post('/payments/razorpay/verify', json=payload, headers=patient_headers)
    assert repeated.status_code == 200


def test_verify_with_forged_signature_returns_400(client, db, booked, patient_headers, razorpay_provider) -> None:
    order = client.post(
        '/payments/razorpay/order',
        json={'appointmentId': booked.id},
        headers=patient_headers,
    ).json()['order']
    signature = _signature(order['id'], 'pay_1')
    forged = signature[:-1] + ('a' if signature[-1] != 'a' else 'b')

    response = client.post(
        '/payments/razorpay/verify',
        json={'razorpay_order_id': order['id'], 'razorpay_payment_id': 'pay_1', 'razorpay_signature': forged},
        headers=patient_headers,
    )

    assert response.status_code == 400
    assert response.json() == {'success': False, 'message': 'Payment verification failed.'}
    db.refresh(booked)
    assert booked.paid is False


def test_order_for_cancelled_appointment_returns_400(client, booked, patient_headers, razorpay_provider) -> None:
    client.post(f'/appointments/{booked.id}/cancel', headers=patient_headers)

    response = client.post('/payments/razorpay/order', json={'appointmentId': booked.id}, headers=patient_headers)

    assert response.status_code == 400
    assert response.json() == {'success': False, 'message': 'Appointment cancelled.'}


def test_order_for_missing_appointment_returns_404(client, patient, patient_headers, razorpay_provider) -> None:
    response = client.post('/payments/razorpay/order', json={'appointmentId': 999}, headers=patient_headers)

    assert response.status_code == 404
    assert response.json() == {'success': False, 'message': 'Appointment not found.'}


def test_unknown_provider_returns_404(client, patient_headers) -> None:
    response = client.post('/payments/paypal/order', json={'appointmentId': 1}, headers=patient_headers)

    assert response.status_code == 404
    assert response.json() == {'success': False, 'message': 'Unsupported payment provider.'}


class FakeWebhook:
    @staticmethod
    def construct_event(payload, sig_header, secret):
        if sig_header != 'valid-signature':
            raise stripe.SignatureVerificationError('bad signature', sig_header)
        return {
            'type': 'checkout.session.completed',
            'data': {
                'object': {
                    'id': 'cs_test_1',
                    'payment_status': 'paid',
                    'metadata': {'appointment_id': payload.decode()},
                }
            },
        }


@pytest.fixture
def stripe_provider():
    provider = StripeProvider(
        api_key='sk_test',
        webhook_secret='whsec_test',
        currency='INR',
        timeout=5,
        frontend_url='http://localhost:5173',
        sdk=SimpleNamespace(Webhook=FakeWebhook),
    )
    app.dependency_overrides[resolve_stripe_provider] = lambda: provider
    return provider


def test_stripe_webhook_marks_appointment_paid(client, db, booked, stripe_provider) -> None:
    response = client.post(
        '/payments/stripe/webhook',
        content=str(booked.id).encode(),
        headers={'Stripe-Signature': 'valid-signature'},
    )

    assert response.status_code == 200
    db.refresh(booked)
    assert booked.paid is True


def test_stripe_webhook_with_bad_signature_returns_400(client, db, booked, stripe_provider) -> None:
    response = client.post(
        '/payments/stripe/webhook',
        content=str(booked.id).encode(),
        headers={'Stripe-Signature': 'forged'},
    )

    assert response.status_code == 400
    assert response.json()['success'] is False
    db.refresh(booked)
    assert booked.paid is False


def test_stripe_webhook_settles_payment_off_the_event_loop(
    client, db, booked, stripe_provider, monkeypatch: pytest.MonkeyPatch
) -> None:
    seen = []
    verify_webhook = stripe_provider.verify_webhook

    def recording_verify_webhook(raw_body, signature_header):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            seen.append('worker thread')
        else:
            seen.append('event loop')
        return verify_webhook(raw_body, signature_header)

    monkeypatch.setattr(stripe_provider, 'verify_webhook', recording_verify_webhook)

    response = client.post(
        '/payments/stripe/webhook',
        content=str(booked.id).encode(),
        headers={'Stripe-Signature': 'valid-signature'},
    )

    assert response.status_code == 200
    assert seen == ['worker thread']
    db.refresh(booked)
    assert booked.paid is True
