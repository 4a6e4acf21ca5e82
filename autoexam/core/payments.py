"""
Credit purchases through Stripe Checkout
"""
import logging

import stripe

from .errors import AppError, NotFound, PaymentError, ValidationError

logger = logging.getLogger(__name__)

# Plan key doubles as the number of credits it buys
PLANS = {
    '1': {
        'name': 'Basic Plan',
        'description': '1 Test Paper Analysis',
        'amount': 82900,
        'currency': 'inr',
    },
    '3': {
        'name': 'Standard Plan',
        'description': '3 Test Paper Analyses',
        'amount': 207400,
        'currency': 'inr',
    },
    '6': {
        'name': 'Premium Plan',
        'description': '6 Test Paper Analyses',
        'amount': 331800,
        'currency': 'inr',
    },
}


def _field(obj, key):
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


class PaymentService:
    def __init__(self, config, ledger):
        self.api_key = config['STRIPE_SECRET_KEY']
        self.webhook_secret = config['STRIPE_WEBHOOK_SECRET']
        self.frontend_url = config['FRONTEND_URL'].rstrip('/')
        self.ledger = ledger

    def create_checkout_session(self, account, plan):
        details = PLANS.get(plan)
        if not details:
            raise ValidationError('Invalid plan selected')

        try:
            checkout = stripe.checkout.Session.create(
                api_key=self.api_key,
                payment_method_types=['card'],
                line_items=[{
                    'quantity': 1,
                    'price_data': {
                        'currency': details['currency'],
                        'unit_amount': details['amount'],
                        'product_data': {
                            'name': details['name'],
                            'description': details['description'],
                        },
                    },
                }],
                mode='payment',
                success_url=f"{self.frontend_url}/payment-success?session_id={{CHECKOUT_SESSION_ID}}&plan={plan}",
                cancel_url=f"{self.frontend_url}/pricing",
                client_reference_id=str(account['id']),
                metadata={'userId': str(account['id']), 'plan': plan},
                payment_intent_data={'description': f"AutoExamChecker - {details['name']}"},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout error: {e.user_message or e} (code={e.code}, request={e.request_id})")
            raise PaymentError('Error creating checkout session')

        return {'checkoutUrl': checkout.url, 'sessionId': checkout.id}

    def handle_webhook(self, payload, signature):
        """Verify and apply a provider event. Returns the event type."""
        if not self.webhook_secret:
            logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not set")
            raise PaymentError('Webhook secret is not configured', status_code=400)

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise PaymentError(f"Webhook Error: {e}", status_code=400)

        event_type = _field(event, 'type')
        logger.info(f"Webhook received: {event_type}")

        if event_type == 'checkout.session.completed':
            checkout = _field(_field(event, 'data'), 'object')
            self._apply_checkout(checkout)
        elif event_type == 'payment_intent.succeeded':
            logger.info("Payment intent succeeded")
        else:
            logger.info(f"Unhandled event type: {event_type}")
        return event_type

    def _apply_checkout(self, checkout):
        metadata = _field(checkout, 'metadata')
        user_id = _field(metadata, 'userId')
        plan = _field(metadata, 'plan')
        if not user_id or plan not in PLANS:
            logger.error("Missing user ID or plan in session metadata")
            return False

        try:
            account_id = int(user_id)
        except (TypeError, ValueError):
            logger.error(f"Malformed user ID in session metadata: {user_id!r}")
            return False

        try:
            applied = self.ledger.apply_payment(account_id, _field(checkout, 'id'), plan)
        except AppError as e:
            # Acknowledge the event anyway; the provider would only retry
            logger.error(f"Could not apply checkout {_field(checkout, 'id')}: {e.message}")
            return False
        if applied:
            logger.info(f"Updated user {user_id} with {plan} tests")
        return applied

    def confirm_checkout(self, account, session_id):
        """Apply a checkout the client reports as finished. Returns True if credited now."""
        if not session_id:
            raise ValidationError('Missing required parameters')
        try:
            checkout = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe retrieve error for {session_id}: {e}")
            raise PaymentError('Error verifying payment')

        metadata = _field(checkout, 'metadata')
        if _field(metadata, 'userId') != str(account['id']):
            raise NotFound('Checkout session not found')
        if _field(checkout, 'payment_status') != 'paid':
            raise ValidationError('Payment has not been completed')

        plan = _field(metadata, 'plan')
        if plan not in PLANS:
            raise ValidationError('Invalid plan selected')
        return self.ledger.apply_payment(account['id'], session_id, plan)
