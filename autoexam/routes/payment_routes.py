"""
Credit purchase routes
"""
from flask import Blueprint, current_app, g, jsonify, request

from autoexam.core.auth import login_required, public_user
from autoexam.core.schemas import CheckoutSchema

payment_bp = Blueprint('payment', __name__)


@payment_bp.route('/create-checkout-session', methods=['POST'])
@login_required
def create_checkout_session():
    data = CheckoutSchema.model_validate(request.get_json(silent=True) or {})
    checkout = current_app.payments.create_checkout_session(g.current_user, data.plan)
    return jsonify({'success': True, **checkout})


@payment_bp.route('/webhook', methods=['POST'])
def stripe_webhook():
    """Provider callback; authenticated by signature, not by token"""
    payload = request.get_data()
    signature = request.headers.get('Stripe-Signature', '')
    current_app.payments.handle_webhook(payload, signature)
    return jsonify({'received': True})


@payment_bp.route('/payment-success')
@login_required
def payment_success():
    credited = current_app.payments.confirm_checkout(g.current_user, request.args.get('session_id'))
    account = current_app.storage.get_account(g.current_user['id'])
    return jsonify({
        'success': True,
        'message': 'Payment processed successfully',
        'credited': credited,
        'user': public_user(account)
    })


@payment_bp.route('/user/credits')
@login_required
def user_credits():
    summary = current_app.ledger.summary(g.current_user['id'])
    return jsonify({
        'success': True,
        'testsPurchased': summary['testsPurchased'],
        'testsUsed': summary['testsUsed']
    })
