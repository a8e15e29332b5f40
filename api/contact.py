# api/contact.py
"""
Contact form API

POST /submit-contact runs the submission pipeline:
rate limit -> validation -> reCAPTCHA verification -> composition -> delivery.
Every terminal state maps to a JSON response; internal details are logged,
never returned to the caller.
"""

from flask import Blueprint, request, jsonify, current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import logging
from typing import Any, Dict

from core.exceptions import DeliveryError
from core.validation import validate_submission, RECAPTCHA_TOKEN

contact_bp = Blueprint('contact', __name__)
logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = 'Thank you for your submission. We will get in touch soon!'
VALIDATION_FAILED_MESSAGE = 'Validation failed'
RECAPTCHA_FAILED_MESSAGE = 'reCAPTCHA verification failed. Please try again.'
SERVER_ERROR_MESSAGE = 'Sorry, there was an error processing your request. Please try again later.'
RATE_LIMIT_MESSAGE = 'Too many form submissions from this IP, please try again later.'

# Per-IP limiter; storage and limits come from the app config at init_app time
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
)


@limiter.request_filter
def _exempt_preflight() -> bool:
    """CORS preflight requests never count against the submission quota"""
    return request.method == 'OPTIONS'


def _submission_limit() -> str:
    return current_app.config['CONTACT_RATE_LIMIT']


def _submission_data() -> Dict[str, Any]:
    """Read the posted fields from a JSON or form-encoded body"""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


@contact_bp.route('/submit-contact', methods=['POST'])
@limiter.limit(_submission_limit, error_message=RATE_LIMIT_MESSAGE)
def submit_contact():
    """
    Process a contact form submission
    """
    try:
        data = _submission_data()

        result = validate_submission(data)
        if not result.is_valid:
            logger.info(f"Contact form validation failed for {request.remote_addr}: "
                        f"{[error.field for error in result.errors]}")
            return jsonify({
                'success': False,
                'message': VALIDATION_FAILED_MESSAGE,
                'errors': [error.to_dict() for error in result.errors]
            }), 400

        submission = result.submission

        verification = current_app.recaptcha_verifier.verify(
            data.get(RECAPTCHA_TOKEN),
            remote_ip=get_remote_address()
        )
        if not verification.success:
            logger.error(f"reCAPTCHA verification failed: {list(verification.error_codes)}")
            return jsonify({
                'success': False,
                'message': RECAPTCHA_FAILED_MESSAGE,
                'errors': [{'msg': 'reCAPTCHA verification failed'}]
            }), 400

        team_email, user_email = current_app.email_composer.compose(submission)
        current_app.email_dispatcher.dispatch(team_email, user_email)

        logger.info(f"Contact form submission from {submission.full_name} ({submission.email}) processed successfully")

        return jsonify({
            'success': True,
            'message': SUCCESS_MESSAGE
        })

    except DeliveryError as e:
        logger.error(f"Email delivery failed ({e.kind.value}): {e}", exc_info=True)
        return jsonify({
            'success': False,
            'message': SERVER_ERROR_MESSAGE
        }), 500
    except Exception as e:
        logger.error(f"Error processing contact form: {e}", exc_info=True)
        return jsonify({
            'success': False,
            'message': SERVER_ERROR_MESSAGE
        }), 500


@contact_bp.route('/recaptcha-site-key', methods=['GET'])
def recaptcha_site_key():
    """Public reCAPTCHA site key for rendering the widget"""
    return jsonify({'siteKey': current_app.contact_config.recaptcha_site_key})
