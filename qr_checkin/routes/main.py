from flask import Blueprint, jsonify

main_bp = Blueprint('main', __name__)


@main_bp.route('/')
def index():
    """Service landing - the scanning UI is served separately."""
    return jsonify({
        'app': 'QR Check-in',
        'check_in': '/scan/check-in',
        'admin': '/admin/dashboard',
        'moderator': '/moderator/dashboard',
    })


@main_bp.route('/health')
def health():
    """Health check endpoint for Railway."""
    return {'status': 'healthy', 'app': 'QR Check-in'}
