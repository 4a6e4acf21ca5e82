"""
Service status and uploaded file serving
"""
from flask import Blueprint, current_app, jsonify, send_from_directory

main_bp = Blueprint('main', __name__)


@main_bp.route('/')
def index():
    storage = current_app.storage
    return jsonify({
        'message': 'Hello World from AutoExamChecker API!',
        'database': {
            'connected': storage.health_check(),
            'mode': storage.mode
        }
    })


@main_bp.route('/health')
def health():
    """Health check endpoint"""
    return jsonify({'status': 'healthy'}), 200


@main_bp.route('/uploads/<path:filename>')
def uploaded_file(filename):
    return send_from_directory(current_app.uploads.folder, filename, mimetype='application/pdf')
