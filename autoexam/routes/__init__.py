"""
API blueprints
"""
from .main_routes import main_bp
from .auth_routes import auth_bp
from .test_routes import test_bp
from .admin_routes import admin_bp
from .payment_routes import payment_bp

__all__ = ['main_bp', 'auth_bp', 'test_bp', 'admin_bp', 'payment_bp']
