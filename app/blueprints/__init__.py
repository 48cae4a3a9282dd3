"""
Consultation Marketplace Platform
Blueprint registry.
"""

from app.blueprints.audit_bp import audit_bp
from app.blueprints.health_bp import health_bp
from app.blueprints.invitation_bp import invitation_bp
from app.blueprints.notification_bp import notification_bp
from app.blueprints.problem_bp import problem_bp
from app.blueprints.token_bp import token_bp

ALL_BLUEPRINTS = (
    problem_bp,
    invitation_bp,
    token_bp,
    notification_bp,
    audit_bp,
    health_bp,
)
