"""
Application routes package.

Contains all API endpoint blueprints of the local chat backend.
"""

from application.routes.conversations import conversations_bp
from application.routes.events import events_bp
from application.routes.generation import generation_bp
from application.routes.model_configs import model_configs_bp

__all__ = ["conversations_bp", "events_bp", "generation_bp", "model_configs_bp"]
