from .mcp import make_mcp_blueprint
from .metadata import make_metadata_blueprint
from .onboarding import make_onboarding_blueprint

__all__ = [
    "make_mcp_blueprint",
    "make_metadata_blueprint",
    "make_onboarding_blueprint",
]
