"""
pim_agent - Schema-aware UnoPim catalog agent

Token lifecycle, resilient request execution and attribute scope
resolution for the UnoPim REST API, plus a Claude agent that drives it.
"""

__version__ = "1.0.0"

from pim_agent.core.config import validate_config, get_config_summary, load_settings
from pim_agent.core.errors import ErrorCode, PimApiError
from pim_agent.integrations.unopim.client import UnoPimClient, create_unopim_client
from pim_agent.integrations.unopim.products import ProductService

__all__ = [
    "validate_config",
    "get_config_summary",
    "load_settings",
    "ErrorCode",
    "PimApiError",
    "UnoPimClient",
    "create_unopim_client",
    "ProductService",
]
