"""UnoPim integration: authentication, requests, scope resolution and agent tools."""

from pim_agent.integrations.unopim.auth import Credentials, TokenManager, TokenState
from pim_agent.integrations.unopim.client import UnoPimClient, create_unopim_client
from pim_agent.integrations.unopim.resolver import (
    AttributeScope,
    FamilyAttributeInfo,
    ScopedValueTree,
    ValidationResult,
    get_family_attribute_info,
    structure_values,
    validate_values,
)
from pim_agent.integrations.unopim.products import ProductService
from pim_agent.integrations.unopim.agent import CatalogAgent

__all__ = [
    "Credentials",
    "TokenManager",
    "TokenState",
    "UnoPimClient",
    "create_unopim_client",
    "AttributeScope",
    "FamilyAttributeInfo",
    "ScopedValueTree",
    "ValidationResult",
    "get_family_attribute_info",
    "structure_values",
    "validate_values",
    "ProductService",
    "CatalogAgent",
]
