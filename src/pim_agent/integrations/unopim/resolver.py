#!/usr/bin/env python3
"""
Attribute scope resolution for UnoPim product values.

UnoPim stores every attribute value in exactly one of four scopes, chosen by
the attribute's value_per_locale / value_per_channel flags:

    common                   neither flag
    locale_specific          value_per_locale only
    channel_specific         value_per_channel only
    channel_locale_specific  both flags

This module fetches a family's attribute metadata, routes a flat
{attribute_code: value} map into the nested structure the products API
expects, and checks the result against the family's required attributes.
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pim_agent.core.errors import PimApiError
from pim_agent.integrations.unopim.client import UnoPimClient

logger = logging.getLogger(__name__)

# Keys that travel alongside the scoped bags instead of inside them
PASSTHROUGH_KEYS = ("categories", "associations")

# The identifier attribute always lives in common
SKU_CODE = "sku"

NUMERIC_VALIDATIONS = ("decimal", "number")


class AttributeScope(str, Enum):
    """Storage scope of an attribute value; the value is the payload key."""
    COMMON = "common"
    LOCALE = "locale_specific"
    CHANNEL = "channel_specific"
    CHANNEL_LOCALE = "channel_locale_specific"


def scope_for(value_per_locale: bool, value_per_channel: bool) -> AttributeScope:
    """Classify an attribute by its two scope flags."""
    if value_per_locale and value_per_channel:
        return AttributeScope.CHANNEL_LOCALE
    if value_per_locale:
        return AttributeScope.LOCALE
    if value_per_channel:
        return AttributeScope.CHANNEL
    return AttributeScope.COMMON


def scope_path(scope: AttributeScope, code: str, locale: str, channel: str) -> str:
    """Dotted payload path at which an attribute value is stored."""
    if scope == AttributeScope.COMMON:
        return f"common.{code}"
    if scope == AttributeScope.LOCALE:
        return f"locale_specific.{locale}.{code}"
    if scope == AttributeScope.CHANNEL:
        return f"channel_specific.{channel}.{code}"
    return f"channel_locale_specific.{channel}.{locale}.{code}"


def _as_bool(value: Any) -> bool:
    # The API reports flags as 0/1, booleans, or "0"/"1"
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


# =============================================================================
# Schema Types
# =============================================================================

@dataclass(frozen=True)
class AttributeMetadata:
    """Schema snapshot of one attribute."""
    code: str
    type: str
    is_required: bool = False
    value_per_locale: bool = False
    value_per_channel: bool = False
    validation: Optional[str] = None

    @property
    def scope(self) -> AttributeScope:
        return scope_for(self.value_per_locale, self.value_per_channel)

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "AttributeMetadata":
        return cls(
            code=data["code"],
            type=str(data.get("type") or "text"),
            is_required=_as_bool(data.get("is_required")),
            value_per_locale=_as_bool(data.get("value_per_locale")),
            value_per_channel=_as_bool(data.get("value_per_channel")),
            validation=data.get("validation") or None,
        )


@dataclass(frozen=True)
class FamilyAttributeInfo:
    """
    All attribute metadata for one family, partitioned by scope.

    unresolved_codes lists family attributes whose metadata could not be
    fetched; they are absent from every partition.
    """
    family_code: str
    attributes: Tuple[AttributeMetadata, ...]
    unresolved_codes: Tuple[str, ...] = ()

    def get(self, code: str) -> Optional[AttributeMetadata]:
        for attribute in self.attributes:
            if attribute.code == code:
                return attribute
        return None

    def in_scope(self, scope: AttributeScope) -> List[AttributeMetadata]:
        return [a for a in self.attributes if a.scope == scope]

    @property
    def required_attributes(self) -> List[AttributeMetadata]:
        return [a for a in self.attributes if a.is_required]

    @property
    def common_attributes(self) -> List[AttributeMetadata]:
        return self.in_scope(AttributeScope.COMMON)

    @property
    def locale_attributes(self) -> List[AttributeMetadata]:
        return self.in_scope(AttributeScope.LOCALE)

    @property
    def channel_attributes(self) -> List[AttributeMetadata]:
        return self.in_scope(AttributeScope.CHANNEL)

    @property
    def channel_locale_attributes(self) -> List[AttributeMetadata]:
        return self.in_scope(AttributeScope.CHANNEL_LOCALE)

    @property
    def is_partial(self) -> bool:
        return bool(self.unresolved_codes)

    def summary(self) -> Dict[str, Any]:
        """Attribute codes per scope, for tool responses."""
        return {
            "required_attributes": [a.code for a in self.required_attributes],
            "common_attributes": [a.code for a in self.common_attributes],
            "locale_attributes": [a.code for a in self.locale_attributes],
            "channel_attributes": [a.code for a in self.channel_attributes],
            "channel_locale_attributes": [a.code for a in self.channel_locale_attributes],
            "unresolved_attributes": list(self.unresolved_codes),
        }


# =============================================================================
# Value Types
# =============================================================================

@dataclass(frozen=True)
class ScopedValueTree:
    """
    Product values nested by storage scope.

    Built by structure_values(); treat it as a result value. to_payload()
    returns a fresh copy for the products API.
    """
    common: Dict[str, Any] = field(default_factory=dict)
    locale_specific: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    channel_specific: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    channel_locale_specific: Dict[str, Dict[str, Dict[str, Any]]] = field(default_factory=dict)
    categories: Optional[List[str]] = None
    associations: Optional[Dict[str, Any]] = None

    @classmethod
    def from_payload(cls, values: Mapping[str, Any]) -> "ScopedValueTree":
        """Wrap an already nested values object (e.g. from an update request)."""
        return cls(
            common=copy.deepcopy(dict(values.get("common") or {})),
            locale_specific=copy.deepcopy(dict(values.get("locale_specific") or {})),
            channel_specific=copy.deepcopy(dict(values.get("channel_specific") or {})),
            channel_locale_specific=copy.deepcopy(dict(values.get("channel_locale_specific") or {})),
            categories=copy.deepcopy(values.get("categories")),
            associations=copy.deepcopy(values.get("associations")),
        )

    def lookup(self, scope: AttributeScope, code: str, locale: str, channel: str) -> Any:
        """Value stored for an attribute in a scope, or None."""
        if scope == AttributeScope.COMMON:
            return self.common.get(code)
        if scope == AttributeScope.LOCALE:
            return (self.locale_specific.get(locale) or {}).get(code)
        if scope == AttributeScope.CHANNEL:
            return (self.channel_specific.get(channel) or {}).get(code)
        return ((self.channel_locale_specific.get(channel) or {}).get(locale) or {}).get(code)

    def to_payload(self) -> Dict[str, Any]:
        """
        Values object for the products API.

        Empty scope bags are omitted; common is always present.
        """
        payload: Dict[str, Any] = {"common": copy.deepcopy(self.common)}
        if any(self.locale_specific.values()):
            payload["locale_specific"] = copy.deepcopy(self.locale_specific)
        if any(self.channel_specific.values()):
            payload["channel_specific"] = copy.deepcopy(self.channel_specific)
        if any(any(bags.values()) for bags in self.channel_locale_specific.values()):
            payload["channel_locale_specific"] = copy.deepcopy(self.channel_locale_specific)
        if self.categories:
            payload["categories"] = list(self.categories)
        if self.associations:
            payload["associations"] = copy.deepcopy(self.associations)
        return payload

    def flatten(self) -> Dict[str, Any]:
        """Collapse the tree back into a flat {code: value} map."""
        flat: Dict[str, Any] = dict(self.common)
        for bag in self.locale_specific.values():
            flat.update(bag)
        for bag in self.channel_specific.values():
            flat.update(bag)
        for locales in self.channel_locale_specific.values():
            for bag in locales.values():
                flat.update(bag)
        if self.categories is not None:
            flat["categories"] = list(self.categories)
        if self.associations is not None:
            flat["associations"] = copy.deepcopy(self.associations)
        return flat


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation error or warning, located by payload path."""
    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of checking scoped values against a family."""
    errors: Tuple[ValidationIssue, ...] = ()
    warnings: Tuple[ValidationIssue, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors

    def with_errors(self, extra: List[ValidationIssue]) -> "ValidationResult":
        return ValidationResult(errors=self.errors + tuple(extra), warnings=self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


# =============================================================================
# Schema Lookup
# =============================================================================

def _unwrap(response: Dict[str, Any]) -> Dict[str, Any]:
    # Single-resource responses may or may not be wrapped in "data"
    data = response.get("data")
    return data if isinstance(data, dict) else response


async def get_family_attribute_info(client: UnoPimClient, family_code: str) -> FamilyAttributeInfo:
    """
    Fetch all attribute metadata for a family.

    The family lookup must succeed; its errors propagate unchanged. Each
    attribute is then fetched on its own, and attributes that fail to
    resolve are recorded in unresolved_codes instead of failing the call.

    Args:
        client: UnoPimClient
        family_code: Family code

    Returns:
        FamilyAttributeInfo partitioned by scope
    """
    family = _unwrap(await client.get(f"families/{family_code}"))

    attribute_codes: List[str] = []
    for group in family.get("attribute_groups") or []:
        for assignment in group.get("custom_attributes") or []:
            code = assignment.get("code")
            if code and code not in attribute_codes:
                attribute_codes.append(code)

    attributes: List[AttributeMetadata] = []
    unresolved: List[str] = []

    for code in attribute_codes:
        try:
            data = _unwrap(await client.get(f"attributes/{code}"))
            attributes.append(AttributeMetadata.from_api({"code": code, **data}))
        except PimApiError as e:
            logger.warning(f"Skipping attribute '{code}' of family '{family_code}': {e.code.value} {e.message}")
            unresolved.append(code)

    logger.info(
        f"Family '{family_code}': {len(attributes)} attributes resolved, {len(unresolved)} unresolved"
    )
    return FamilyAttributeInfo(
        family_code=family_code,
        attributes=tuple(attributes),
        unresolved_codes=tuple(unresolved),
    )


# =============================================================================
# Structuring and Validation
# =============================================================================

def structure_values(
    flat_values: Mapping[str, Any],
    family_info: FamilyAttributeInfo,
    locale: str,
    channel: str,
) -> ScopedValueTree:
    """
    Route a flat {attribute_code: value} map into scoped bags.

    - categories / associations pass through unscoped
    - attributes unknown to the family go to common; the backend decides
    - sku always goes to common

    Args:
        flat_values: Flat attribute values
        family_info: Family metadata from get_family_attribute_info()
        locale: Locale key for locale scoped values
        channel: Channel key for channel scoped values

    Returns:
        A new ScopedValueTree
    """
    common: Dict[str, Any] = {}
    locale_bag: Dict[str, Any] = {}
    channel_bag: Dict[str, Any] = {}
    channel_locale_bag: Dict[str, Any] = {}

    for code, value in flat_values.items():
        if code in PASSTHROUGH_KEYS:
            continue

        attribute = family_info.get(code)
        if code == SKU_CODE or attribute is None:
            common[code] = copy.deepcopy(value)
            continue

        scope = attribute.scope
        if scope == AttributeScope.COMMON:
            common[code] = copy.deepcopy(value)
        elif scope == AttributeScope.LOCALE:
            locale_bag[code] = copy.deepcopy(value)
        elif scope == AttributeScope.CHANNEL:
            channel_bag[code] = copy.deepcopy(value)
        else:
            channel_locale_bag[code] = copy.deepcopy(value)

    categories = flat_values.get("categories")
    associations = flat_values.get("associations")

    return ScopedValueTree(
        common=common,
        locale_specific={locale: locale_bag} if locale_bag else {},
        channel_specific={channel: channel_bag} if channel_bag else {},
        channel_locale_specific={channel: {locale: channel_locale_bag}} if channel_locale_bag else {},
        categories=list(categories) if categories is not None else None,
        associations=copy.deepcopy(associations) if associations is not None else None,
    )


def _is_present(value: Any) -> bool:
    return value is not None and value != ""


def validate_values(
    tree: ScopedValueTree,
    family_info: FamilyAttributeInfo,
    locale: str,
    channel: str,
) -> ValidationResult:
    """
    Check scoped values against the family's required attributes.

    Each missing required attribute yields exactly one error naming the path
    where it was expected. Values sitting in common for an attribute with a
    narrower scope yield a warning; the backend rejects them authoritatively.

    Args:
        tree: Scoped values
        family_info: Family metadata
        locale: Locale the values are for
        channel: Channel the values are for

    Returns:
        ValidationResult
    """
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    for attribute in family_info.required_attributes:
        scope = AttributeScope.COMMON if attribute.code == SKU_CODE else attribute.scope
        if _is_present(tree.lookup(scope, attribute.code, locale, channel)):
            continue
        errors.append(ValidationIssue(
            field=scope_path(scope, attribute.code, locale, channel),
            message=_missing_message(attribute.code, scope, locale, channel),
        ))

    for code in tree.common:
        if code == SKU_CODE:
            continue
        attribute = family_info.get(code)
        if attribute is not None and attribute.scope != AttributeScope.COMMON:
            warnings.append(ValidationIssue(
                field=f"common.{code}",
                message=(
                    f"Attribute '{code}' should not be in 'common' - "
                    f"it belongs in '{attribute.scope.value}'"
                ),
            ))

    return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))


def _missing_message(code: str, scope: AttributeScope, locale: str, channel: str) -> str:
    if scope == AttributeScope.COMMON:
        return f"Required attribute '{code}' is missing from common values"
    if scope == AttributeScope.LOCALE:
        return f"Required attribute '{code}' is missing for locale '{locale}'"
    if scope == AttributeScope.CHANNEL:
        return f"Required attribute '{code}' is missing for channel '{channel}'"
    return f"Required attribute '{code}' is missing for channel '{channel}' and locale '{locale}'"


# =============================================================================
# Value Type Checks
# =============================================================================

def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value)
            return True
        except ValueError:
            return False
    return False


def _type_problem(attribute: AttributeMetadata, value: Any) -> Optional[str]:
    """Describe why a value does not fit an attribute's type, or None."""
    attr_type = attribute.type

    if attr_type == "boolean":
        if isinstance(value, bool) or value in (0, 1):
            return None
        if isinstance(value, str) and value.strip().lower() in ("true", "false", "0", "1"):
            return None
        return "expected a boolean"

    if attr_type == "multiselect":
        if isinstance(value, str):
            return None
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return None
        return "expected a list of option codes or a comma separated string"

    if attr_type == "price":
        if _is_number(value):
            return None
        if isinstance(value, dict) and value and all(
            isinstance(k, str) and _is_number(v) for k, v in value.items()
        ):
            return None
        return "expected an amount or a {currency: amount} mapping"

    if attr_type in ("text", "textarea", "select", "image", "file", "gallery"):
        if attribute.validation in NUMERIC_VALIDATIONS:
            if _is_number(value):
                return None
            return f"expected a number ({attribute.validation} validation)"
        if isinstance(value, str):
            return None
        if attr_type == "gallery" and isinstance(value, list):
            return None
        return "expected a string"

    # Types this module does not know are left to the backend
    return None


def normalize_prices(
    flat_values: Mapping[str, Any],
    family_info: FamilyAttributeInfo,
    currency: str,
) -> Dict[str, Any]:
    """
    Copy flat values, turning bare price amounts into {currency: amount}.

    UnoPim stores prices per currency; 89.5 becomes {"USD": "89.5"} for
    currency "USD". Mappings and non-numeric values are left for
    check_value_types() to judge.
    """
    normalized = dict(flat_values)
    for code, value in flat_values.items():
        attribute = family_info.get(code)
        if attribute is None or attribute.type != "price":
            continue
        if _is_number(value):
            normalized[code] = {currency: str(value)}
    return normalized


def check_value_types(
    flat_values: Mapping[str, Any],
    family_info: FamilyAttributeInfo,
) -> List[ValidationIssue]:
    """
    Check flat values against their attribute types.

    Unknown attributes, pass-through keys and None values are not checked.

    Returns:
        One ValidationIssue per mismatching value
    """
    issues: List[ValidationIssue] = []
    for code, value in flat_values.items():
        if code in PASSTHROUGH_KEYS or value is None:
            continue
        attribute = family_info.get(code)
        if attribute is None:
            continue
        problem = _type_problem(attribute, value)
        if problem:
            issues.append(ValidationIssue(
                field=code,
                message=f"Attribute '{code}' has type '{attribute.type}': {problem}, got {type(value).__name__}",
            ))
    return issues


# =============================================================================
# Family Description
# =============================================================================

def describe_family(family_info: FamilyAttributeInfo, locale: str, channel: str) -> Dict[str, Any]:
    """
    Describe a family's attributes and an example values structure.

    Returns:
        Dictionary with required/optional attributes, codes per scope and an
        example values object with placeholders such as "<text, REQUIRED>"
    """
    def entry(a: AttributeMetadata) -> Dict[str, str]:
        return {"code": a.code, "type": a.type, "scope": a.scope.value}

    def placeholder(a: AttributeMetadata) -> str:
        return f"<{a.type}{', REQUIRED' if a.is_required else ''}>"

    example: Dict[str, Any] = {
        "common": {a.code: placeholder(a) for a in family_info.common_attributes},
    }
    if family_info.locale_attributes:
        example["locale_specific"] = {
            locale: {a.code: placeholder(a) for a in family_info.locale_attributes},
        }
    if family_info.channel_attributes:
        example["channel_specific"] = {
            channel: {a.code: placeholder(a) for a in family_info.channel_attributes},
        }
    if family_info.channel_locale_attributes:
        example["channel_locale_specific"] = {
            channel: {locale: {a.code: placeholder(a) for a in family_info.channel_locale_attributes}},
        }

    return {
        "family": family_info.family_code,
        "total_attributes": len(family_info.attributes),
        "required_attributes": [entry(a) for a in family_info.required_attributes],
        "optional_attributes": [entry(a) for a in family_info.attributes if not a.is_required],
        "attribute_scopes": {
            scope.value: [a.code for a in family_info.in_scope(scope)]
            for scope in AttributeScope
        },
        "example_values_structure": example,
        "unresolved_attributes": list(family_info.unresolved_codes),
    }
