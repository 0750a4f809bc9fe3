#!/usr/bin/env python3
"""
Product operations built on the scope resolver.

Smart product creation fetches the family schema, structures flat values
into their scopes, validates them, and only then calls the products API.
Media uploads send files to product or category fields.
"""

import base64
import binascii
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlparse

import httpx

from pim_agent.core.errors import ErrorCode, PimApiError
from pim_agent.integrations.unopim.client import UnoPimClient
from pim_agent.integrations.unopim.resolver import (
    SKU_CODE,
    ScopedValueTree,
    ValidationIssue,
    ValidationResult,
    check_value_types,
    describe_family,
    get_family_attribute_info,
    normalize_prices,
    structure_values,
    validate_values,
)

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_FILENAME = "uploaded-file.jpg"


def parse_field_errors(error: PimApiError) -> List[ValidationIssue]:
    """
    Extract per-field messages from a backend validation error body.

    UnoPim answers 422 with {"message": ..., "errors": {field: [messages]}}.
    """
    details = error.details
    if not isinstance(details, dict) or not isinstance(details.get("errors"), dict):
        return []

    issues: List[ValidationIssue] = []
    for field_name, messages in details["errors"].items():
        if not isinstance(messages, list):
            messages = [messages]
        for message in messages:
            issues.append(ValidationIssue(field=str(field_name), message=str(message)))
    return issues


class ProductService:
    """Product creation and media upload for one UnoPim tenant."""

    def __init__(
        self,
        client: UnoPimClient,
        default_locale: str = "en_US",
        default_channel: str = "default",
        default_currency: str = "USD",
        download_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the service.

        Args:
            client: UnoPimClient for the tenant
            default_locale: Locale used when a call does not name one
            default_channel: Channel used when a call does not name one
            default_currency: Currency key for price values given as a bare amount
            download_client: httpx client for fetching media by URL (created if not provided)
        """
        self.client = client
        self.default_locale = default_locale
        self.default_channel = default_channel
        self.default_currency = default_currency
        self._download_client = download_client

    # =========================================================================
    # Family Schema
    # =========================================================================

    async def get_family_schema(
        self,
        family: str,
        locale: Optional[str] = None,
        channel: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Describe a family's attributes, scopes and example values structure."""
        family_info = await get_family_attribute_info(self.client, family)
        return describe_family(
            family_info,
            locale or self.default_locale,
            channel or self.default_channel,
        )

    # =========================================================================
    # Smart Product Creation
    # =========================================================================

    async def smart_create_product(
        self,
        sku: str,
        family: str,
        values: Mapping[str, Any],
        locale: Optional[str] = None,
        channel: Optional[str] = None,
        categories: Optional[List[str]] = None,
        validate_only: bool = False,
    ) -> Dict[str, Any]:
        """
        Create a simple product from flat attribute values.

        1. Fetch the family schema
        2. Structure values into their scopes (sku always in common)
        3. Validate required attributes and value types
        4. Create the product unless validation failed or validate_only is set

        Args:
            sku: Product SKU
            family: Family code
            values: Flat {attribute_code: value} map
            locale: Locale for locale scoped values
            channel: Channel for channel scoped values
            categories: Category codes
            validate_only: Validate and return the structured values without creating

        Returns:
            Dictionary with success, validation, family_info, structured_values
            and, when created, product

        Raises:
            PimApiError: If the schema lookup fails
        """
        locale = locale or self.default_locale
        channel = channel or self.default_channel

        family_info = await get_family_attribute_info(self.client, family)

        flat_values: Dict[str, Any] = normalize_prices(values, family_info, self.default_currency)
        # The sku argument wins over any sku inside values
        flat_values[SKU_CODE] = sku
        if categories is not None:
            flat_values["categories"] = list(categories)

        tree = structure_values(flat_values, family_info, locale, channel)
        validation = validate_values(tree, family_info, locale, channel)
        validation = validation.with_errors(check_value_types(flat_values, family_info))

        structured_values = tree.to_payload()
        result: Dict[str, Any] = {
            "success": validation.valid,
            "validation": validation.to_dict(),
            "family_info": family_info.summary(),
            "structured_values": structured_values,
        }

        if validate_only:
            return result

        if not validation.valid:
            logger.info(f"Product {sku} failed validation with {len(validation.errors)} error(s)")
            result["errors"] = [e.to_dict() for e in validation.errors]
            return result

        product_data = {
            "parent": None,
            "family": family,
            "type": "simple",
            "additional": None,
            "values": structured_values,
        }

        try:
            response = await self.client.post("products", product_data)
        except PimApiError as e:
            field_errors = parse_field_errors(e)
            if e.code != ErrorCode.VALIDATION_ERROR or not field_errors:
                raise
            logger.info(f"Backend rejected product {sku}: {len(field_errors)} field error(s)")
            rejected = ValidationResult(errors=tuple(field_errors), warnings=validation.warnings)
            result["success"] = False
            result["validation"] = rejected.to_dict()
            result["errors"] = [issue.to_dict() for issue in field_errors]
            return result

        logger.info(f"Created product {sku} in family {family}")
        result["product"] = response.get("data") or {"sku": sku}
        return result

    async def validate_scoped_values(
        self,
        family: str,
        values: Mapping[str, Any],
        locale: Optional[str] = None,
        channel: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Validate an already nested values object (common, locale_specific, ...)
        against a family without writing anything.
        """
        locale = locale or self.default_locale
        channel = channel or self.default_channel

        family_info = await get_family_attribute_info(self.client, family)
        tree = ScopedValueTree.from_payload(values)
        validation = validate_values(tree, family_info, locale, channel)
        validation = validation.with_errors(check_value_types(tree.flatten(), family_info))
        return {
            "success": validation.valid,
            "validation": validation.to_dict(),
            "family_info": family_info.summary(),
        }

    # =========================================================================
    # Media Upload
    # =========================================================================

    async def upload_product_media(
        self,
        sku: str,
        attribute: str,
        file_url: Optional[str] = None,
        file_base64: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Upload a file to a product's image/file attribute.

        Args:
            sku: Product SKU
            attribute: Attribute code of the media field
            file_url: URL to download the file from
            file_base64: Base64 encoded file content (used when no URL is given)
            filename: File name sent to UnoPim

        Returns:
            Dictionary with success, message and filePath when uploaded
        """
        return await self._upload_media(
            "media-files/product",
            {"sku": sku, "attribute": attribute},
            file_url,
            file_base64,
            filename,
            "Product file uploaded successfully.",
        )

    async def upload_category_media(
        self,
        code: str,
        category_field: str,
        file_url: Optional[str] = None,
        file_base64: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Upload a file to a category field. Arguments mirror upload_product_media()."""
        return await self._upload_media(
            "media-files/category",
            {"code": code, "category_field": category_field},
            file_url,
            file_base64,
            filename,
            "Category file uploaded successfully.",
        )

    async def _upload_media(
        self,
        path: str,
        form_fields: Dict[str, str],
        file_url: Optional[str],
        file_base64: Optional[str],
        filename: Optional[str],
        success_message: str,
    ) -> Dict[str, Any]:
        if file_url:
            try:
                content, filename = await self._download(file_url, filename)
            except httpx.HTTPStatusError as e:
                return {
                    "success": False,
                    "message": "Failed to fetch file from URL",
                    "error": f"HTTP {e.response.status_code}",
                }
            except httpx.HTTPError as e:
                return {
                    "success": False,
                    "message": "Failed to fetch file from URL",
                    "error": str(e),
                }
        elif file_base64:
            try:
                content = base64.b64decode(file_base64, validate=True)
            except (binascii.Error, ValueError) as e:
                return {"success": False, "message": "file_base64 is not valid base64", "error": str(e)}
            filename = filename or DEFAULT_UPLOAD_FILENAME
        else:
            return {"success": False, "message": "Either file_url or file_base64 must be provided"}

        logger.info(f"Uploading {filename} ({len(content)} bytes) to {path}")
        result = await self.client.execute_multipart(
            path,
            files={"file": (filename, content)},
            data=form_fields,
        )

        data = result.get("data") if isinstance(result.get("data"), dict) else {}
        if result.get("success", True) is False:
            return {
                "success": False,
                "message": result.get("message") or "Upload failed",
                "error": result.get("errors") or result,
            }
        return {
            "success": True,
            "message": result.get("message") or success_message,
            "filePath": data.get("filePath") or result.get("filePath"),
        }

    async def _download(self, file_url: str, filename: Optional[str]) -> Tuple[bytes, str]:
        """Fetch a file by URL."""
        logger.debug(f"Downloading media from {file_url}")
        if self._download_client is not None:
            response = await self._download_client.get(file_url, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=self.client.timeout) as http:
                response = await http.get(file_url, follow_redirects=True)
        response.raise_for_status()

        if not filename:
            content_disposition = response.headers.get("content-disposition", "")
            if "filename=" in content_disposition:
                filename = content_disposition.split("filename=")[1].strip('"; ')
            else:
                filename = urlparse(file_url).path.rsplit("/", 1)[-1] or "uploaded-file"
        return response.content, filename
