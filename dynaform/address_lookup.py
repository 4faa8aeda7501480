"""
Postal code to address lookup for forms with an address section.

Talks to a zipcloud-compatible search API. Every failure (bad format, no
match, HTTP error, network error) comes back as a LookupResult carrying a
message for the postal code field; nothing is raised to the caller. There is
no retry policy: the user retries by looking up again.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://zipcloud.ibsnet.co.jp/api/search"
DEFAULT_TIMEOUT = 5.0

POSTAL_CODE_RE = re.compile(r"^\d{3}-?\d{4}$")

INVALID_FORMAT_MESSAGE = "Enter the postal code in 000-0000 format"
NOT_FOUND_MESSAGE = "No address was found for this postal code"
SERVICE_ERROR_MESSAGE = "The address could not be retrieved. Please try again."
TIMEOUT_MESSAGE = "The address lookup timed out. Please try again."
CONNECTION_MESSAGE = "The address service is unreachable. Please try again later."


def is_valid_postal_code(postal_code: Optional[str]) -> bool:
    """True for 7 digits, optionally with a hyphen after the third."""
    return bool(postal_code) and bool(POSTAL_CODE_RE.match(postal_code.strip()))


def normalize_postal_code(postal_code: str) -> str:
    """Insert the hyphen into a 7 digit postal code; other input is returned unchanged."""
    cleaned = postal_code.replace('-', '').strip()
    if len(cleaned) == 7:
        return f"{cleaned[:3]}-{cleaned[3:]}"
    return postal_code


@dataclass(frozen=True)
class AddressParts:
    """Structured address returned for a postal code."""
    prefecture: str
    city: str
    town: str

    def as_values(self) -> Dict[str, str]:
        return {'prefecture': self.prefecture, 'city': self.city, 'town': self.town}


@dataclass(frozen=True)
class LookupResult:
    """Outcome of one lookup: an address, or an error message for the field."""
    postal_code: str
    address: Optional[AddressParts] = None
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.address is not None


class AddressLookupClient:
    """Async client for a zipcloud-compatible postal code search API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'AddressLookupClient':
        """Build a client from the 'lookup' config section."""
        lookup = config.get('lookup') or {}
        return cls(
            base_url=lookup.get('base_url', DEFAULT_BASE_URL),
            timeout=float(lookup.get('timeout', DEFAULT_TIMEOUT)),
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def lookup(self, postal_code: str) -> LookupResult:
        """
        Look up the address for a postal code.

        Args:
            postal_code: Postal code with or without the hyphen

        Returns:
            LookupResult with either address or error set
        """
        postal_code = (postal_code or '').strip()
        if not is_valid_postal_code(postal_code):
            return LookupResult(postal_code, error=INVALID_FORMAT_MESSAGE)

        normalized = normalize_postal_code(postal_code)
        zipcode = normalized.replace('-', '')
        logger.info(f"Looking up address for postal code {normalized}")

        try:
            async with self._client() as client:
                response = await client.get(self.base_url, params={'zipcode': zipcode})
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException:
            logger.error(f"Timeout looking up postal code {normalized} (exceeded {self.timeout}s)")
            return LookupResult(normalized, error=TIMEOUT_MESSAGE)

        except httpx.HTTPStatusError as e:
            logger.error(f"Address service returned HTTP {e.response.status_code} for {normalized}")
            return LookupResult(normalized, error=SERVICE_ERROR_MESSAGE)

        except httpx.RequestError as e:
            logger.error(f"Network error looking up postal code {normalized}: {e}")
            return LookupResult(normalized, error=CONNECTION_MESSAGE)

        except ValueError as e:
            logger.error(f"Malformed response for postal code {normalized}: {e}")
            return LookupResult(normalized, error=SERVICE_ERROR_MESSAGE)

        return self._parse(normalized, data)

    @staticmethod
    def _parse(postal_code: str, data: Any) -> LookupResult:
        if not isinstance(data, dict):
            logger.error(f"Unexpected response shape for {postal_code}: {type(data).__name__}")
            return LookupResult(postal_code, error=SERVICE_ERROR_MESSAGE)

        results = data.get('results') or []
        if data.get('status') != 200 or not results:
            logger.info(f"No address found for postal code {postal_code}: {data.get('message')}")
            return LookupResult(postal_code, error=NOT_FOUND_MESSAGE)

        first = results[0] if isinstance(results[0], dict) else {}
        address = AddressParts(
            prefecture=first.get('address1', ''),
            city=first.get('address2', ''),
            town=first.get('address3', ''),
        )
        logger.info(f"Found address for {postal_code}: {address.prefecture} {address.city}")
        return LookupResult(postal_code, address=address)

    def lookup_sync(self, postal_code: str) -> LookupResult:
        """Run lookup() to completion from synchronous code."""
        return asyncio.run(self.lookup(postal_code))
