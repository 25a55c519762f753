"""
REST backend integration for the quote wizard and dashboards.
Handles auth headers, cached dashboard reads and lead submission.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import requests

from .assumptions import (
    DASHBOARD_TTL_MS,
    DEFAULT_ASSUMPTIONS,
    PROVIDER_ALIASES,
    PROVIDERS,
    get_category_label,
)
from .cache import TTLCache, get_default_cache
from .financial_calcs import FinancePayload, round_half_up
from .sizing import normalize_billing_cycle, parse_bill_amount

logger = logging.getLogger(__name__)

TOKEN_ENV_KEYS = ('AUTH_TOKEN', 'TOKEN', 'ACCESS_TOKEN', 'ADMIN_TOKEN')

REQUIRED_LEAD_FIELDS = (
    'projectType', 'sizedKW', 'monthlyBill', 'pincode', 'estimateINR',
    'fullName', 'phone', 'address', 'street', 'state', 'city', 'country', 'zip'
)


class BackendError(Exception):
    """A backend request failed or returned a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class SubmitResult:
    """Result from posting a lead to the backend."""
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    payload: Optional[Dict] = None


@dataclass
class AdminCollections:
    """Raw admin dashboard responses."""
    bookings: Any
    staff: Any
    complaints: Any
    amc: Any


def get_auth_token(env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Get the first bearer token configured in the environment."""
    env = os.environ if env is None else env
    for key in TOKEN_ENV_KEYS:
        value = env.get(key)
        if value:
            return value
    return None


def auth_headers(token: Optional[str] = None) -> Dict[str, str]:
    headers = {'Content-Type': 'application/json'}
    if token:
        headers['Authorization'] = f"Bearer {token}"
    return headers


def fetch_json(url: str, token: Optional[str] = None, timeout: float = 15) -> Any:
    """
    GET a JSON document from the backend.

    Args:
        url: Full endpoint URL
        token: Optional bearer token
        timeout: Request timeout in seconds

    Returns:
        Decoded JSON body

    Raises:
        BackendError: On network errors, non-2xx status or invalid JSON
    """
    try:
        response = requests.get(url, headers=auth_headers(token), timeout=timeout)
    except requests.exceptions.Timeout:
        raise BackendError("Request timed out. Please try again.")
    except requests.exceptions.RequestException as e:
        raise BackendError(f"Network error: {e}")

    if not response.ok:
        logger.warning("GET %s failed with %s", url, response.status_code)
        raise BackendError(
            response.text or f"Request failed with {response.status_code}",
            status_code=response.status_code
        )

    try:
        return response.json()
    except ValueError:
        raise BackendError("Invalid JSON in response", status_code=response.status_code)


async def fetch_json_async(url: str, token: Optional[str] = None) -> Any:
    return await asyncio.to_thread(fetch_json, url, token)


async def load_customer_bookings(
    base_url: str,
    cache: Optional[TTLCache] = None,
    token: Optional[str] = None,
    force: bool = False
) -> List[Dict]:
    """
    Load the signed-in customer's bookings through the cache.

    Args:
        base_url: Backend base URL
        cache: Cache to use, the process-wide one by default
        token: Optional bearer token
        force: Drop any cached copy first

    Returns:
        List of booking records ([] when the backend returns a non-list)
    """
    cache = get_default_cache() if cache is None else cache
    key = f"{base_url.rstrip('/')}/api/customer/leads"
    if force:
        cache.invalidate(key)

    async def fetcher():
        data = await fetch_json_async(key, token)
        return data if isinstance(data, list) else []

    return await cache.fetch(key, fetcher, ttl_ms=DASHBOARD_TTL_MS)


async def load_admin_collections(
    base_url: str,
    cache: Optional[TTLCache] = None,
    token: Optional[str] = None
) -> AdminCollections:
    """
    Load the admin dashboard sources concurrently through the cache.

    Bookings and staff failures propagate; complaints and AMC are optional
    and fall back to an empty object.
    """
    cache = get_default_cache() if cache is None else cache
    root = base_url.rstrip('/')

    def required(url):
        async def fetcher():
            return await fetch_json_async(url, token)
        return fetcher

    def optional(url):
        async def fetcher():
            try:
                return await fetch_json_async(url, token)
            except BackendError as e:
                logger.info("Optional dashboard source unavailable %s: %s", url, e)
                return {}
        return fetcher

    bookings, staff, complaints, amc = await asyncio.gather(
        cache.fetch(f"{root}/api/admin/leads", required(f"{root}/api/admin/leads"), DASHBOARD_TTL_MS),
        cache.fetch(f"{root}/api/admin/staff", required(f"{root}/api/admin/staff"), DASHBOARD_TTL_MS),
        cache.fetch(f"{root}/api/admin/complains", optional(f"{root}/api/admin/complains"), DASHBOARD_TTL_MS),
        cache.fetch(f"{root}/api/admin/amc", optional(f"{root}/api/admin/amc"), DASHBOARD_TTL_MS),
    )
    return AdminCollections(bookings=bookings, staff=staff, complaints=complaints, amc=amc)


def normalize_provider(raw: Optional[str]) -> Optional[str]:
    """Map a free-text electricity provider to the backend enum, or None."""
    if not isinstance(raw, str):
        return None
    compact = ' '.join(raw.strip().lower().split())
    mapped = PROVIDER_ALIASES.get(compact)
    return mapped if mapped in PROVIDERS else None


def build_lead_payload(
    contact: Mapping[str, Any],
    category: Optional[str],
    bill_amount,
    billing_cycle='1m',
    capacity_kw: Optional[float] = None,
    finance: Optional[FinancePayload] = None,
    budget: Optional[str] = None,
    watt_peak: Optional[int] = None,
    plates: Optional[int] = None,
    pincode: Optional[str] = None,
    provider: Optional[str] = None
) -> Dict[str, Any]:
    """
    Assemble the body for POST /api/leads/public.

    Args:
        contact: fullName, phone, email, address, street, zip, state, city, country
        category: Wizard category id
        bill_amount: Bill as entered
        billing_cycle: '1m' or '2m'
        capacity_kw: Capacity chosen in the wizard, else the finance capacity
        finance: Finance projection from the finance step
        budget: Budget tier
        watt_peak: Selected module wattage
        plates: Module count
        pincode: Installation pincode
        provider: Free-text electricity provider

    Returns:
        JSON-serializable payload
    """
    bill = parse_bill_amount(bill_amount)
    monthly_bill = round_half_up(bill / normalize_billing_cycle(billing_cycle))

    if capacity_kw and capacity_kw > 0:
        sized_kw = capacity_kw
    else:
        sized_kw = finance.capacity_kw if finance else 0

    if finance is not None:
        total_investment = finance.investment_used
    else:
        total_investment = round_half_up((sized_kw or 0) * DEFAULT_ASSUMPTIONS.rate_per_kw)

    payload = {
        'fullName': contact.get('fullName'),
        'phone': contact.get('phone'),
        'email': contact.get('email'),
        'address': contact.get('address'),
        'street': contact.get('street'),
        'zip': contact.get('zip'),
        'state': contact.get('state'),
        'city': contact.get('city'),
        'country': contact.get('country'),
        'projectType': get_category_label(category),
        'sizedKW': sized_kw,
        'monthlyBill': monthly_bill,
        'pincode': str(pincode or ''),
        'estimateINR': total_investment,
        'billingCycle': '2m' if normalize_billing_cycle(billing_cycle) == 2 else '1m',
        'budget': budget,
        'wp': watt_peak if isinstance(watt_peak, int) else None,
        'plates': plates if isinstance(plates, int) else None,
        'withSubsidy': True,
    }
    if finance is not None:
        payload.update(finance.to_dict())
    payload['totalInvestment'] = total_investment

    mapped = normalize_provider(provider)
    if mapped:
        payload['provider'] = mapped

    return payload


def missing_lead_fields(payload: Mapping[str, Any]) -> List[str]:
    """List required fields that are missing or blank."""
    missing = []
    for key in REQUIRED_LEAD_FIELDS:
        value = payload.get(key)
        if value is None or str(value).strip() == '':
            missing.append(key)
    return missing


def submit_lead(
    base_url: str,
    payload: Dict[str, Any],
    token: Optional[str] = None,
    timeout: float = 15
) -> SubmitResult:
    """
    Post a lead to the backend.

    Args:
        base_url: Backend base URL
        payload: Body from build_lead_payload
        token: Optional bearer token
        timeout: Request timeout in seconds

    Returns:
        SubmitResult; failures are reported, never raised
    """
    missing = missing_lead_fields(payload)
    if missing:
        return SubmitResult(
            success=False,
            error=f"Please fill: {', '.join(missing)}",
            payload=payload
        )

    url = f"{base_url.rstrip('/')}/api/leads/public"
    try:
        response = requests.post(url, json=payload, headers=auth_headers(token), timeout=timeout)
    except requests.exceptions.Timeout:
        return SubmitResult(success=False, error="Request timed out. Please try again.", payload=payload)
    except requests.exceptions.RequestException as e:
        logger.warning("Lead submission failed: %s", e)
        return SubmitResult(success=False, error="Network request failed", payload=payload)

    if not response.ok:
        logger.warning("Lead submission rejected with %s: %s", response.status_code, response.text)
        return SubmitResult(
            success=False,
            status_code=response.status_code,
            error=response.text or f"Submit failed ({response.status_code})",
            payload=payload
        )

    logger.info("Lead submitted for %s kW", payload.get('sizedKW'))
    return SubmitResult(success=True, status_code=response.status_code, payload=payload)
