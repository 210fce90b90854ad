"""PayPal service — Subscriptions REST API over requests.

Only two calls are needed: create a subscription (returns the approval
URL the user is sent to) and fetch one (used by the confirm endpoint once
the user comes back). Each call fetches a fresh client-credentials token.
"""

import logging

import requests
from flask import current_app

from backoffice.errors import NotConfiguredError, ProviderError

logger = logging.getLogger(__name__)

LIVE_API_URL = "https://api-m.paypal.com"
SANDBOX_API_URL = "https://api-m.sandbox.paypal.com"
REQUEST_TIMEOUT = 15


def is_configured():
    config = current_app.config
    return bool(
        config.get("PAYPAL_CLIENT_ID")
        and config.get("PAYPAL_CLIENT_SECRET")
        and config.get("PAYPAL_PLAN_ID")
    )


def _base_url():
    environment = (current_app.config.get("PAYPAL_ENVIRONMENT") or "sandbox").lower()
    return LIVE_API_URL if environment == "live" else SANDBOX_API_URL


def _require_configured():
    if not is_configured():
        raise NotConfiguredError("PayPal is not configured.")


def _access_token():
    config = current_app.config
    try:
        resp = requests.post(
            f"{_base_url()}/v1/oauth2/token",
            auth=(config["PAYPAL_CLIENT_ID"], config["PAYPAL_CLIENT_SECRET"]),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json", "Accept-Language": "en_US"},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"PayPal auth request failed: {e}")
        raise ProviderError("PayPal is unreachable.")

    data = _json_or_empty(resp)
    if resp.status_code >= 400:
        raise ProviderError(data.get("error_description") or "PayPal auth failed.")
    token = data.get("access_token")
    if not token:
        raise ProviderError("PayPal access token missing.")
    return token


def _json_or_empty(resp):
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _request(method, path, payload=None):
    token = _access_token()
    try:
        resp = requests.request(
            method,
            f"{_base_url()}{path}",
            json=payload,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {token}",
            },
            timeout=REQUEST_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"PayPal {method} {path} failed: {e}")
        raise ProviderError("PayPal is unreachable.")

    data = _json_or_empty(resp)
    if resp.status_code >= 400:
        logger.warning(f"PayPal {method} {path} returned {resp.status_code}")
        raise ProviderError(data.get("message") or "PayPal request failed.")
    return data


def _find_link(data, rel):
    for link in data.get("links") or []:
        if link.get("rel") == rel and link.get("href"):
            return link["href"]
    return None


def create_subscription(user_id):
    """Create a PayPal subscription for the configured plan.

    Returns {"id", "approve_url"}.
    """
    _require_configured()
    config = current_app.config

    data = _request("POST", "/v1/billing/subscriptions", {
        "plan_id": config["PAYPAL_PLAN_ID"],
        "custom_id": str(user_id),
        "application_context": {
            "brand_name": config.get("PAYPAL_BRAND_NAME") or "BackOffice Autopilot",
            "shipping_preference": "NO_SHIPPING",
            "user_action": "SUBSCRIBE_NOW",
            "return_url": config.get("PAYPAL_SUCCESS_URL"),
            "cancel_url": config.get("PAYPAL_CANCEL_URL"),
        },
    })

    approve_url = _find_link(data, "approve")
    if not approve_url or not data.get("id"):
        raise ProviderError("PayPal approval link is missing.")

    return {"id": str(data["id"]), "approve_url": approve_url}


def get_subscription(subscription_id):
    """Fetch a PayPal subscription as a dict."""
    _require_configured()
    return _request("GET", f"/v1/billing/subscriptions/{subscription_id}")
