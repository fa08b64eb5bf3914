"""Recurring app subscription gate."""

from __future__ import annotations

import logging
import os
from urllib.parse import urljoin

import httpx
from fastapi.responses import JSONResponse

from schedulr.shopify.models import GraphQLExecutor

logger = logging.getLogger(__name__)

REDIRECT_HEADER = "X-Shopify-App-Bridge-Redirect"
REDIRECT_URL_HEADER = "X-Shopify-App-Bridge-Redirect-Url"

CHECK_SUBSCRIPTION = """
query activeSubscriptions {
  currentAppInstallation {
    activeSubscriptions { id name status }
  }
}
"""

CREATE_SUBSCRIPTION = """
mutation createSubscription(
  $name: String!
  $trialDays: Int
  $amount: Decimal!
  $currencyCode: CurrencyCode!
  $interval: AppPricingInterval!
  $returnUrl: URL!
  $test: Boolean
) {
  appSubscriptionCreate(
    name: $name
    trialDays: $trialDays
    returnUrl: $returnUrl
    test: $test
    lineItems: [
      {
        plan: {
          appRecurringPricingDetails: {
            interval: $interval
            price: { amount: $amount, currencyCode: $currencyCode }
          }
        }
      }
    ]
  ) {
    appSubscription { id name }
    confirmationUrl
    userErrors { field message }
  }
}
"""


def billing_enabled() -> bool:
    return os.environ.get("BILLING_ENABLED", "true").lower() != "false"


def plan_name() -> str:
    return os.environ.get("BILLING_PLAN_NAME", "Schedulr Pro")


def plan_amount() -> float | None:
    try:
        return float(os.environ.get("BILLING_PRICE", "9.99"))
    except ValueError:
        return None


def return_url() -> str | None:
    base = os.environ.get("BILLING_RETURN_URL") or os.environ.get("SHOPIFY_APP_URL")
    return urljoin(base, "/entries") if base else None


def is_test_charge() -> bool:
    if "BILLING_TEST" in os.environ:
        return os.environ["BILLING_TEST"].lower() == "true"
    return os.environ.get("APP_ENV") != "production"


def billing_configured() -> bool:
    amount = plan_amount()
    return bool(billing_enabled() and amount and amount > 0 and plan_name() and return_url())


async def ensure_active_subscription(executor: GraphQLExecutor) -> str | None:
    """Return a confirmation URL when the shop still needs to subscribe."""
    if not billing_configured():
        if billing_enabled():
            logger.warning("Billing is enabled but configuration is incomplete; skipping enforcement")
        return None
    try:
        response = await executor.execute(CHECK_SUBSCRIPTION)
        if response.errors:
            logger.error("Subscription check failed: %s", ", ".join(response.error_messages))
            return None
        active = response.get("currentAppInstallation", "activeSubscriptions") or []
        if any(sub.get("name") == plan_name() and sub.get("status") == "ACTIVE" for sub in active):
            return None

        variables = {
            "name": plan_name(),
            "trialDays": int(os.environ.get("BILLING_TRIAL_DAYS", "7")),
            "amount": plan_amount(),
            "currencyCode": os.environ.get("BILLING_CURRENCY", "USD").upper(),
            "interval": os.environ.get("BILLING_INTERVAL", "EVERY_30_DAYS").upper(),
            "returnUrl": return_url(),
            "test": is_test_charge(),
        }
        response = await executor.execute(CREATE_SUBSCRIPTION, variables)
    except httpx.HTTPError as exc:
        logger.error("Billing request failed: %s", exc)
        return None
    user_errors = response.get("appSubscriptionCreate", "userErrors") or []
    if response.errors or user_errors:
        messages = response.error_messages + [str(e.get("message")) for e in user_errors]
        logger.error("Subscription creation failed: %s", ", ".join(messages))
        return None
    confirmation = response.get("appSubscriptionCreate", "confirmationUrl")
    logger.info("Subscription required; confirmation URL issued")
    return confirmation


def app_bridge_redirect(confirmation_url: str) -> JSONResponse:
    return JSONResponse(
        {"redirectUrl": confirmation_url},
        headers={
            REDIRECT_HEADER: "1",
            REDIRECT_URL_HEADER: confirmation_url,
            "Cache-Control": "no-store",
        },
    )
