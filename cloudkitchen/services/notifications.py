"""Admin SMS / WhatsApp alert for new orders.

Twilio is spoken to over its plain REST API with httpx. With no credentials configured
the dispatcher runs in demo mode and only logs the message.
"""
import asyncio
import logging

import httpx
from pydantic import BaseModel, ConfigDict

from cloudkitchen.config import Settings, settings as default_settings
from cloudkitchen.util.clock import now_utc, to_local

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class ProviderCredentials(BaseModel):
    model_config = ConfigDict(frozen=True)
    account_sid: str
    auth_token: str
    from_number: str


class NotificationConfig(BaseModel):
    """Resolved once at startup and handed to the dispatcher."""
    model_config = ConfigDict(frozen=True)
    admin_phone: str
    sms_provider: ProviderCredentials | None = None
    whatsapp_provider: ProviderCredentials | None = None
    timeout: float = 3.0

    @classmethod
    def from_settings(cls, s: Settings = default_settings) -> "NotificationConfig":
        def creds(number: str | None) -> ProviderCredentials | None:
            if not (s.TWILIO_ACCOUNT_SID and s.TWILIO_AUTH_TOKEN and number):
                return None
            return ProviderCredentials(account_sid=s.TWILIO_ACCOUNT_SID, auth_token=s.TWILIO_AUTH_TOKEN, from_number=number)

        return cls(
            admin_phone=s.ADMIN_PHONE,
            sms_provider=creds(s.TWILIO_PHONE_NUMBER),
            whatsapp_provider=creds(s.TWILIO_WHATSAPP_NUMBER),
            timeout=s.EXTERNAL_TIMEOUT_S,
        )


def format_order_message(order: dict, payment: dict | None) -> str:
    addr = order.get("delivery_address") or {}
    address = addr.get("full_address") or (
        f"{addr.get('address_line1') or ''}, {addr.get('city') or ''}, "
        f"{addr.get('state') or ''} - {addr.get('pincode') or ''}"
    )
    items = "\n".join(f"- {i['name']} x {i['quantity']}" for i in order.get("items", []))
    paid = payment is not None and payment.get("status") == "Success"
    when = to_local(now_utc()).strftime("%d %b %Y %H:%M")
    return "\n".join([
        "NEW ORDER RECEIVED",
        "",
        f"Customer: {order.get('customer_name') or 'N/A'}",
        f"Phone: {order.get('customer_phone') or addr.get('phone') or 'N/A'}",
        f"Address: {address}",
        "",
        "Order Items:",
        items,
        "",
        f"Amount: {float(order.get('total_amount') or 0):.2f}",
        f"Payment: {'PAID' if paid else 'PENDING'} ({order.get('payment_method') or 'N/A'})",
        "",
        f"Order ID: {order.get('order_number') or order.get('id')}",
        f"Time: {when}",
    ])


async def _send_twilio(creds: ProviderCredentials, to: str, body: str, timeout: float,
                       transport: httpx.AsyncBaseTransport | None = None) -> dict:
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        r = await client.post(
            TWILIO_MESSAGES_URL.format(sid=creds.account_sid),
            data={"To": to, "From": creds.from_number, "Body": body},
            auth=(creds.account_sid, creds.auth_token),
        )
        r.raise_for_status()
        return {"success": True, "sid": r.json().get("sid")}


async def send_sms(config: NotificationConfig, message: str,
                   transport: httpx.AsyncBaseTransport | None = None) -> dict:
    if not config.sms_provider:
        logger.info("SMS (demo mode): %s", message[:100])
        return {"success": True, "demo": True}
    try:
        return await _send_twilio(config.sms_provider, config.admin_phone, message, config.timeout, transport)
    except httpx.HTTPError as exc:
        logger.warning("SMS to %s failed: %s", config.admin_phone, exc)
        return {"success": False, "error": str(exc)}


async def send_whatsapp(config: NotificationConfig, message: str,
                        transport: httpx.AsyncBaseTransport | None = None) -> dict:
    creds = config.whatsapp_provider
    if not creds:
        logger.info("WhatsApp (demo mode): %s", message[:100])
        return {"success": True, "demo": True}
    wa = ProviderCredentials(
        account_sid=creds.account_sid, auth_token=creds.auth_token, from_number=f"whatsapp:{creds.from_number}",
    )
    try:
        return await _send_twilio(wa, f"whatsapp:{config.admin_phone}", message, config.timeout, transport)
    except httpx.HTTPError as exc:
        logger.warning("WhatsApp to %s failed: %s", config.admin_phone, exc)
        return {"success": False, "error": str(exc)}


async def notify_admin_new_order(config: NotificationConfig, order: dict, payment: dict | None,
                                 transport: httpx.AsyncBaseTransport | None = None) -> dict:
    """Fire-and-forget from the request's point of view; results are only logged."""
    message = format_order_message(order, payment)
    logger.info("admin notification for order %s", order.get("order_number"))
    sms, whatsapp = await asyncio.gather(
        send_sms(config, message, transport), send_whatsapp(config, message, transport), return_exceptions=True,
    )
    result = {}
    for channel, outcome in (("sms", sms), ("whatsapp", whatsapp)):
        if isinstance(outcome, BaseException):
            logger.warning("%s notification raised: %s", channel, outcome)
            outcome = {"success": False, "error": str(outcome)}
        result[channel] = outcome
    return result
