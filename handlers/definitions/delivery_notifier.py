# ============================================================================
# DELIVERY NOTIFIER TASK
# ============================================================================
# STATUS: Handler - operations
# PURPOSE: Email the agent when their media package is ready, with usage tips
# CREATED: 19 OCT 2026
# ============================================================================
"""
Delivery Notifier

Input: listing id, agent email and name, property address, delivered
media category keys and the delivery URL.

Flow:
1. Ask the text client for one personalised tip per media category.
   Any failure (client error, unparseable response) falls back to the
   catalogue's baseline tips.
2. Render subject, preview text, HTML and plain-text bodies.
3. Send through the notifier. A send failure is logged and reported as
   email_sent=False; the task still succeeds.
"""

import logging
from typing import Dict, List, Optional, Tuple

from jinja2 import DictLoader, Environment, select_autoescape
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.config.defaults import get_defaults
from core.contracts import ExecutionMode, TaskCategory
from core.errors import EngineError
from core.models import ExecutionResult, TaskConfig
from core.models.base import utc_now
from handlers.definitions.media import get_category_info
from handlers.registry import ExecutionContext, TaskDefinition, TaskRegistry
from infrastructure.llm import parse_json_response

logger = logging.getLogger(__name__)

SLUG = "delivery-notifier"

DELIVERY_NOTIFIER_PROMPT = """You are a real estate media specialist who helps agents get the most value from their media.

Write a personalised, practical usage tip for each media category in a completed delivery.

Guidelines:
- Conversational and helpful, not salesy
- One or two sentences per category
- Mention platforms, distribution or timing where relevant

Return a JSON object with a "tips" array of objects with "category" and "tip" fields."""


class DeliveryNotificationInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    listing_id: str = Field(..., min_length=1)
    agent_email: str = Field(..., min_length=3)
    agent_name: str = "there"
    address: str = ""
    media_categories: List[str] = Field(..., min_length=1)
    delivery_url: str = ""


# ============================================================================
# EMAIL TEMPLATES
# ============================================================================

_TEMPLATES = {
    "delivery.html": """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="margin: 0; font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif;">
  <div style="max-width: 600px; margin: 0 auto; padding: 40px 20px;">
    <h1 style="font-size: 28px; color: #1a1a1a;">Great news, {{ agent_name }}!</h1>
    <p style="font-size: 18px; color: #4a5568;">
      Your media package for <strong>{{ address }}</strong> is ready to download.
    </p>
    <h2 style="font-size: 20px; color: #1a1a1a;">How to get the most from your media</h2>
    {% for item in tips %}
    <div style="margin-bottom: 20px; padding: 15px; background: #f8f9fa; border-left: 3px solid #0066cc;">
      <h3 style="margin: 0 0 8px 0; font-size: 16px;">{{ item.title }}</h3>
      <p style="margin: 0; font-size: 14px; color: #4a5568;">{{ item.tip }}</p>
    </div>
    {% endfor %}
    <p style="text-align: center; margin: 40px 0;">
      <a href="{{ delivery_url }}" style="padding: 16px 40px; background: #0066cc; color: #ffffff; text-decoration: none; border-radius: 6px;">View &amp; download your media</a>
    </p>
    <p style="font-size: 14px; color: #718096; text-align: center;">
      Questions? Email <a href="mailto:{{ support_email }}">{{ support_email }}</a>
    </p>
  </div>
</body>
</html>
""",
    "delivery.txt": """Great news, {{ agent_name }}!

Your media package for {{ address }} is ready to download.

HOW TO GET THE MOST FROM YOUR MEDIA
-----------------------------------
{% for item in tips %}
{{ item.title }}
{{ item.tip }}
{% endfor %}
View & download your media:
{{ delivery_url }}

Questions? Email {{ support_email }}
""",
}

_env = Environment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    trim_blocks=True,
    lstrip_blocks=True,
)


# ============================================================================
# TIPS
# ============================================================================

def fallback_tips(categories: List[str]) -> Dict[str, str]:
    return {category: get_category_info(category).tip for category in categories}


def build_tips_prompt(categories: List[str], address: str) -> str:
    infos = [get_category_info(c) for c in categories]
    delivered = "\n".join(f"- {i.title} ({i.key}): {i.description}" for i in infos)
    baseline = "\n".join(f"- {i.key}: {i.tip}" for i in infos)
    return (
        f"{DELIVERY_NOTIFIER_PROMPT}\n\n"
        f"Property address: {address}\n\n"
        f"Media categories delivered:\n{delivered}\n\n"
        f"Baseline tips for reference:\n{baseline}"
    )


async def generate_tips(
    ctx: ExecutionContext,
    data: DeliveryNotificationInput,
) -> Tuple[Dict[str, str], int]:
    """
    Personalised tips per category, plus tokens used.

    Categories the model leaves out keep their baseline tip.
    """
    tips = fallback_tips(data.media_categories)
    try:
        generated = await ctx.generate(build_tips_prompt(data.media_categories, data.address))
    except EngineError as e:
        logger.warning(f"Tip generation failed, using baseline tips: {e.message}")
        return tips, 0

    try:
        parsed = parse_json_response(generated.content)
        items = parsed.get("tips") if isinstance(parsed, dict) else None
        if not isinstance(items, list):
            raise ValueError("response has no 'tips' array")
    except ValueError as e:
        logger.warning(f"Unparseable tips response, using baseline tips: {e}")
        return tips, generated.tokens_used

    for item in items:
        if isinstance(item, dict) and item.get("category") in tips and item.get("tip"):
            tips[item["category"]] = str(item["tip"])
    return tips, generated.tokens_used


# ============================================================================
# CONTENT
# ============================================================================

def format_notification(
    data: DeliveryNotificationInput,
    tips: Dict[str, str],
    support_email: Optional[str] = None,
) -> Dict[str, str]:
    """Subject, preview text and both email bodies."""
    variables = {
        "agent_name": data.agent_name,
        "address": data.address,
        "delivery_url": data.delivery_url,
        "support_email": support_email or get_defaults().notifications.support_email,
        "tips": [
            {"category": category, "title": get_category_info(category).title, "tip": tip}
            for category, tip in tips.items()
        ],
    }
    return {
        "subject": f"Your media for {data.address} is ready!",
        "preview_text": "Download your professional real estate media package now",
        "html": _env.get_template("delivery.html").render(variables),
        "text": _env.get_template("delivery.txt").render(variables),
    }


# ============================================================================
# HANDLER
# ============================================================================

async def notify_delivery(ctx: ExecutionContext) -> ExecutionResult:
    data: DeliveryNotificationInput = ctx.payload

    tips, tokens_used = await generate_tips(ctx, data)
    content = format_notification(data, tips)

    email_sent = False
    email_sent_at = None
    warnings = []
    if ctx.notifier is None:
        logger.warning(f"No notifier configured; delivery email to {data.agent_email} not sent")
        warnings.append("no notifier configured")
    else:
        try:
            await ctx.notifier.send_email(
                data.agent_email,
                content["subject"],
                content["html"],
                content["text"],
            )
            email_sent = True
            email_sent_at = utc_now().isoformat()
        except Exception as e:
            logger.error(f"Failed to send delivery email to {data.agent_email}: {e}")
            warnings.append(f"email not sent: {e}")

    return ExecutionResult.success_result(
        {
            "listing_id": data.listing_id,
            "agent_email": data.agent_email,
            "categories_notified": data.media_categories,
            "notification": {
                "subject": content["subject"],
                "preview_text": content["preview_text"],
                "tips": tips,
            },
            "email_sent": email_sent,
            "email_sent_at": email_sent_at,
        },
        tokens_used=tokens_used,
        warnings=warnings,
    )


def register(registry: TaskRegistry) -> TaskDefinition:
    return registry.register(TaskDefinition(
        slug=SLUG,
        name="Delivery Notifier",
        category=TaskCategory.OPERATIONS,
        execution_mode=ExecutionMode.ASYNC,
        description="Sends personalised delivery notifications to agents when their media is ready",
        system_prompt=DELIVERY_NOTIFIER_PROMPT,
        config=TaskConfig(max_tokens=1000, temperature=0.7),
        execute=notify_delivery,
        input_model=DeliveryNotificationInput,
    ))


__all__ = [
    "SLUG",
    "DeliveryNotificationInput",
    "fallback_tips",
    "build_tips_prompt",
    "generate_tips",
    "format_notification",
    "notify_delivery",
    "register",
]
