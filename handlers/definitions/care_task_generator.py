# ============================================================================
# CARE TASK GENERATOR
# ============================================================================
# STATUS: Handler - operations
# PURPOSE: Create a follow-up call task with a call script after delivery
# CREATED: 19 OCT 2026
# ============================================================================
"""
Care Task Generator

Creates a `delivery_followup` row in care_tasks for the care team, due
four hours after creation, with a call script tailored to the agent.
Repeat clients (more than one delivered listing) get a review request
in the script; first-time clients do not.

Reads listings and agents through the record store, so it runs against
PostgreSQL or the in-memory backend alike.
"""

import html
import logging
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.config.defaults import get_defaults
from core.contracts import ExecutionMode, TaskCategory
from core.errors import EngineError, InvalidInputError, NotFoundError, StorageError
from core.models import ExecutionResult, TaskConfig
from core.models.base import utc_now
from handlers.registry import ExecutionContext, TaskDefinition, TaskRegistry
from infrastructure.llm import parse_json_response

logger = logging.getLogger(__name__)

SLUG = "care-task-generator"
FOLLOWUP_DELAY = timedelta(hours=4)
DELIVERED_STATUS = "delivered"

SCRIPT_FIELDS = (
    "greeting",
    "property_mention",
    "quality_check",
    "review_request",
    "closing_statement",
)

CARE_TASK_PROMPT = """You are a customer care specialist for a real estate media company.

Write a call script for the care team to use when following up with an agent after their media was delivered.

The call should:
1. Check the media was received and looks good
2. Ask whether any adjustments are needed
3. Gauge satisfaction
4. Ask for a review ONLY if this is a repeat client who seems satisfied

Return a JSON object with the keys "greeting", "property_mention",
"quality_check", "review_request" (empty string when not applicable),
"closing_statement" and "full_script"."""


class CareTaskInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    listing_id: str = Field(..., min_length=1)
    agent_id: Optional[str] = None


# ============================================================================
# CALL SCRIPT
# ============================================================================

def describe_property(listing: Dict[str, Any]) -> str:
    details = f"{listing.get('beds') or '?'} bed, {listing.get('baths') or '?'} bath"
    if listing.get("sqft"):
        details += f", {int(listing['sqft']):,} sqft"
    return details


def full_address(listing: Dict[str, Any]) -> str:
    parts = [listing.get("address") or "", listing.get("city") or "", listing.get("state") or ""]
    return ", ".join(p for p in parts if p)


def fallback_script(listing: Dict[str, Any], agent_name: str, order_count: int) -> Dict[str, str]:
    script = {
        "greeting": f"Hi {agent_name}, this is the care team calling. How are you today?",
        "property_mention": (
            f"I'm following up on the media we delivered for your "
            f"{describe_property(listing)} property at {full_address(listing)}."
        ),
        "quality_check": (
            "Have you had a chance to review the photos and videos? Did everything "
            "come through okay? Is there anything you'd like us to adjust?"
        ),
        "review_request": (
            "We really appreciate working with you again! If you're happy with our "
            "service, would you mind leaving us a quick review?"
            if order_count > 1 else ""
        ),
        "closing_statement": (
            "If anything comes up or you need changes, just let us know. Thanks for working with us!"
        ),
    }
    script["full_script"] = "\n\n".join(script[k] for k in SCRIPT_FIELDS if script[k])
    return script


def build_script_prompt(listing: Dict[str, Any], agent_name: str, order_count: int) -> str:
    client_type = "Repeat client" if order_count > 1 else "First order"
    guidance = (
        "This is a repeat client, so include the review request."
        if order_count > 1
        else "First-time client: leave review_request empty."
    )
    return (
        f"{CARE_TASK_PROMPT}\n\n"
        f"Agent: {agent_name}\n"
        f"Property: {full_address(listing)}\n"
        f"Details: {describe_property(listing)}\n"
        f"Order count: {order_count} ({client_type})\n\n"
        f"{guidance}\n\nRespond with ONLY valid JSON."
    )


async def generate_call_script(
    ctx: ExecutionContext,
    listing: Dict[str, Any],
    agent_name: str,
    order_count: int,
) -> Tuple[Dict[str, str], int]:
    """Call script plus tokens used; falls back to a fixed script."""
    try:
        generated = await ctx.generate(build_script_prompt(listing, agent_name, order_count))
    except EngineError as e:
        logger.warning(f"Call script generation failed, using fallback: {e.message}")
        return fallback_script(listing, agent_name, order_count), 0

    try:
        parsed = parse_json_response(generated.content)
        if not isinstance(parsed, dict) or not parsed.get("full_script"):
            raise ValueError("response has no full_script")
    except ValueError as e:
        logger.warning(f"Unparseable call script, using fallback: {e}")
        return fallback_script(listing, agent_name, order_count), generated.tokens_used

    script = {k: str(parsed.get(k) or "") for k in SCRIPT_FIELDS}
    script["full_script"] = str(parsed["full_script"])
    return script, generated.tokens_used


# ============================================================================
# HANDLER
# ============================================================================

def _care_team_email(agent: Dict[str, Any], listing: Dict[str, Any], task: Dict[str, Any], script: Dict[str, str], repeat: bool) -> str:
    settings = get_defaults().notifications
    e = html.escape
    return (
        '<div style="font-family: -apple-system, \'Segoe UI\', Roboto, sans-serif; max-width: 600px;">'
        "<h2>New delivery follow-up task</h2>"
        f"<p><strong>Agent:</strong> {e(str(agent.get('name') or ''))}</p>"
        f"<p><strong>Phone:</strong> {e(str(agent.get('phone') or 'Not available'))}</p>"
        f"<p><strong>Property:</strong> {e(full_address(listing))}</p>"
        f"<p><strong>Due:</strong> {e(str(task.get('due_at') or 'ASAP'))}</p>"
        f"<p><strong>Client type:</strong> {'Repeat client' if repeat else 'First order'}</p>"
        "<h3>Call script</h3>"
        f'<pre style="white-space: pre-wrap; font-family: inherit;">{e(script["full_script"])}</pre>'
        f'<p><a href="{settings.admin_base_url}/admin/care/tasks/{e(str(task.get("id")))}">View in admin</a></p>'
        "</div>"
    )


async def _load_row(ctx: ExecutionContext, table: str, row_id: str, label: str) -> Dict[str, Any]:
    try:
        row = await ctx.storage.records.fetch_one(table, {"id": row_id})
    except Exception as e:
        raise StorageError(f"load {label.lower()}", e) from e
    if row is None:
        raise NotFoundError(label, row_id)
    return row


async def generate_care_task(ctx: ExecutionContext) -> ExecutionResult:
    data: CareTaskInput = ctx.payload
    records = ctx.storage.records

    listing = await _load_row(ctx, "listings", data.listing_id, "Listing")

    agent_id = data.agent_id or listing.get("agent_id")
    if not agent_id:
        raise InvalidInputError(f"No agent associated with listing {data.listing_id}")
    agent = await _load_row(ctx, "agents", agent_id, "Agent")
    agent_name = agent.get("name") or "there"

    try:
        order_count = await records.count("listings", {"agent_id": agent_id, "ops_status": DELIVERED_STATUS})
    except Exception as e:
        logger.error(f"Failed to count delivered listings for agent {agent_id}: {e}")
        order_count = 0
    order_count = max(order_count, 1)
    repeat = order_count > 1

    script, tokens_used = await generate_call_script(ctx, listing, agent_name, order_count)

    due_at = utc_now() + FOLLOWUP_DELAY
    try:
        task = await records.insert("care_tasks", {
            "agent_id": agent_id,
            "listing_id": listing.get("id", data.listing_id),
            "task_type": "delivery_followup",
            "status": "pending",
            "priority": 2,
            "due_at": due_at,
            "notes": {
                "call_script": script,
                "property_address": listing.get("address"),
                "agent_name": agent_name,
                "agent_phone": agent.get("phone"),
                "agent_email": agent.get("email"),
                "delivered_at": listing.get("delivered_at"),
                "order_count": order_count,
                "is_repeat_client": repeat,
            },
        })
    except Exception as e:
        raise StorageError("create care task", e) from e

    logger.info(f"Created care task {task.get('id')} for agent {agent_id}")

    email_sent = False
    if ctx.notifier is not None:
        try:
            await ctx.notifier.send_email(
                get_defaults().notifications.care_team_email,
                f"New care task: follow-up call for {agent_name}",
                _care_team_email(agent, listing, task, script, repeat),
            )
            email_sent = True
        except Exception as e:
            logger.error(f"Failed to notify care team about task {task.get('id')}: {e}")

    return ExecutionResult.success_result(
        {
            "task_id": task.get("id"),
            "agent_name": agent_name,
            "agent_phone": agent.get("phone"),
            "property_address": listing.get("address"),
            "call_script": script,
            "due_at": due_at.isoformat(),
            "is_repeat_client": repeat,
            "order_count": order_count,
            "email_sent": email_sent,
        },
        tokens_used=tokens_used,
    )


def register(registry: TaskRegistry) -> TaskDefinition:
    return registry.register(TaskDefinition(
        slug=SLUG,
        name="Care Task Generator",
        category=TaskCategory.OPERATIONS,
        execution_mode=ExecutionMode.ASYNC,
        description="Creates a follow-up care task with a personalised call script when media is delivered",
        system_prompt=CARE_TASK_PROMPT,
        config=TaskConfig(max_tokens=800, temperature=0.7, timeout_ms=30000),
        execute=generate_care_task,
        input_model=CareTaskInput,
    ))


__all__ = [
    "SLUG",
    "CareTaskInput",
    "fallback_script",
    "generate_call_script",
    "generate_care_task",
    "register",
]
