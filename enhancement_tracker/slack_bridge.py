"""Create enhancement requests from the Slack slash command."""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any, Dict, List, Mapping

import structlog
from slack_sdk.models.blocks import ContextBlock, MarkdownTextObject, SectionBlock

from enhancement_tracker.enums import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    Beneficiary,
    DesireLevel,
    ProductArea,
    RequestType,
)
from enhancement_tracker.models import StoreError
from enhancement_tracker.validation import RATIONALE_SENTINEL

MAX_NAME_LENGTH = 100
USAGE_TEXT = "Usage: `/new-request <describe the enhancement>`"
INVALID_SIGNATURE_TEXT = "Sorry, this request could not be verified."
NOT_CONFIGURED_TEXT = "Slack integration is not configured."

SLACK_DEFAULTS: Dict[str, str] = {
    "type_of_request": RequestType.ENHANCEMENT_FEATURE.value,
    "area_of_product": ProductArea.DOCUMENTATION.value,
    "desire_level": DesireLevel.NICE_TO_HAVE.value,
    "who_benefits": Beneficiary.INTERNAL.value,
}


def ephemeral(text: str, blocks: List[Dict[str, Any]] | None = None) -> Dict[str, Any]:
    """Return a Slack response visible only to the invoking user."""

    payload: Dict[str, Any] = {"response_type": "ephemeral", "text": text}
    if blocks:
        payload["blocks"] = blocks
    return payload


def _summary_name(text: str) -> str:
    first_line = text.strip().splitlines()[0].strip()
    if len(first_line) <= MAX_NAME_LENGTH:
        return first_line
    return first_line[: MAX_NAME_LENGTH - 3].rstrip() + "..."


def build_slack_enhancement(form: Mapping[str, str], *, today: date | None = None) -> Dict[str, Any]:
    """Synthesise stored column values from slash command fields."""

    text = (form.get("text") or "").strip()
    if not text:
        raise ValueError(USAGE_TEXT)
    user_name = (form.get("user_name") or "").strip()
    user_id = (form.get("user_id") or "").strip()
    channel_name = (form.get("channel_name") or "").strip()
    values: Dict[str, Any] = {
        "request_name": _summary_name(text),
        "request_description": text,
        "rationale": RATIONALE_SENTINEL,
        "requestor_name": user_name or user_id or "Slack user",
        "date_of_request": today or datetime.now(UTC).date(),
        "stakeholder": f"#{channel_name}" if channel_name else None,
        "status": DEFAULT_STATUS.value,
        "priority_level": DEFAULT_PRIORITY.value,
        "documentation_updated": False,
        "storylanes_updated": False,
        "release_notes": False,
    }
    values.update(SLACK_DEFAULTS)
    return values


def confirmation_blocks(request_id: str, name: str) -> List[Dict[str, Any]]:
    return [
        SectionBlock(text=MarkdownTextObject(text=f":white_check_mark: *{request_id}* created\n>{name}")).to_dict(),
        ContextBlock(
            elements=[MarkdownTextObject(text="Open the Enhancement Tracker to add details and set priority.")]
        ).to_dict(),
    ]


def create_from_slash_command(store, form: Mapping[str, str], *, today: date | None = None) -> Dict[str, Any]:
    """Create a record from *form* and return the ephemeral reply."""

    log = structlog.get_logger(__name__).bind(user_id=form.get("user_id"), channel=form.get("channel_name"))
    try:
        values = build_slack_enhancement(form, today=today)
    except ValueError as exc:
        log.info("slack_request_rejected", reason="empty_text")
        return ephemeral(str(exc))
    try:
        enhancement = store.create_enhancement(values)
    except StoreError as exc:
        log.warning("slack_request_store_failed", error=exc.message, code=exc.code)
        return ephemeral(f"Sorry, the request could not be saved: {exc.message}")
    log.info("slack_request_created", request_id=enhancement.request_id)
    return ephemeral(
        f"Request {enhancement.request_id} created: {enhancement.request_name}",
        confirmation_blocks(enhancement.request_id, enhancement.request_name),
    )
