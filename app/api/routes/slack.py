"""
Slack API Routes

Slack posts every interaction (message shortcut, modal submission, button
press) to a single endpoint as a form-encoded ``payload`` field.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from slack_sdk.signature import SignatureVerifier
from urllib.parse import parse_qs
import json
import logging

from app.api.dependencies import get_deletion_cascade, get_workflow
from app.config import Settings, get_settings
from app.integrations.slack.blocks import validation_errors
from app.integrations.slack.client import ConversationServiceError
from app.integrations.slack.interactions import InteractionParseError, parse_interaction
from app.models.tagging import TagDeletionAction, TagInitiation, TagSubmission
from app.services.deletion_cascade import DeletionCascade
from app.services.tag_workflow import TagSubmissionWorkflow, TagValidationError

logger = logging.getLogger(__name__)
router = APIRouter()


def _verify_signature(request: Request, body: bytes, settings: Settings) -> None:
    if not settings.slack_signing_secret:
        return
    verifier = SignatureVerifier(settings.slack_signing_secret)
    if not verifier.is_valid_request(body, dict(request.headers)):
        logger.warning("Rejected Slack request with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid Slack signature")


def _read_payload(body: bytes) -> dict:
    try:
        fields = parse_qs(body.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid body encoding: {e}")
    if "payload" not in fields:
        raise HTTPException(status_code=400, detail="Missing payload")
    try:
        return json.loads(fields["payload"][0])
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid payload: {e}")


@router.post("/interactions")
async def interactions(
    request: Request,
    settings: Settings = Depends(get_settings),
    workflow: TagSubmissionWorkflow = Depends(get_workflow),
    cascade: DeletionCascade = Depends(get_deletion_cascade),
):
    """
    Handle a Slack interaction.

    - Message shortcut ``add_message_tag``: open the tag modal
    - ``view_submission`` of ``tag_modal``: save tags, close the modal or show field errors
    - ``block_actions`` remove controls: cascade the deletion
    """
    body = await request.body()
    _verify_signature(request, body, settings)
    payload = _read_payload(body)

    try:
        event = parse_interaction(payload)
    except InteractionParseError as e:
        logger.warning(f"Rejected interaction: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    if event is None:
        return Response(status_code=200)

    if isinstance(event, TagInitiation):
        try:
            await workflow.open_tag_form(event)
        except ConversationServiceError as e:
            logger.error(f"Failed to open tag form for {event.channel_id}/{event.message_ts}: {e}")
        return Response(status_code=200)

    if isinstance(event, TagSubmission):
        try:
            result = await workflow.submit(event)
        except TagValidationError as e:
            return JSONResponse(validation_errors(e.block_id, e.message))
        logger.info(f"Saved tags {result.tags} on record {result.record_id}")
        # Empty body closes the modal
        return JSONResponse({})

    if isinstance(event, TagDeletionAction):
        try:
            await cascade.handle(event)
        except ValueError as e:
            logger.warning(f"Ignoring deletion action: {e}")
        return Response(status_code=200)

    return Response(status_code=200)
