"""
GitLab webhook receiver.

Classifies incoming GitLab webhooks and hands triggered work to the CI
pipeline through a background dispatcher, so GitLab gets its answer
without waiting for the pipeline call.
"""

import hmac
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from gitlab_agent import __version__
from gitlab_agent.config import (
    ActionConfig,
    GitLabSettings,
    load_action_config,
    load_gitlab_settings,
)
from gitlab_agent.errors import UnsupportedEventError
from gitlab_agent.triggers.dispatcher import TriggerDispatcher
from gitlab_agent.triggers.events import parse_event
from gitlab_agent.triggers.models import ResourceType
from gitlab_agent.triggers.validator import TriggerValidator
from gitlab_agent.triggers.webhooks import WebhookHandler

STARTED_AT = time.monotonic()

# Lazily initialised process-wide collaborators
_config: Optional[ActionConfig] = None
_settings: Optional[GitLabSettings] = None
_dispatcher: Optional[TriggerDispatcher] = None


def get_action_config() -> ActionConfig:
    global _config
    if _config is None:
        _config = load_action_config()
        logger.info(
            f"Configuration: trigger_phrase={_config.trigger_phrase}, "
            f"label_trigger={_config.label_trigger}, base_branch={_config.base_branch}, "
            f"branch_prefix={_config.branch_prefix}, model={_config.model}"
        )
    return _config


def get_gitlab_settings() -> GitLabSettings:
    global _settings
    if _settings is None:
        _settings = load_gitlab_settings()
    return _settings


def get_dispatcher() -> TriggerDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = TriggerDispatcher()
    return _dispatcher


def get_validator(config: ActionConfig = Depends(get_action_config)) -> TriggerValidator:
    return TriggerValidator(config)


def get_webhook_handler(
    config: ActionConfig = Depends(get_action_config),
    settings: GitLabSettings = Depends(get_gitlab_settings),
) -> WebhookHandler:
    return WebhookHandler(config, settings)


def verify_webhook_token(
    x_gitlab_token: Optional[str] = Header(default=None),
    settings: GitLabSettings = Depends(get_gitlab_settings),
) -> None:
    """Compare X-Gitlab-Token with the configured webhook secret."""
    if not settings.webhook_secret:
        logger.warning("GITLAB_WEBHOOK_SECRET not set - skipping signature verification")
        return
    if not x_gitlab_token:
        raise HTTPException(status_code=401, detail="Missing webhook signature")
    if not hmac.compare_digest(x_gitlab_token.encode(), settings.webhook_secret.encode()):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


class ManualTriggerRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    project_id: Optional[int] = None
    resource_type: Optional[ResourceType] = None
    resource_id: Optional[int] = None
    prompt: Optional[str] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Drain background pipeline triggers on shutdown."""
    logger.info("GitLab webhook receiver starting")
    yield
    dispatcher = get_dispatcher()
    if dispatcher.pending:
        logger.info(f"Waiting for {dispatcher.pending} background task(s)")
    await dispatcher.wait_all()
    logger.info("GitLab webhook receiver stopped")


app = FastAPI(
    title="GitLab Agent Webhook Receiver",
    description="Triggers the GitLab assistant pipeline from webhooks",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }


@app.get("/metrics")
async def metrics(dispatcher: TriggerDispatcher = Depends(get_dispatcher)):
    """Uptime and background task counters."""
    return {
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "tasks": dispatcher.stats(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/webhook/gitlab", dependencies=[Depends(verify_webhook_token)])
async def gitlab_webhook(
    request: Request,
    x_gitlab_event: Optional[str] = Header(default=None),
    validator: TriggerValidator = Depends(get_validator),
    handler: WebhookHandler = Depends(get_webhook_handler),
    dispatcher: TriggerDispatcher = Depends(get_dispatcher),
):
    """Classify a GitLab webhook and start the pipeline when it triggers."""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    try:
        event = parse_event(payload)
    except UnsupportedEventError as e:
        logger.info(f"Ignoring GitLab webhook: {e}")
        return {"message": "No action required"}
    except ValidationError as e:
        logger.warning(f"Invalid GitLab webhook payload: {e}")
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid webhook payload", "message": str(e)},
        )

    logger.info(
        f"Received GitLab webhook: {x_gitlab_event} "
        f"(project {event.project.id}, kind {event.object_kind}, "
        f"user {event.user.username if event.user else None})"
    )

    try:
        result = validator.validate_trigger(event)

        if not result.should_trigger:
            logger.info("Webhook did not meet trigger conditions")
            return {"message": "No action required"}

        logger.info(
            f"Trigger validated: {result.trigger_type.value} on "
            f"{result.resource_type.value if result.resource_type else None} #{result.resource_id}"
        )

        dispatcher.submit(
            handler.handle_webhook(event, result),
            name=f"pipeline-{event.project.id}-{result.resource_id}",
        )

        return {
            "message": "Webhook received and processing started",
            "triggerType": result.trigger_type,
            "resourceType": result.resource_type,
            "resourceId": result.resource_id,
        }
    except Exception as e:
        logger.error(f"Error processing webhook: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(e)},
        )


@app.post("/trigger/manual")
async def manual_trigger(
    request: Request,
    validator: TriggerValidator = Depends(get_validator),
    handler: WebhookHandler = Depends(get_webhook_handler),
):
    """Start the pipeline for a resource without a webhook."""
    try:
        body = ManualTriggerRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "message": str(e)},
        )

    if not body.project_id or not body.resource_type or not body.resource_id:
        raise HTTPException(
            status_code=400,
            detail="Missing required fields: projectId, resourceType, resourceId",
        )

    try:
        result = validator.validate_direct_trigger(
            body.project_id, body.resource_type, body.resource_id, prompt=body.prompt
        )
        await handler.handle_manual_trigger(result)
        return {"message": "Manual trigger started", "triggerResult": result.to_trigger_data()}
    except Exception as e:
        logger.error(f"Error processing manual trigger: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(e)},
        )


def run():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8080")))


if __name__ == "__main__":
    run()
