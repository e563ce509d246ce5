from __future__ import annotations

import structlog
from dependency_injector import containers, providers

from chat.gateways import HistoryGateway, ModelGateway, ReplyGateway, TemplateGateway
from chat.models import SamplingParams
from chat.pipeline import ConversationOrchestrator
from chat.retry import JitterStrategy, RetryPolicy
from core.settings import SETTINGS
from infra.resources import HttpClientResource, ModelClientResource, RedisResource


logger = structlog.get_logger("chat")


class InfrastructureContainer(containers.DeclarativeContainer):
    config = providers.Configuration()
    settings = providers.Object(SETTINGS)
    logger = providers.Object(logger)

    # Redis: history records and prompt templates
    redis_db = providers.Resource(
        RedisResource,
        redis_url=str(SETTINGS.REDIS.REDIS_URL),
    )

    # Outbound HTTP for the messaging channel
    http_client = providers.Resource(
        HttpClientResource,
        timeout_seconds=SETTINGS.LINE.LINE_REQUEST_TIMEOUT_SECONDS,
    )

    # Generative model
    model_client = providers.Resource(
        ModelClientResource,
        api_key=SETTINGS.MODEL.OPENAI_API_KEY.get_secret_value(),
        base_url=SETTINGS.MODEL.OPENAI_BASE_URL,
        timeout_seconds=SETTINGS.MODEL.MODEL_TIMEOUT_SECONDS,
    )


class ServiceContainer(containers.DeclarativeContainer):
    """Gateways and the orchestrator - depends on infrastructure."""

    infrastructure = providers.DependenciesContainer()

    redis_client = providers.Factory(
        lambda redis: redis.get_client(),
        redis=infrastructure.redis_db,
    )
    http_client = providers.Factory(
        lambda http: http.get_client(),
        http=infrastructure.http_client,
    )
    model_client = providers.Factory(
        lambda model: model.get_client(),
        model=infrastructure.model_client,
    )

    # Gateways
    history_gateway = providers.Factory(
        HistoryGateway,
        client=redis_client,
        key_prefix=SETTINGS.CONVERSATION.HISTORY_KEY_PREFIX,
    )

    template_gateway = providers.Factory(
        TemplateGateway,
        client=redis_client,
        key_prefix=SETTINGS.CONVERSATION.TEMPLATE_KEY_PREFIX,
    )

    model_gateway = providers.Factory(
        ModelGateway,
        client=model_client,
        model=SETTINGS.MODEL.MODEL_NAME,
    )

    reply_gateway = providers.Factory(
        ReplyGateway,
        client=http_client,
        endpoint=SETTINGS.LINE.LINE_REPLY_ENDPOINT,
        access_token=SETTINGS.LINE.LINE_CHANNEL_ACCESS_TOKEN.get_secret_value(),
    )

    # Fixed per deployment
    sampling = providers.Factory(
        SamplingParams,
        max_tokens=SETTINGS.MODEL.MAX_TOKENS,
        temperature=SETTINGS.MODEL.TEMPERATURE,
        top_p=SETTINGS.MODEL.TOP_P,
        top_k=SETTINGS.MODEL.TOP_K,
    )

    reply_retry_policy = providers.Factory(
        RetryPolicy,
        max_attempts=SETTINGS.REPLY_RETRY.MAX_ATTEMPTS,
        base_delay=SETTINGS.REPLY_RETRY.BASE_DELAY_SECONDS,
        multiplier=SETTINGS.REPLY_RETRY.MULTIPLIER,
        jitter=JitterStrategy(SETTINGS.REPLY_RETRY.JITTER),
    )

    # One orchestrator per execution
    orchestrator = providers.Factory(
        ConversationOrchestrator,
        history_gateway=history_gateway,
        template_gateway=template_gateway,
        model_gateway=model_gateway,
        reply_gateway=reply_gateway,
        template_name=SETTINGS.CONVERSATION.PROMPT_TEMPLATE_NAME,
        sampling=sampling,
        reply_retry_policy=reply_retry_policy,
        retention_window_seconds=SETTINGS.CONVERSATION.RETENTION_WINDOW_SECONDS,
        execution_timeout_seconds=SETTINGS.CONVERSATION.EXECUTION_TIMEOUT_SECONDS,
    )

    # Queue publisher used by the webhook ingress
    chat_queue = providers.Factory(
        "workers.publisher.ChatRequestQueue",
        queue_name=SETTINGS.CONVERSATION.CHAT_QUEUE_NAME,
    )

    webhook_service = providers.Factory(
        "api.features.webhook.service.WebhookService",
        channel_secret=SETTINGS.LINE.LINE_CHANNEL_SECRET.get_secret_value(),
        chat_queue=chat_queue,
        reply_gateway=reply_gateway,
        fallback_text=SETTINGS.CONVERSATION.FALLBACK_REPLY_TEXT,
    )


class ControllerContainer(containers.DeclarativeContainer):
    """Controller-specific dependencies."""

    services = providers.DependenciesContainer()

    webhook_controller = providers.Factory(
        "api.features.webhook.controller.WebhookController",
        webhook_service=services.webhook_service,
    )

    template_controller = providers.Factory(
        "api.features.templates.controller.TemplateController",
        template_gateway=services.template_gateway,
    )


class ApplicationContainer(containers.DeclarativeContainer):
    """Main application container composing all sub-containers."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "api.features.webhook.router",
            "api.features.templates.router",
        ]
    )

    infrastructure = providers.Container(InfrastructureContainer)
    services = providers.Container(ServiceContainer, infrastructure=infrastructure)
    controllers = providers.Container(ControllerContainer, services=services)
