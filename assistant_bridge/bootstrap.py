"""Factory functions for creating and configuring application components with dependency injection."""

from .entities import ServiceConfig
from .infrastructure import OpenAIClientFactory
from .repositories import (
    BaseRecordRepository,
    BaseSecretRepository,
    GCPRecordRepository,
    GCPSecretRepository,
    LocalRecordRepository,
    LocalSecretRepository,
)
from .services import (
    ApiKeyValidator,
    AssistantProvisioner,
    AssistantService,
    CascadeDeleter,
    ConfigurationService,
    ConversationOrchestrator,
    CredentialResolver,
    FileIngestionPipeline,
    FileResolver,
    FileService,
    IdempotencyCache,
    KnowledgeStoreProvisioner,
    SecretCodec,
)
from .structured_logging import get_logger

logger = get_logger("BOOTSTRAP")


def get_secret_repository(config: ServiceConfig) -> BaseSecretRepository:
    """Create development or production secret repository based on environment."""
    if config.is_development:
        logger.info("Using local secret repository for development")
        return LocalSecretRepository()
    logger.info("Using GCP secret repository for production")
    return GCPSecretRepository(client_id=config.client_id, project_id=config.project_id)


def get_record_repository(config: ServiceConfig) -> BaseRecordRepository:
    """Create development or production record repository based on environment."""
    if config.is_development:
        logger.info("Using local record repository for development", store_path=config.local_store_path or None)
        return LocalRecordRepository(store_path=config.local_store_path)
    logger.info("Using GCP record repository for production", bucket=config.bucket_id)
    return GCPRecordRepository(client_id=config.client_id, project_id=config.project_id, bucket_name=config.bucket_id)


def get_client_factory(config: ServiceConfig) -> OpenAIClientFactory:
    return OpenAIClientFactory(base_url=config.openai_base_url)


def get_secret_codec(config: ServiceConfig) -> SecretCodec:
    return SecretCodec.from_config(config)


def get_api_key_validator(config: ServiceConfig, client_factory: OpenAIClientFactory) -> ApiKeyValidator:
    return ApiKeyValidator(client_factory, prefixes=config.api_key_prefixes, timeout=config.key_validation_timeout)


def get_credential_resolver(
    codec: SecretCodec, validator: ApiKeyValidator, secret_repository: BaseSecretRepository
) -> CredentialResolver:
    return CredentialResolver(codec, validator, secret_repository)


def get_orchestrator(
    config: ServiceConfig,
    records: BaseRecordRepository,
    credentials: CredentialResolver,
    client_factory: OpenAIClientFactory,
) -> ConversationOrchestrator:
    logger.info(
        "Creating conversation orchestrator",
        poll_interval=config.run_poll_interval,
        max_poll_attempts=config.run_max_poll_attempts,
    )
    return ConversationOrchestrator(
        records,
        credentials,
        client_factory,
        poll_interval=config.run_poll_interval,
        max_poll_attempts=config.run_max_poll_attempts,
    )


def get_file_pipeline(
    config: ServiceConfig,
    records: BaseRecordRepository,
    credentials: CredentialResolver,
    client_factory: OpenAIClientFactory,
) -> FileIngestionPipeline:
    knowledge_store = KnowledgeStoreProvisioner(records, credentials, client_factory)
    return FileIngestionPipeline(
        records,
        credentials,
        knowledge_store,
        client_factory,
        FileResolver(config.upload_root),
        allowed_extensions=config.allowed_extensions,
        max_file_size=config.max_file_size,
    )


def get_configuration_service(
    records: BaseRecordRepository,
    codec: SecretCodec,
    validator: ApiKeyValidator,
    credentials: CredentialResolver,
    client_factory: OpenAIClientFactory,
) -> ConfigurationService:
    cascade = CascadeDeleter(records, credentials, client_factory)
    return ConfigurationService(records, codec, validator, credentials, cascade)


def get_assistant_service(
    records: BaseRecordRepository, credentials: CredentialResolver, client_factory: OpenAIClientFactory
) -> AssistantService:
    provisioner = AssistantProvisioner(records, credentials, client_factory)
    return AssistantService(records, provisioner, credentials, client_factory)


def get_file_service(
    config: ServiceConfig,
    records: BaseRecordRepository,
    credentials: CredentialResolver,
    client_factory: OpenAIClientFactory,
) -> FileService:
    pipeline = get_file_pipeline(config, records, credentials, client_factory)
    cache = IdempotencyCache(ttl_seconds=config.idempotency_ttl)
    return FileService(records, pipeline, credentials, client_factory, cache)
