"""Shared CLI utilities."""

import structlog
from rich.console import Console

console = Console()
logger = structlog.get_logger()


def get_components(config_model=None, use_llm: bool = True) -> dict:
    """Build the component graph from config.

    Args:
        config_model: Loaded TaskweaveConfig; loaded from disk when None.
        use_llm: False skips the extractor and embedder (offline commands).
    """
    from cli.config import load_config_model
    from cli.retry import retry_from_config
    from llm.embeddings import create_embedder
    from llm.extraction import EntityExtractor
    from llm.factory import create_extraction_provider
    from llm.base import LLMError
    from memory import MemoryStore
    from patterns import PatternLearner
    from reconcile import EntityResolver, SyncOptions, SyncOrchestrator
    from records import SQLiteRecordStore

    config = config_model or load_config_model()
    paths = config.paths
    retry_policy = retry_from_config(config.to_dict())

    extractor = None
    embedder = None
    if use_llm and config.llm.enabled:
        try:
            provider = create_extraction_provider(
                provider=config.llm.provider,
                api_key=config.llm.api_key or None,
                model=config.llm.model,
                timeout=config.llm.timeout,
            )
            extractor = EntityExtractor(provider, retry_policy=retry_policy)
        except LLMError as e:
            logger.info("llm_extraction_disabled", reason=str(e))
        embedder = create_embedder(
            api_key=config.llm.embedding_api_key or None, model=config.llm.embedding_model
        )

    records = SQLiteRecordStore(paths.records_db)
    memory = MemoryStore(
        paths.memory_db,
        chroma_dir=paths.chroma_dir if config.memory.use_chroma else None,
        embedder=embedder,
        hot_threshold=config.memory.hot_threshold,
        hot_capacity=config.memory.hot_capacity,
        retry_policy=retry_policy,
    )
    learner = PatternLearner(paths.patterns_db, memory=memory) if config.patterns.enabled else None

    resolver = EntityResolver(
        records,
        extractor=extractor,
        memory=memory,
        fuzzy_threshold=config.resolver.fuzzy_threshold,
        task_threshold=config.resolver.task_threshold,
        semantic_floor=config.resolver.semantic_floor,
    )
    sync_cfg = config.sync
    orchestrator = SyncOrchestrator(
        records,
        resolver,
        memory=memory,
        learner=learner,
        extractor=extractor,
        options=SyncOptions(
            max_items=sync_cfg.max_items,
            lookback_days=sync_cfg.lookback_days,
            auto_apply=sync_cfg.auto_apply,
            auto_apply_threshold=sync_cfg.auto_apply_threshold,
            max_concurrency=sync_cfg.max_concurrency,
            success_threshold=sync_cfg.success_threshold,
            pattern_similarity=config.patterns.match_similarity,
        ),
    )

    return {
        "config": config,
        "records": records,
        "memory": memory,
        "learner": learner,
        "resolver": resolver,
        "orchestrator": orchestrator,
    }
