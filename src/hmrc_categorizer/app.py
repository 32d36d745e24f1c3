import os

from hmrc_categorizer.classifiers.llm import OpenAIClassifier
from hmrc_categorizer.classifiers.memory import UserLearningStore
from hmrc_categorizer.core import settings
from hmrc_categorizer.logger import get_logger, setup_logging
from hmrc_categorizer.manager import HMRCCategorizer
from hmrc_categorizer.services.categorization import BatchCategorizer, ResponseCache

logger = get_logger(__name__)

LEARNING_FILENAME = "user_learning.json"
LOG_FILENAME = "categorizer.log"


def create_categorizer(data_dir: str | None = None, configure_logging: bool = True) -> BatchCategorizer:
    """Wire the engine, learning store and optional AI classifier from the environment."""
    if configure_logging:
        log_file = os.path.join(settings.LOG_DIR, LOG_FILENAME) if settings.LOG_DIR else None
        setup_logging(log_file=log_file)
    logger.info("Initializing categorizer...")
    settings.log_environment()

    data_dir = data_dir or settings.DATA_DIR
    settings.ensure_dir(data_dir)
    batch_settings = settings.load_batch_settings()

    store = UserLearningStore(data_path=os.path.join(data_dir, LEARNING_FILENAME))
    categorizer = HMRCCategorizer(
        learning_store=store,
        manual_review_threshold=batch_settings.manual_review_threshold,
    )

    ai_classifier = None
    api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        model = os.getenv("OPENAI_MODEL") or settings.DEFAULT_OPENAI_MODEL
        base_url = os.getenv("OPENAI_BASE_URL")
        ai_classifier = OpenAIClassifier(api_key=api_key, model=model, base_url=base_url)
        logger.info("AI classifier enabled: model=%s, base_url=%s", model, base_url or "default")
    else:
        logger.info("OPENAI_API_KEY not set. AI classifier disabled; rules only.")

    batch = BatchCategorizer(
        categorizer=categorizer,
        ai_classifier=ai_classifier,
        cache=ResponseCache(),
        settings=batch_settings,
    )
    logger.info("Categorizer initialized.")
    return batch
