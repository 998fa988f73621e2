import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

from flask import current_app, has_app_context

from app.services.ai.moderation_scorer import ModerationScorer
from app.services.ai.openai_client import OpenAIClient
from app.utils.time_utils import resolve_time_range

from .content_store import content_store
from .database_service import db_service
from .error_tracker import error_tracker
from .moderation import image_classifier as image_module
from .moderation import quality_analyzer as quality_module
from .moderation import rule_engine as rule_module
from .moderation import text_classifier as text_module
from .moderation.errors import PipelineError
from .moderation.image_classifier import ImageClassifier
from .moderation.quality_analyzer import QualityAnalyzer
from .moderation.results import (ContentToModerate, ModerationResult,
                                 PartialResult, Severity, combine)
from .moderation.rule_engine import RuleEngine
from .moderation.text_classifier import TextClassifier
from .review_queue import review_queue

logger = logging.getLogger(__name__)

HIGH_RISK_USER_THRESHOLD = 0.7
NEW_USER_RISK_SCORE = 0.1
HISTORY_DAYS = 30

PIPELINE_ERROR_FLAG = 'moderation_error'
PIPELINE_ERROR_REASON = 'Moderation system error - requires manual review'


def apply_final_decision(result):
    """Severity and confidence overrides applied after every signal is merged"""
    if result.severity == Severity.CRITICAL:
        return replace(result, is_approved=False, requires_human_review=True)
    if result.severity == Severity.HIGH and result.confidence < 0.7:
        return replace(result, is_approved=False, requires_human_review=True)
    if result.severity == Severity.MEDIUM and result.confidence < 0.8:
        return replace(result, requires_human_review=True)
    return result


def user_risk_score(history):
    """0.6 x rejection rate + 0.4 x severe violation rate over the user's history"""
    total = history['total_content']
    if not total:
        return NEW_USER_RISK_SCORE

    rejection_rate = history['rejected_count'] / total
    severe_rate = history['severe_violations'] / total
    return min(1.0, rejection_rate * 0.6 + severe_rate * 0.4)


class ModerationOrchestrator:
    """Main coordinator for the content moderation workflow"""

    def __init__(self, text_classifier=None, image_classifier=None, quality_analyzer=None,
                 rule_engine=None, database=None, store=None, queue=None,
                 classifier_timeout=10.0, batch_size=10, batch_delay=0.1, classifier_workers=8):
        self.db = database or db_service
        self.text_classifier = text_classifier or TextClassifier()
        self.image_classifier = image_classifier or ImageClassifier()
        self.quality_analyzer = quality_analyzer or QualityAnalyzer(self.db)
        self.rule_engine = rule_engine or RuleEngine(database=self.db)
        self.store = store or content_store
        self.queue = queue or review_queue
        self.classifier_timeout = classifier_timeout
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        # Not the loop default executor: asyncio.run joins that one on shutdown
        self._executor = ThreadPoolExecutor(max_workers=classifier_workers,
                                            thread_name_prefix='classifier')

    @classmethod
    def from_config(cls, config, **overrides):
        """Build an orchestrator from Flask config; the AI scorer is used only with an OpenAI key"""
        ai_scorer = None
        if config.get('OPENAI_API_KEY'):
            ai_scorer = ModerationScorer(
                client_manager=OpenAIClient(config['OPENAI_API_KEY']),
                model=config.get('OPENAI_MODERATION_MODEL')
            )

        options = {
            'text_classifier': TextClassifier(ai_scorer=ai_scorer),
            'image_classifier': ImageClassifier(
                batch_size=config.get('IMAGE_BATCH_SIZE', 5),
                batch_delay=config.get('IMAGE_BATCH_DELAY', 0.2)
            ),
            'classifier_timeout': config.get('CLASSIFIER_TIMEOUT_SECONDS', 10.0),
            'classifier_workers': config.get('CLASSIFIER_THREAD_POOL_WORKERS', 8),
            'batch_size': config.get('MODERATION_BATCH_SIZE', 10),
            'batch_delay': config.get('MODERATION_BATCH_DELAY', 0.1),
        }
        options.update(overrides)
        return cls(**options)

    async def moderate_content(self, content):
        """
        Run every analyzer over one piece of content and act on the result.

        Args:
            content: ContentToModerate or a dict accepted by ContentToModerate.from_dict

        Returns:
            The final ModerationResult. Storage failures fail the run closed.
        """
        if isinstance(content, dict):
            content = ContentToModerate.from_dict(content)

        start_time = time.time()
        try:
            registered = await self.db.register_content(
                content.id, content.type.value, content.user_id,
                body=content.content, image_urls=list(content.image_urls),
                meta_data=content.metadata
            )
            if registered is None:
                raise PipelineError(f"Failed to register {content.type.value} {content.id}")

            result = await self._run_analyzers(content)
            result = await self._apply_user_risk(content.user_id, result)
            result = apply_final_decision(result)

            processing_time_ms = int((time.time() - start_time) * 1000)
            stored = await self.db.insert_moderation_result(
                content.id, content.type.value, content.user_id,
                result.to_dict(), processing_time_ms=processing_time_ms
            )
            if stored is None:
                raise PipelineError(f"Failed to persist result for {content.type.value} {content.id}")
        except PipelineError as e:
            logger.error(f"Moderation failed for {content.type.value} {content.id}: {str(e)}")
            error_tracker.track_error('pipeline', str(e), content_id=content.id)
            return ModerationResult.fail_closed(PIPELINE_ERROR_FLAG, PIPELINE_ERROR_REASON, str(e))

        await self._execute_auto_actions(content, result)

        if result.requires_human_review:
            await self._queue_for_review(content, result)

        logger.info(
            f"{content.type.value} {content.id}: "
            f"{'approved' if result.is_approved else 'rejected'} "
            f"severity={result.severity.value} review={result.requires_human_review} "
            f"in {time.time() - start_time:.2f}s")
        return result

    async def _run_analyzers(self, content):
        """Run analyzers concurrently, then merge in a fixed order"""
        tasks = []
        if content.content:
            tasks.append(('text', self._run_sync(self.text_classifier.classify, content.content),
                          text_module.fallback_result))
        for url in content.image_urls:
            tasks.append((f"image {url}", self._run_sync(self.image_classifier.classify, url),
                          lambda error, url=url: image_module.fallback_result(url, error)))
        tasks.append(('quality', self.quality_analyzer.analyze_content(content),
                      quality_module.fallback_result))
        tasks.append(('rules', self.rule_engine.apply_rules(content),
                      rule_module.fallback_result))

        outcomes = await asyncio.gather(
            *(asyncio.wait_for(awaitable, timeout=self.classifier_timeout) for _, awaitable, _ in tasks),
            return_exceptions=True
        )

        result = ModerationResult.identity()
        for (name, _, fallback), outcome in zip(tasks, outcomes):
            if isinstance(outcome, asyncio.TimeoutError):
                logger.error(f"{name} analyzer timed out after {self.classifier_timeout}s for {content.id}")
                error_tracker.track_error('classifier', 'timeout', content_id=content.id,
                                          details={'classifier': name})
                outcome = fallback(f"timed out after {self.classifier_timeout}s")
            elif isinstance(outcome, Exception):
                logger.error(f"{name} analyzer failed for {content.id}: {str(outcome)}")
                error_tracker.track_error('classifier', str(outcome), content_id=content.id,
                                          details={'classifier': name})
                outcome = fallback(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            result = combine(result, outcome)

        return result

    def _run_sync(self, func, *args):
        """Run a blocking analyzer on the orchestrator pool inside an app context"""
        loop = asyncio.get_running_loop()
        app = current_app._get_current_object() if has_app_context() else None

        def call():
            if app is None:
                return func(*args)
            with app.app_context():
                return func(*args)

        return loop.run_in_executor(self._executor, call)

    async def calculate_user_risk_score(self, user_id):
        history = await self.db.get_user_moderation_history(user_id, days=HISTORY_DAYS)
        if history is None:
            raise PipelineError(f"Moderation history unavailable for user {user_id}")
        return user_risk_score(history)

    async def _apply_user_risk(self, user_id, result):
        risk = await self.calculate_user_risk_score(user_id)
        partial = PartialResult(metadata={'user_risk_score': risk})
        if risk > HIGH_RISK_USER_THRESHOLD:
            partial.requires_human_review = True
            partial.reasons = ['High-risk user profile']
        return combine(result, partial)

    async def _execute_auto_actions(self, content, result):
        """Run each auto-action independently; failures are logged and skipped"""
        for action in result.auto_actions:
            try:
                if action == 'hide_content':
                    done = await self.store.hide_content(content.id, content.type.value)
                elif action == 'flag_user':
                    done = await self.store.flag_user(content.user_id)
                elif action == 'send_warning':
                    done = await self.store.warn_user(content.user_id)
                elif action == 'temporary_ban':
                    done = await self.store.temporary_ban(content.user_id, hours=24)
                else:
                    logger.warning(f"No handler for auto-action {action} on {content.id}")
                    continue

                if not done:
                    logger.warning(f"Auto-action {action} had no effect on {content.type.value} {content.id}")
            except Exception as e:
                logger.error(f"Auto-action {action} failed for {content.id}: {str(e)}")
                error_tracker.track_error('action', str(e), content_id=content.id, details={'action': action})

    async def _queue_for_review(self, content, result):
        try:
            await self.queue.add_to_queue(
                content.id, content.type.value, content.user_id,
                flags=result.flags,
                reasons=result.reasons,
                severity=result.severity,
                confidence=result.confidence
            )
        except PipelineError as e:
            logger.error(f"Could not queue {content.id} for review: {str(e)}")
            error_tracker.track_error('pipeline', str(e), content_id=content.id)

    async def bulk_moderate_content(self, contents):
        """Moderate contents in fixed-size batches; one failure never aborts a batch"""
        contents = [ContentToModerate.from_dict(c) if isinstance(c, dict) else c for c in contents]
        results = []

        for start in range(0, len(contents), self.batch_size):
            batch = contents[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.moderate_content(content) for content in batch),
                return_exceptions=True
            )

            for content, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"Bulk moderation error for {content.id}: {str(outcome)}")
                    error_tracker.track_error('pipeline', str(outcome), content_id=content.id)
                    outcome = ModerationResult.fail_closed(
                        'batch_error', 'Batch processing error', str(outcome))
                elif isinstance(outcome, BaseException):
                    raise outcome
                results.append({
                    'content_id': content.id,
                    'content_type': content.type.value,
                    'result': outcome
                })

            if start + self.batch_size < len(contents) and self.batch_delay:
                await asyncio.sleep(self.batch_delay)

        return results

    async def get_moderation_status(self, content_id, content_type):
        """Latest stored result for the content, or None"""
        return await self.db.get_latest_moderation_result(content_id, content_type)

    async def appeal_moderation_decision(self, content_id, content_type, user_id, reason):
        appeal = await self.db.create_appeal(content_id, content_type, user_id, reason)
        if appeal is None:
            raise PipelineError(f"Failed to store appeal for {content_type} {content_id}")
        logger.info(f"Appeal {appeal['id']} filed for {content_type} {content_id}")
        return appeal

    async def get_moderation_statistics(self, time_range='24h'):
        time_range, since = resolve_time_range(time_range)
        return {
            'time_range': time_range,
            'moderation': await self.db.get_moderation_statistics(since),
            'auto_moderation': await self.rule_engine.get_auto_moderation_stats(time_range),
        }


def get_orchestrator():
    """Orchestrator bound to the current app, built on first use"""
    orchestrator = current_app.extensions.get('moderation_orchestrator')
    if orchestrator is None:
        orchestrator = ModerationOrchestrator.from_config(current_app.config)
        current_app.extensions['moderation_orchestrator'] = orchestrator
    return orchestrator
