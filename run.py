"""
Entry point: run every configured agent once over published articles.

Agents come from the ``agents`` section of ``config/settings.yaml``.
Fresh suggestions are saved and passed through the workflow rules.

Usage::

    python run.py
"""

import asyncio
import logging

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run")


async def main() -> None:
    from copilot.agents import AgentRegistry
    from copilot.config import get_settings, validate_env
    from copilot.database import get_db
    from copilot.logging import init_logger
    from copilot.pipeline import ContentPipeline
    from copilot.tools import AIClient
    from copilot.workflows import WorkflowEngine

    validate_env(strict=True)
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)

    db = await get_db()
    activity = init_logger(log_dir=settings.log_dir, db=db)
    ai_client = AIClient()

    registry = AgentRegistry(
        ai_analyzer=ai_client.perform_ai_analysis,
        defaults=settings.agent_defaults,
    )
    for spec in settings.agents:
        registry.create_agent(spec.name, spec.type, spec.config)

    if not registry.all_agents():
        logger.warning("No agents configured; add some under 'agents' in settings.yaml")
        return

    engine = WorkflowEngine(db, honor_action_delays=settings.honor_action_delays)
    pipeline = ContentPipeline(db, registry, engine=engine, settings=settings)

    try:
        results = await pipeline.run_agents()
    finally:
        await activity.flush()

    for result in results:
        if result.success:
            logger.info(
                "%s: %d suggestion(s), %d workflow execution(s)%s in %.2fs",
                result.agent_name,
                result.suggestion_count,
                len(result.executions),
                " (cached)" if result.cached else "",
                result.execution_time,
            )
        else:
            logger.error("%s failed: %s", result.agent_name, result.error)
    logger.info("AI token usage: %s", ai_client.get_usage())


if __name__ == "__main__":
    asyncio.run(main())
