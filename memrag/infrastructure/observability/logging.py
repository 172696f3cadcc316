import logging
import sys
from typing import Any, Dict, Iterable, Optional

import structlog


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "memrag-agent"
) -> None:
    """Route structlog through stdlib logging on stderr.

    The chat transcript owns stdout, so log lines are kept off it. ``log_format``
    is ``json`` for machine-readable lines or anything else for the console renderer.
    """

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)

    # Quiet the HTTP client chatter from the provider SDK
    for noisy in ("httpx", "openai", "httpcore"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

    renderer = structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            drop_empty_fields,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def drop_empty_fields(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Remove None-valued keys so optional event fields stay out of the output"""
    return {key: value for key, value in event_dict.items() if value is not None}


class AgentLogger:
    """Structured events for graph progress, phase changes and memory writes"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def node_completed(self, node: str, iteration: int, keys: Iterable[str] = ()):
        self.logger.debug("node_completed", node=node, iteration=iteration, keys=sorted(keys))

    def phase_changed(
        self,
        from_phase: str,
        to_phase: str,
        reason: str,
        question_count: Optional[int] = None,
    ):
        """Record a triage phase change and what caused it"""

        self.logger.info(
            "phase_changed",
            from_phase=from_phase,
            to_phase=to_phase,
            reason=reason,
            question_count=question_count,
        )

    def memory_recorded(self, memory_id: int, importance: float, kind: Optional[str] = None, phase: Optional[str] = None):
        self.logger.info("memory_recorded", memory_id=memory_id, importance=importance, kind=kind, phase=phase)


agent_logger = AgentLogger("memrag.agent")
