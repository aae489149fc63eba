"""Stage Output Logger for the quote pipeline.

Prints banner-framed summaries of each pipeline stage so a developer can
follow a request through detection, checking, mapping and pricing in a
noisy console. Every banner is paired with a structured log event.
"""

import json
import structlog
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone

logger = structlog.get_logger()

# Visual markers for different log types
BANNER_WIDTH = 80
STAGE_BANNER_CHAR = "═"
CLARIFY_BANNER_CHAR = "░"
PIPELINE_BANNER_CHAR = "█"


def _create_banner(char: str, text: str, width: int = BANNER_WIDTH) -> str:
    """Create a centered banner with given character."""
    text_with_spaces = f" {text} "
    padding = (width - len(text_with_spaces)) // 2
    return char * padding + text_with_spaces + char * (width - padding - len(text_with_spaces))


def _format_json(data: Dict[str, Any], indent: int = 2) -> str:
    """Format dictionary as pretty JSON string."""
    try:
        return json.dumps(data, indent=indent, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(data)


def _truncate_large_values(data: Dict[str, Any], max_length: int = 500) -> Dict[str, Any]:
    """Truncate long strings and lists for display purposes."""
    if not isinstance(data, dict):
        return data

    result = {}
    for key, value in data.items():
        if isinstance(value, str) and len(value) > max_length:
            result[key] = value[:max_length] + f"... [truncated {len(value) - max_length} chars]"
        elif isinstance(value, dict):
            result[key] = _truncate_large_values(value, max_length)
        elif isinstance(value, list) and len(value) > 10:
            result[key] = value[:10] + [f"... and {len(value) - 10} more items"]
        else:
            result[key] = value
    return result


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_pipeline_start(run_id: str, text: str, stages: List[str]) -> None:
    """Log pipeline start with prominent banner."""
    preview = text[:60] + "..." if len(text) > 60 else text

    print("\n")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(PIPELINE_BANNER_CHAR, "QUOTE PIPELINE STARTED"))
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(f"║ Run ID      : {run_id}")
    print(f"║ Timestamp   : {_timestamp()}")
    print(f"║ Input       : \"{preview}\"")
    print(f"║ Stages      : {' -> '.join(stages)}")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info("pipeline_start_logged", run_id=run_id, input_length=len(text))


def log_pipeline_complete(
    run_id: str,
    completed_stages: List[str],
    duration_ms: float,
    total_cost: float,
    service_count: int
) -> None:
    """Log pipeline completion with the quote summary."""
    print("\n")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(PIPELINE_BANNER_CHAR, "✓ QUOTE PRICED"))
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(f"║ Run ID           : {run_id}")
    print(f"║ Timestamp        : {_timestamp()}")
    print(f"║ Duration         : {duration_ms:,.1f} ms")
    print(f"║ Services         : {service_count}")
    print(f"║ Total Cost       : ${total_cost:,.2f}")
    print(f"║ Completed Stages : {', '.join(completed_stages)}")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info(
        "pipeline_complete_logged",
        run_id=run_id,
        duration_ms=duration_ms,
        total_cost=total_cost,
        service_count=service_count
    )


def log_pipeline_clarification(run_id: str, reason: str, questions: List[str]) -> None:
    """Log an early return that asks the customer for more information."""
    print("\n")
    print(CLARIFY_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(CLARIFY_BANNER_CHAR, "? CLARIFICATION NEEDED"))
    print(CLARIFY_BANNER_CHAR * BANNER_WIDTH)
    print(f"░ Run ID       : {run_id}")
    print(f"░ Reason       : {reason}")
    print(CLARIFY_BANNER_CHAR * BANNER_WIDTH)
    if questions:
        print("░ QUESTIONS:")
        for question in questions:
            print(f"░   → {question}")
        print(CLARIFY_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info(
        "pipeline_clarification_logged",
        run_id=run_id,
        reason=reason,
        question_count=len(questions)
    )


def log_pipeline_failed(
    run_id: str,
    failed_stage: str,
    error: str,
    completed_stages: List[str]
) -> None:
    """Log pipeline failure with details."""
    print("\n")
    print("!" * BANNER_WIDTH)
    print(_create_banner("!", "✗ PIPELINE FAILED"))
    print("!" * BANNER_WIDTH)
    print(f"║ Run ID           : {run_id}")
    print(f"║ Timestamp        : {_timestamp()}")
    print(f"║ Failed Stage     : {failed_stage}")
    print(f"║ Error            : {error}")
    print(f"║ Completed Before : {', '.join(completed_stages) if completed_stages else 'None'}")
    print("!" * BANNER_WIDTH)
    print("\n")

    logger.error(
        "pipeline_failed_logged",
        run_id=run_id,
        failed_stage=failed_stage,
        error=error
    )


def log_stage_start(stage: str, run_id: str, input_count: Optional[int] = None) -> None:
    """Log when a stage starts processing."""
    print(STAGE_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(STAGE_BANNER_CHAR, f"▶ STAGE: {stage.upper()}"))
    print(f"║ Run ID       : {run_id}")
    if input_count is not None:
        print(f"║ Input Items  : {input_count}")
    print(STAGE_BANNER_CHAR * BANNER_WIDTH)

    logger.info("stage_start_logged", stage=stage, run_id=run_id, input_count=input_count)


def log_stage_output(
    stage: str,
    run_id: str,
    output: Optional[Dict[str, Any]],
    duration_ms: float = 0.0,
    warnings: Optional[List[str]] = None,
    truncate: bool = True
) -> None:
    """Log a stage's intermediate output."""
    output = output or {}
    display_output = _truncate_large_values(output) if truncate else output
    formatted_output = _format_json(display_output)

    print("\n")
    print(STAGE_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(STAGE_BANNER_CHAR, f"✓ STAGE OUTPUT: {stage.upper()}"))
    print(STAGE_BANNER_CHAR * BANNER_WIDTH)
    print(f"║ Run ID       : {run_id}")
    print(f"║ Duration     : {duration_ms:,.3f} ms")
    print(STAGE_BANNER_CHAR * BANNER_WIDTH)
    print("║ OUTPUT DATA:")
    print(STAGE_BANNER_CHAR * BANNER_WIDTH)

    for line in formatted_output.split('\n'):
        print(f"  {line}")

    if warnings:
        print(STAGE_BANNER_CHAR * BANNER_WIDTH)
        print("║ WARNINGS:")
        for warning in warnings:
            print(f"║   ! {warning}")

    print(STAGE_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info(
        "stage_output_logged",
        stage=stage,
        run_id=run_id,
        duration_ms=duration_ms,
        output_keys=list(output.keys()),
        warning_count=len(warnings or [])
    )


def log_stage_error(stage: str, run_id: str, error: str, code: Optional[str] = None) -> None:
    """Log a stage error."""
    print("\n")
    print("!" * BANNER_WIDTH)
    print(_create_banner("!", f"✗ STAGE ERROR: {stage.upper()}"))
    print("!" * BANNER_WIDTH)
    print(f"! Run ID       : {run_id}")
    print(f"! Code         : {code or 'N/A'}")
    print(f"! Error        : {error}")
    print("!" * BANNER_WIDTH)
    print("\n")

    logger.error("stage_error_logged", stage=stage, run_id=run_id, error=error, code=code)
