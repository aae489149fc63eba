"""Utility modules for the quote pipeline."""

from utils.stage_logger import (
    log_pipeline_start,
    log_pipeline_complete,
    log_pipeline_clarification,
    log_pipeline_failed,
    log_stage_start,
    log_stage_output,
    log_stage_error,
)
from utils.similarity import levenshtein_distance, similarity, best_match

__all__ = [
    "log_pipeline_start",
    "log_pipeline_complete",
    "log_pipeline_clarification",
    "log_pipeline_failed",
    "log_stage_start",
    "log_stage_output",
    "log_stage_error",
    "levenshtein_distance",
    "similarity",
    "best_match",
]
