"""Text-to-quote pipeline.

This package contains:
- Stage interfaces (Detector, Checker, Mapper, Calculator)
- Real and mock stage implementations
- Orchestrator (stage sequencing, early return, debug trace)
- Factory (production, mock and hybrid presets)
"""

from pipeline.orchestrator import PipelineOrchestrator
from pipeline.factory import PipelineFactory, FactoryConfig, PipelineMode

__all__ = ["PipelineOrchestrator", "PipelineFactory", "FactoryConfig", "PipelineMode"]
