"""Pipeline stage implementations."""

from pipeline.stages.detector import Detector
from pipeline.stages.checker import Checker
from pipeline.stages.mapper import Mapper
from pipeline.stages.calculator import Calculator

__all__ = ["Detector", "Checker", "Mapper", "Calculator"]
