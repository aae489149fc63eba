"""Landscaping Quote Pipeline - Cloud Functions.

This package contains the Python functions that turn a free-form customer
message into a priced landscaping quote or a set of clarification questions.

Architecture:
- Service Catalog: canonical services, lookup keys, units and synonyms
- 4 Pipeline Stages: Detector, Checker, Mapper, Calculator
- 1 Orchestrator: Sequences the stages with early return and a debug trace
- 1 Factory: Builds production, mock and hybrid pipelines
"""

__version__ = "1.0.0"
