#!/usr/bin/env python3
"""Demo script to run sample requests through the quote pipeline locally.

This script:
1. Builds a pipeline from the chosen preset (mock, development or production)
2. Runs each sample utterance through it
3. Prints the priced quote or the clarification questions
4. Saves every response to demo_output.json

Usage:
    cd functions
    python demo_pipeline.py [mock|development|production] ["custom message"]
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, Any, List

import structlog

from pipeline.factory import PipelineFactory
from pipeline.orchestrator import PipelineOrchestrator
from pipeline.stages.calculator import format_pricing_result
from models.pipeline_result import PricingResult

# Configure logging
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer()
    ]
)
logger = structlog.get_logger()

SAMPLE_UTTERANCES = [
    "45 sq ft triple ground mulch and 3 feet metal edging",
    "100 square feet of mulch",
    "bark chips for 12 by 8 area",
    "irrigation with 4 turf zones, no boring needed",
    "0 square feet of mulch",
    "",
]

PRESETS = {
    "mock": PipelineFactory.create_mock,
    "development": PipelineFactory.create_development,
    "production": PipelineFactory.create_production,
}


def build_pipeline(preset: str) -> PipelineOrchestrator:
    if preset not in PRESETS:
        print(f"Unknown preset '{preset}'. Choose one of: {', '.join(PRESETS)}")
        sys.exit(1)
    return PRESETS[preset]()


def print_result(text: str, result) -> None:
    print("\n" + "-" * 60)
    print(f"INPUT: \"{text}\"")
    print("-" * 60)

    if result.final_result is not None:
        pricing = PricingResult(
            services=result.final_result.services,
            totals=result.final_result.totals,
        )
        print(format_pricing_result(pricing))
        for service in result.unmapped_services:
            print(f"  (not priced: {service.name})")
    elif result.error:
        print(f"ERROR [{result.error_info.code}] at {result.error_info.stage}: {result.error}")
    else:
        print("CLARIFICATION NEEDED:")
        for question in result.clarification_questions:
            print(f"  - {question}")

    print(f"state={result.state} trace={[entry.step for entry in result.debug.trace]}")


async def run_demo_pipeline(preset: str, utterances: List[str]) -> List[Dict[str, Any]]:
    """Run every utterance and collect the responses."""
    print("\n" + "=" * 80)
    print(f"Landscaping Quote Pipeline - Demo Run ({preset})")
    print("=" * 80)

    pipeline = build_pipeline(preset)
    responses = []
    for text in utterances:
        result = await pipeline.process(text)
        print_result(text, result)
        responses.append({"input": text, "response": result.to_response()})

    health = await pipeline.health_check()
    print(f"\nHealth check: {health}")
    return responses


if __name__ == "__main__":
    preset = sys.argv[1] if len(sys.argv) > 1 else "mock"
    utterances = sys.argv[2:] or SAMPLE_UTTERANCES

    responses = asyncio.run(run_demo_pipeline(preset, utterances))

    output_path = Path(__file__).parent / "demo_output.json"
    with open(output_path, "w") as f:
        json.dump(responses, f, indent=2, default=str)
    print(f"\nOutput saved to: {output_path}")
