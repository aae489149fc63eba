"""Line-item composition rules shared by the mapper and the calculator.

- Consolidation: services resolving to the same lookup key become one line.
- Companions: a service whose catalog entry names a mandatory companion
  (irrigation zones need the irrigation setup) gets that companion prepended
  with quantity 1. Both rules are idempotent.
"""

from typing import Dict, List, Tuple

import structlog

from models.services import MappedService
from services.service_catalog import ServiceCatalog

logger = structlog.get_logger(__name__)

COMPOSED_MATCH_TYPE = "composed"


def consolidate_services(services: List[MappedService]) -> Tuple[List[MappedService], List[str]]:
    """Merge mapped services that share a lookup key, keeping first-seen order."""
    merged: Dict[str, MappedService] = {}
    warnings: List[str] = []

    for service in services:
        key = service.lookup_key
        if key not in merged:
            merged[key] = service
            continue

        existing = merged[key]
        if existing.unit and service.unit and existing.unit != service.unit:
            warnings.append(
                f"Merged '{existing.canonical_name}' lines with different units "
                f"({existing.unit}, {service.unit})"
            )
        else:
            warnings.append(f"Merged duplicate '{existing.canonical_name}' lines")

        merged[key] = existing.model_copy(update={
            "quantity": existing.quantity + service.quantity,
            "unit": existing.unit or service.unit,
            "confidence": min(existing.confidence, service.confidence),
            "mapping_confidence": min(existing.mapping_confidence, service.mapping_confidence),
            "original_text": "; ".join(
                text for text in (existing.original_text, service.original_text) if text
            ),
            "attributes": {**service.attributes, **existing.attributes},
            "unit_compatible": existing.unit_compatible and service.unit_compatible,
        })

    return list(merged.values()), warnings


def ensure_companions(
    services: List[MappedService],
    catalog: ServiceCatalog,
    confidence: float = 0.9
) -> Tuple[List[MappedService], List[str]]:
    """Prepend missing mandatory companion services (quantity 1)."""
    present = {service.canonical_name for service in services}
    added: List[MappedService] = []
    warnings: List[str] = []

    for service in services:
        entry = catalog.get(service.canonical_name) if service.canonical_name else None
        companion = catalog.companion_for(entry) if entry else None
        if companion is None or companion.canonical_name in present:
            continue

        present.add(companion.canonical_name)
        added.append(MappedService(
            name=companion.canonical_name,
            quantity=1.0,
            unit=companion.unit,
            confidence=confidence,
            original_text=f"Auto-added with {entry.canonical_name}",
            category_hint=companion.category,
            attributes=dict(service.attributes),
            is_complete=True,
            canonical_name=companion.canonical_name,
            lookup_key=companion.lookup_key,
            category=companion.category,
            is_special=companion.is_special,
            match_type=COMPOSED_MATCH_TYPE,
            mapping_confidence=confidence,
        ))
        warnings.append(
            f"{entry.canonical_name} detected without {companion.canonical_name}; "
            f"it will be added automatically"
        )
        logger.info(
            "companion_service_added",
            service=entry.canonical_name,
            companion=companion.canonical_name,
        )

    return added + services, warnings
