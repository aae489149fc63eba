"""Local cost table for offline and fallback pricing.

Per-canonical-name unit cost and labor hours per unit, mirroring the
pricing sheet. Unknown names fall back to DEFAULT_RATE so pricing degrades
gracefully instead of failing.
"""

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class CostRate:
    """Unit cost and labor hours per unit for one service."""

    unit_cost: float
    labor_hours_per_unit: float


DEFAULT_RATE = CostRate(unit_cost=10.00, labor_hours_per_unit=0.5)

LOCAL_COST_TABLE: Dict[str, CostRate] = {
    # Hardscape
    "Paver Patio (SQFT)": CostRate(15.75, 0.25),
    "3' Retaining wall (LNFT X SQFT)": CostRate(85.00, 1.5),
    "5' Retaining Wall (LNFTXSQFT)": CostRate(125.00, 2.0),
    "2' Garden Walls (LNFTXSQFT)": CostRate(45.00, 0.8),
    "Flag stone steppers": CostRate(35.00, 0.5),
    # Drainage
    "Dry Creek with plants (sqft)": CostRate(18.50, 0.35),
    "Buried Downspout (EACH)": CostRate(125.00, 2.0),
    "Drainage Burying (LNFT)": CostRate(15.00, 0.45),
    "EZ Flow French Drain (10' section)": CostRate(185.00, 2.0),
    "Flow Well Drainage- 4X4 (EACH)": CostRate(450.00, 4.0),
    # Structures
    "Outdoor Kitchen (LNFT)": CostRate(650.00, 6.0),
    "Intellishade Pergola (SQFT)": CostRate(95.00, 0.6),
    "Cedar Pergola (SQFT)": CostRate(55.00, 0.45),
    # Irrigation
    "Irrigation Set Up Cost": CostRate(350.00, 4.0),
    "Irrigation (per zone)": CostRate(225.00, 2.5),
    # Planting
    "Sod Install (1 pallatte-450sqft)": CostRate(285.00, 3.5),
    "Seed/Straw (SQFT)": CostRate(0.85, 0.02),
    "sod removal": CostRate(1.10, 0.03),
    # Edging
    "Stone Edgers Tumbled": CostRate(12.00, 0.80),
    "Metal Edging": CostRate(8.50, 0.75),
    "Spade Edging": CostRate(2.25, 0.25),
    # Materials
    "Triple Ground Mulch (SQFT)": CostRate(1.25, 0.05),
    "Iowa Rainbow Rock Bed (sqft)": CostRate(2.50, 0.08),
    "Topsoil (CUYD)": CostRate(45.00, 0.75),
    # Plants and trees
    "Annuals 4\" (1 per sq ft)": CostRate(4.50, 0.1),
    "Annuals 10\"": CostRate(18.00, 0.25),
    "Perennial (1 gal)": CostRate(22.00, 0.3),
    "Medium Shrub (2-3 gal)": CostRate(45.00, 0.5),
    "Large Shrub (5-10 gal)": CostRate(85.00, 1.0),
    "Small Tree (<2in Caliper)": CostRate(125.00, 1.5),
    "Medium Tree (2.25-4in Caliper)": CostRate(285.00, 2.5),
    "Large Tree (4.25-8in Caliper)": CostRate(485.00, 4.0),
}


def get_cost_rate(canonical_name: str, table: Dict[str, CostRate] = None) -> Tuple[CostRate, bool]:
    """Return (rate, is_default) for a canonical name."""
    rates = LOCAL_COST_TABLE if table is None else table
    rate = rates.get(canonical_name)
    if rate is None:
        return DEFAULT_RATE, True
    return rate, False
