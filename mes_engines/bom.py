"""
BOM scaling -- pure conversion of BOM lines into material requirements.

Responsibility:
    Multiply per-unit BOM quantities by a production quantity, and merge
    requirements of the same material (used by multi-level explosion).

Architecture position:
    Engines -- pure functional core.  Storage lookups are done by
    ``mes_services.bom_service.BomResolver``.

Invariants enforced:
    - Only MATERIAL lines with a material id produce requirements.
    - required_qty == quantity_per_unit * production_qty, exactly (Decimal).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal

from mes_engines.tracer import traced_engine
from mes_kernel.domain.dtos import MaterialRequirement
from mes_kernel.domain.records import BomItemType, BomLineRecord, MaterialRecord


@traced_engine(
    "bom_scaling",
    "1.0",
    fingerprint_fields=("product_id", "production_qty"),
)
def scale_requirements(
    *,
    product_id: int,
    lines: Sequence[BomLineRecord],
    materials: Mapping[int, MaterialRecord],
    production_qty: Decimal,
) -> list[MaterialRequirement]:
    """One requirement per MATERIAL line, in BOM line order.

    Lines whose material is missing from ``materials`` are skipped.
    """
    requirements: list[MaterialRequirement] = []
    for line in lines:
        if line.item_type != BomItemType.MATERIAL or line.material_id is None:
            continue
        material = materials.get(line.material_id)
        if material is None:
            continue
        requirements.append(
            MaterialRequirement(
                material_id=material.id,
                material_code=material.code,
                material_name=material.name,
                quantity_per_unit=line.quantity_per_unit,
                required_qty=line.quantity_per_unit * production_qty,
                unit=line.unit or material.unit,
                process_code=line.process_code,
            )
        )
    return requirements


def merge_requirements(
    requirements: Iterable[MaterialRequirement],
) -> list[MaterialRequirement]:
    """Sum required quantities per material, keeping first-seen order."""
    merged: dict[int, MaterialRequirement] = {}
    for req in requirements:
        prior = merged.get(req.material_id)
        if prior is None:
            merged[req.material_id] = req
            continue
        merged[req.material_id] = MaterialRequirement(
            material_id=prior.material_id,
            material_code=prior.material_code,
            material_name=prior.material_name,
            quantity_per_unit=prior.quantity_per_unit + req.quantity_per_unit,
            required_qty=prior.required_qty + req.required_qty,
            unit=prior.unit,
            process_code=None,
        )
    return list(merged.values())
