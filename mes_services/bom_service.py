"""
mes_services.bom_service -- BOM resolution, multi-level explosion and availability check.

Responsibility:
    Turn a product, an optional process step and a production quantity
    into per-material requirements.  Single-level resolution feeds the
    deduction orchestrator; multi-level explosion walks PRODUCT lines down
    to raw materials; the availability check compares requirements with
    stock on hand.

Architecture position:
    Services -- read-only over the StockStore; scaling is done by
    ``mes_engines.bom``.

Invariants enforced:
    - Process codes are compared upper-case.
    - Explosion is depth-bounded by an explicit worklist, so a cyclic BOM
      (A contains B contains A) terminates.

Failure modes:
    - ProductNotFoundError for an unknown product.
    - InvalidQuantityError for a negative production quantity.
"""

from __future__ import annotations

from collections import deque
from decimal import Decimal

from mes_config import get_active_config
from mes_config.schema import EngineSettings
from mes_engines.bom import merge_requirements, scale_requirements
from mes_kernel.domain.dtos import (
    ZERO,
    AvailabilityLine,
    AvailabilityReport,
    MaterialRequirement,
)
from mes_kernel.domain.records import BomItemType, BomLineRecord, MaterialRecord
from mes_kernel.exceptions import InvalidQuantityError, ProductNotFoundError
from mes_kernel.logging_config import get_logger
from mes_kernel.storage.port import StockStore

logger = get_logger("services.bom")


class BomResolver:
    """Resolves BOM lines into material requirements."""

    def __init__(self, store: StockStore, settings: EngineSettings | None = None):
        self._store = store
        self._settings = settings or get_active_config()

    def _check_inputs(self, product_id: int, production_qty: Decimal) -> None:
        if production_qty < 0:
            raise InvalidQuantityError(production_qty)
        if self._store.get_product(product_id) is None:
            raise ProductNotFoundError(product_id)

    def _materials_for(self, lines: list[BomLineRecord]) -> dict[int, MaterialRecord]:
        materials: dict[int, MaterialRecord] = {}
        for line in lines:
            if line.material_id is None or line.material_id in materials:
                continue
            material = self._store.get_material(line.material_id)
            if material is not None:
                materials[material.id] = material
        return materials

    def resolve_bom(
        self,
        product_id: int,
        process_code: str | None,
        production_qty: Decimal,
    ) -> list[MaterialRequirement]:
        """
        Requirements of the product's MATERIAL lines for one process step.

        Args:
            process_code: Step to scope to; None resolves every step.

        Returns:
            One requirement per MATERIAL line, ``quantity_per_unit *
            production_qty``.  Empty when the product has no such lines.
        """
        self._check_inputs(product_id, production_qty)
        lines = [
            line
            for line in self._store.bom_lines(product_id, process_code)
            if line.item_type == BomItemType.MATERIAL and line.material_id is not None
        ]
        requirements = scale_requirements(
            product_id=product_id,
            lines=lines,
            materials=self._materials_for(lines),
            production_qty=production_qty,
        )
        logger.debug(
            "bom_resolved",
            extra={
                "product_id": product_id,
                "process_code": process_code,
                "production_qty": production_qty,
                "requirement_count": len(requirements),
            },
        )
        return requirements

    def explode_bom(
        self,
        product_id: int,
        production_qty: Decimal,
        max_depth: int | None = None,
    ) -> list[MaterialRequirement]:
        """
        Raw-material requirements through every BOM level, summed per material.

        PRODUCT lines multiply down into the child product's BOM.  Child
        products deeper than ``max_depth`` levels are not expanded.
        """
        self._check_inputs(product_id, production_qty)
        limit = self._settings.max_bom_depth if max_depth is None else max_depth

        collected: list[MaterialRequirement] = []
        # (product, multiplier per top-level unit, level)
        worklist: deque[tuple[int, Decimal, int]] = deque([(product_id, Decimal("1"), 1)])
        while worklist:
            current, per_unit, level = worklist.popleft()
            lines = self._store.bom_lines(current)
            for line in lines:
                if line.item_type == BomItemType.PRODUCT and line.child_product_id is not None:
                    if level >= limit:
                        logger.warning(
                            "bom_explosion_depth_reached",
                            extra={
                                "product_id": product_id,
                                "child_product_id": line.child_product_id,
                                "max_depth": limit,
                            },
                        )
                        continue
                    worklist.append(
                        (line.child_product_id, per_unit * line.quantity_per_unit, level + 1)
                    )
            material_lines = [
                line
                for line in lines
                if line.item_type == BomItemType.MATERIAL and line.material_id is not None
            ]
            for req in scale_requirements(
                product_id=current,
                lines=material_lines,
                materials=self._materials_for(material_lines),
                production_qty=per_unit,
            ):
                # req.required_qty is the need per top-level unit here
                collected.append(
                    MaterialRequirement(
                        material_id=req.material_id,
                        material_code=req.material_code,
                        material_name=req.material_name,
                        quantity_per_unit=req.required_qty,
                        required_qty=req.required_qty * production_qty,
                        unit=req.unit,
                        process_code=req.process_code,
                    )
                )
        return merge_requirements(collected)

    def check_availability(
        self,
        product_id: int,
        process_code: str | None,
        production_qty: Decimal,
    ) -> AvailabilityReport:
        """Compare each requirement with total available stock of the material."""
        lines: list[AvailabilityLine] = []
        for req in self.resolve_bom(product_id, process_code, production_qty):
            available = sum(
                (b.available for b in self._store.batches_for_material(req.material_id)),
                ZERO,
            )
            lines.append(
                AvailabilityLine(
                    material_id=req.material_id,
                    material_code=req.material_code,
                    material_name=req.material_name,
                    required_qty=req.required_qty,
                    available_qty=available,
                )
            )
        return AvailabilityReport(
            product_id=product_id,
            process_code=process_code,
            production_qty=production_qty,
            lines=tuple(lines),
        )
