"""ORM models for the MES kernel."""

from mes_kernel.models.material import Material, MaterialBatch
from mes_kernel.models.product import BomLine, Product
from mes_kernel.models.production_lot import LotMaterialLink, ProductionLot
from mes_kernel.models.sequence_counter import SequenceCounter

__all__ = [
    "Material",
    "MaterialBatch",
    "Product",
    "BomLine",
    "ProductionLot",
    "LotMaterialLink",
    "SequenceCounter",
]
