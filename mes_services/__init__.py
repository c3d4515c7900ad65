"""
mes_services -- stateful orchestration over the StockStore port.

- StockLedger: receipts, direct consumption, adjustments, batch queries
- ConsumptionService: FIFO consumption with the allow-negative policy
- BomResolver: BOM resolution, explosion and availability
- BomDeductionOrchestrator: per-production BOM deduction
- DeductionRollback: exact reversal of a lot's deductions
- GenealogyTracer: forward/backward lot genealogy
- ProductionService: production lot lifecycle
"""

from mes_services.bom_service import BomResolver
from mes_services.consumption_service import ConsumptionService
from mes_services.deduction_orchestrator import BomDeductionOrchestrator
from mes_services.deduction_rollback import DeductionRollback
from mes_services.genealogy_service import GenealogyTracer
from mes_services.production_service import ProductionService
from mes_services.stock_ledger import StockLedger

__all__ = [
    "BomDeductionOrchestrator",
    "BomResolver",
    "ConsumptionService",
    "DeductionRollback",
    "GenealogyTracer",
    "ProductionService",
    "StockLedger",
]
