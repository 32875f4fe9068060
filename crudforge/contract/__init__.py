"""Cross-target contract validation and export."""

from crudforge.contract.export import CONTRACT_VERSION, export_contract
from crudforge.contract.validator import ContractValidator, ValidationReport

__all__ = [
    "CONTRACT_VERSION",
    "ContractValidator",
    "ValidationReport",
    "export_contract",
]
