from .contract_config import ContractConfig

__all__ = ["ContractConfig"]
