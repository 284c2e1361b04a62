from cortex.models.models import Client, Contract, DfcCategory, DfcEntry

__all__ = ["Client", "Contract", "DfcCategory", "DfcEntry"]
