"""
MES Kernel

Stock ledger persistence and domain core for the factory execution tracker:
- Material batches with FIFO receipt ordering
- Production lots and their consumption links
- Date-scoped lot numbering
- A storage port with SQLAlchemy and in-memory adapters
"""

__version__ = "0.1.0"
