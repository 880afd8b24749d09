"""Filecoin warm-storage workflow and on-chain review reads for the reputation dApp backend."""

__version__ = "0.1.0"
