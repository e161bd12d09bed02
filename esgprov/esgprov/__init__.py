"""esgprov - Provenance engine for ESG disclosure reporting."""

__version__ = "0.1.0"
