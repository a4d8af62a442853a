"""Registration-record workflow service for civil registration (OpenCRVS)."""

__version__ = "0.1.0"
