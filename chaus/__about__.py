__version__ = "0.9.0"
__description__ = "chaus : declarative schema to REST mapping for document stores"
