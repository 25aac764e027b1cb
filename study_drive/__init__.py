"""Study Drive: per-user cloud drive service"""

__version__ = "1.0.0"
