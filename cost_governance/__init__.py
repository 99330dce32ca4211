"""Cost governance for a paid AI model: FX-converted pricing and weekly quotas."""

__version__ = "1.0.0"
