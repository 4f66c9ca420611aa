"""tokenfolio — price and FX resolution engine for on-chain portfolio valuation."""

__version__ = "0.1.0"
