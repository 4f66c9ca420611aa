"""Ordered provider fallback with provenance tagging."""

from tokenfolio.resolver.chain import Failure, QuoteStrategy, Resolution, ResolverChain

__all__ = ["Failure", "QuoteStrategy", "Resolution", "ResolverChain"]
