"""Comparison policies - path globs mapped to header rules."""

from .matcher import EffectivePolicy, PathPolicy, PolicyMatcher, default_policies

__all__ = ["EffectivePolicy", "PathPolicy", "PolicyMatcher", "default_policies"]
