"""
backcompat - HTTP backward-compatibility testing.

Replays recorded requests against a new implementation of a service and
compares its responses with a live reference host or with the responses
stored next to each request in a version-tagged fixture corpus.
"""

__version__ = "0.3.0"
