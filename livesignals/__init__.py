"""
LiveSignals - feed ingestion with cascading AI summarization.
"""

__version__ = "1.0.0"
