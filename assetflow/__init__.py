"""
assetflow: declarative, task-dispatched asset loading with a
destroy-aware asset cache.
"""

__version__ = "0.1.0"
