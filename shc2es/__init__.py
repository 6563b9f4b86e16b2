"""
shc2es Python package.

This package ingests Bosch Smart Home Controller event logs (daily NDJSON
files) into Elasticsearch for Kibana visualization. See README.md for usage.
"""

from .__version__ import __version__

__all__ = ["__version__"]
