"""
Streaming backup and restore of search cluster documents.

- export: scroll documents out of a cluster into NDJSON on stdout
- import: bulk index NDJSON from stdin into a cluster
"""

__version__ = "0.1.0"
