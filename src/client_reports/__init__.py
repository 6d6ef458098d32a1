"""Client Reports.

Retrieval, summarization and embedding of client email for report generation.
"""

__version__ = "0.1.0"
