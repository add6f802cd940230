# dlm_agent/__init__.py

"""
Docker log monitor agent: log ingestion, redaction and chunking.
"""

__version__ = "0.1.0"
