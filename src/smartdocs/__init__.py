"""
SmartDocs: legal document filling engine.

Extracts fillable placeholders from legal documents, suggests values from a
knowledge graph of previously seen company data, detects cross-document
conflicts and scores document readiness.
"""

__version__ = "0.1.0"
