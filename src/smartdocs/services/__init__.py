"""
Business logic services for SmartDocs.

Import services from their modules, e.g.
``from smartdocs.services.knowledge_graph import KnowledgeGraphService``.
"""
