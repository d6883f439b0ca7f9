"""
Command-line interface for SmartDocs.
"""

import json
from pathlib import Path
from typing import Optional

import click
import structlog

from smartdocs.config import get_settings
from smartdocs.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def _agents():
    from smartdocs.services.agent_service import AgentService
    from smartdocs.services.task_executor import TaskExecutor
    from smartdocs.storage.store import get_store

    return AgentService(TaskExecutor(get_store()))


def _document_service():
    from smartdocs.services.document_service import DocumentService
    from smartdocs.storage.store import get_store

    return DocumentService(get_store(), _agents())


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """SmartDocs: legal document filling engine."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    settings = get_settings()
    configure_logging("DEBUG" if debug else settings.log_level, settings.log_json)


# =========================================================================
# Database Commands
# =========================================================================


@cli.command()
def init_db() -> None:
    """Create database tables."""
    from smartdocs.storage.store import get_store

    store = get_store()
    store.create_all()
    click.echo(f"Schema ready at {store.database_url}")


# =========================================================================
# Document Commands
# =========================================================================


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--user", "user_id", required=True, help="Owner of the document")
@click.option("--extract/--no-extract", default=True, help="Also extract placeholders")
def analyze(file_path: str, user_id: str, extract: bool) -> None:
    """Classify a document and extract its placeholders."""
    service = _document_service()
    path = Path(file_path)

    document = service.create_document(user_id, path.name, str(path))
    document = service.analyze_document(document.id)

    click.echo(f"\nDocument: {document.id}")
    click.echo(f"Type: {document.document_type} ({document.classification_confidence:.2f})")
    click.echo(f"Complexity: {document.metadata.get('complexity')}")

    if extract:
        _print_placeholders(service.extract_placeholders(document.id))


@cli.command()
@click.argument("document_id", type=str)
def extract(document_id: str) -> None:
    """Extract placeholders for an analyzed document."""
    service = _document_service()
    _print_placeholders(service.extract_placeholders(document_id))


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--user", "user_id", required=True, help="Owner of the data room")
@click.option("--company", "company_name", required=True, help="Company the document belongs to")
@click.option("--type", "document_type", required=True, help="Document type, e.g. 'Certificate of Incorporation'")
def index(file_path: str, user_id: str, company_name: str, document_type: str) -> None:
    """Index a data-room document into the knowledge graph."""
    item = _document_service().index_data_room_document(
        user_id=user_id,
        company_name=company_name,
        document_type=document_type,
        file_path=file_path,
    )
    click.echo(f"\nData room document: {item.id}")
    click.echo(f"Status: {item.status.value}")
    click.echo(f"Entities: {item.entity_count}")
    if item.error:
        click.echo(f"Error: {item.error}", err=True)


def _print_placeholders(placeholders) -> None:
    click.echo(f"\n=== {len(placeholders)} placeholder(s) ===\n")
    for p in placeholders:
        line = f"  {p.position:>3}. {p.field_name} ({p.field_type.value})"
        if p.suggested_value:
            line += f"  -> {p.suggested_value} [{p.suggestion_source}, {p.confidence:.2f}]"
        click.echo(line)


# =========================================================================
# Knowledge Graph Commands
# =========================================================================


@cli.command()
@click.argument("term", required=False)
@click.option("--type", "entity_type", help="Filter by entity type")
@click.option("--limit", default=20, help="Maximum results")
def entities(term: Optional[str], entity_type: Optional[str], limit: int) -> None:
    """Search the knowledge graph."""
    from smartdocs.services.knowledge_graph import KnowledgeGraphService
    from smartdocs.storage.store import get_store

    result = KnowledgeGraphService(get_store()).search_entities(
        entity_type=entity_type, term=term, limit=limit
    )

    click.echo(f"\n=== {result.total} entit{'y' if result.total == 1 else 'ies'} ===\n")
    for e in result.entities:
        click.echo(
            f"  [{e.confidence:.2f} x{e.usage_count}] {e.entity_type}: {e.entity_value}"
        )


# =========================================================================
# Consistency Commands
# =========================================================================


@cli.command()
@click.argument("document_id", type=str)
@click.option("--local", is_flag=True, help="Score without calling the generative service")
def health(document_id: str, local: bool) -> None:
    """Score document readiness."""
    from smartdocs.services.consistency import ConsistencyEngine
    from smartdocs.storage.store import get_store

    engine = ConsistencyEngine(get_store(), None if local else _agents())
    check = engine.score_health(document_id, use_skill=not local)

    click.echo(f"\n=== Health: {check.overall_score} ({check.status.value}) ===\n")
    click.echo(f"Completeness: {check.completeness_score}")
    click.echo(f"Consistency: {check.consistency_score}")
    click.echo(f"Risk: {check.risk_score}")
    for issue in check.issues:
        click.echo(f"  - {issue}")
    for rec in check.recommendations:
        click.echo(f"  * {rec}")


@cli.command()
@click.argument("document_id", type=str)
@click.option("--local", is_flag=True, help="Only run the deterministic checks")
@click.option("--output", "-o", type=click.Path(), help="Write the report as JSON")
def conflicts(document_id: str, local: bool, output: Optional[str]) -> None:
    """Detect conflicts within a document and across the user's documents."""
    from smartdocs.services.consistency import ConsistencyEngine
    from smartdocs.storage.store import get_store

    engine = ConsistencyEngine(get_store(), None if local else _agents())
    report = engine.detect_conflicts(document_id, use_ai=not local)

    click.echo(f"\nConsistency score: {report.consistency_score}")
    click.echo(f"Conflicts: {report.conflict_count}")
    for c in report.conflicts:
        click.echo(f"  [{c.severity.value}] {c.conflict_type.value}: {c.description}")

    if output:
        Path(output).write_text(json.dumps(report.model_dump(mode="json"), indent=2))
        click.echo(f"\nReport written to {output}")


# =========================================================================
# Skill Commands
# =========================================================================


@cli.command()
def skills() -> None:
    """List registered skills."""
    from smartdocs.skills.registry import get_skill_registry

    click.echo("\n=== Skills ===\n")
    for skill in get_skill_registry():
        cfg = skill.config
        click.echo(
            f"  {cfg.name:<24} {cfg.category.value:<12} {cfg.task_type.value:<22} "
            f"t={cfg.temperature} max={cfg.max_tokens}"
        )


def main() -> None:
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
