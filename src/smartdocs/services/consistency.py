"""
Cross-document consistency engine.

Combines deterministic checks over the placeholders of a user's documents
with the ConflictDetector, MultiDocIntelligence and HealthScoreCalculator
skills. Local findings are always kept; skill findings are merged on top
when the skill did not fall back.
"""

from datetime import date, datetime

import structlog

from smartdocs.config import get_settings
from smartdocs.exceptions import InputContractError, NotFoundError
from smartdocs.models.consistency import (
    Conflict,
    ConflictReport,
    ConflictStatus,
    ConflictType,
    CrossDocumentSuggestion,
    HealthCheck,
    HealthScore,
    Relationship,
    RelationshipReport,
    RelationshipType,
    Severity,
    auto_apply_allowed,
    status_for_score,
)
from smartdocs.models.document import Document, Placeholder
from smartdocs.services.agent_service import AgentService
from smartdocs.services.knowledge_graph import KnowledgeGraphService
from smartdocs.skills.schema import round_score
from smartdocs.storage.store import Store

logger = structlog.get_logger(__name__)

SEVERITY_DEDUCTIONS = {Severity.CRITICAL: 20, Severity.WARNING: 5, Severity.INFO: 1}
SEVERITY_RISK = {Severity.CRITICAL: 30, Severity.WARNING: 10, Severity.INFO: 0}
CONFLICT_RISK = 15

START_DATE_TERMS = ("effective", "start", "commencement", "begin")
END_DATE_TERMS = ("expiration", "expiry", "end", "termination")
DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%B %d, %Y", "%b %d, %Y", "%d %B %Y")
PARTY_TERMS = ("company", "party", "parties", "name", "investor", "employer", "employee")


def calculate_health(
    total_placeholders: int,
    filled_placeholders: int,
    issue_severities: list[Severity] | None = None,
    conflict_count: int = 0,
) -> HealthScore:
    """
    Deterministic health score.

    completeness = filled / total * 100 (0 for an empty document)
    consistency  = 100 - (20 per critical, 5 per warning, 1 per info issue)
    risk         = 30 per critical, 10 per warning, 15 per conflict, max 100
    overall      = 0.40 completeness + 0.35 consistency + 0.25 (100 - risk)
    """
    if total_placeholders < 0 or filled_placeholders < 0 or conflict_count < 0:
        raise InputContractError("Health metrics must not be negative")

    severities = issue_severities or []
    counts = {s: sum(1 for x in severities if x == s) for s in Severity}

    completeness = (
        round_score(filled_placeholders / total_placeholders * 100)
        if total_placeholders
        else 0
    )
    consistency = max(
        0, 100 - sum(SEVERITY_DEDUCTIONS[s] * n for s, n in counts.items())
    )
    risk = min(
        100,
        sum(SEVERITY_RISK[s] * n for s, n in counts.items()) + CONFLICT_RISK * conflict_count,
    )
    overall = round_score(0.40 * completeness + 0.35 * consistency + 0.25 * (100 - risk))

    issues = []
    recommendations = []
    missing = total_placeholders - filled_placeholders
    if missing > 0:
        issues.append(f"{missing} of {total_placeholders} fields are not filled")
        recommendations.append("Fill the remaining fields")
    if counts[Severity.CRITICAL]:
        issues.append(f"{counts[Severity.CRITICAL]} critical validation issue(s)")
        recommendations.append("Resolve critical validation issues before signing")
    if counts[Severity.WARNING]:
        issues.append(f"{counts[Severity.WARNING]} validation warning(s)")
    if conflict_count:
        issues.append(f"{conflict_count} open conflict(s)")
        recommendations.append("Review and resolve open conflicts")

    return HealthScore(
        overall_score=overall,
        completeness_score=completeness,
        consistency_score=consistency,
        risk_score=risk,
        issues=issues,
        recommendations=recommendations,
        status=status_for_score(overall),
    )


def _normalize(value: str | None) -> str:
    return " ".join((value or "").split()).casefold()


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    text = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _snapshot(placeholders: list[Placeholder]) -> list[dict]:
    return [
        {
            "field_name": p.field_name,
            "field_type": p.field_type.value,
            "filled_value": p.filled_value,
        }
        for p in placeholders
    ]


class ConsistencyEngine:
    """Conflicts, relationships and health scores for a user's documents."""

    def __init__(
        self,
        store: Store,
        agents: AgentService | None = None,
        knowledge_graph: KnowledgeGraphService | None = None,
        auto_apply_threshold: float | None = None,
    ):
        self.store = store
        self.agents = agents
        self.knowledge_graph = knowledge_graph or KnowledgeGraphService(store, agents)
        self.auto_apply_threshold = (
            auto_apply_threshold
            if auto_apply_threshold is not None
            else get_settings().auto_apply_threshold
        )

    # =========================================================================
    # Conflicts
    # =========================================================================

    def detect_conflicts(self, document_id: str, use_ai: bool = True) -> ConflictReport:
        """
        Find conflicts in a document and against the user's other documents.

        Replaces the document's previously open conflicts. Acknowledged and
        resolved conflicts are kept.
        """
        document = self._get_document(document_id)
        placeholders = self.store.get_placeholders(document_id)
        related = self._related_filled(document)

        conflicts = self.find_internal_conflicts(document, placeholders)
        conflicts += self.find_cross_document_conflicts(document, placeholders, related)

        consistency_score = None
        recommendations: list[str] = []
        used_fallback = False

        if use_ai and self.agents is not None:
            task = self.agents.run(
                "ConflictDetector",
                {
                    "document_id": document.id,
                    "document_type": document.document_type,
                    "placeholders": _snapshot(placeholders),
                    "related_documents": [
                        {
                            "document_id": doc.id,
                            "document_type": doc.document_type,
                            "placeholders": _snapshot(items),
                        }
                        for doc, items in related.values()
                    ],
                },
            )
            output = task.output or {}
            used_fallback = task.used_fallback
            recommendations = list(output.get("recommendations", []))
            if not used_fallback:
                consistency_score = output.get("consistencyScore")
                conflicts = self._merge_conflicts(
                    conflicts,
                    [self._conflict_from_skill(document.id, c) for c in output.get("conflicts", [])],
                )

        if consistency_score is None:
            consistency_score = max(
                0, 100 - sum(SEVERITY_DEDUCTIONS[c.severity] for c in conflicts)
            )

        self.store.clear_open_conflicts(document.id)
        self.store.save_conflicts(conflicts)

        logger.info(
            "conflicts_detected",
            document_id=document.id,
            count=len(conflicts),
            used_fallback=used_fallback,
        )
        return ConflictReport(
            document_id=document.id,
            conflicts=conflicts,
            consistency_score=consistency_score,
            recommendations=recommendations,
            used_fallback=used_fallback,
        )

    def find_internal_conflicts(
        self,
        document: Document,
        placeholders: list[Placeholder],
    ) -> list[Conflict]:
        """Same field filled twice with different values, and end dates before start dates."""
        conflicts = []

        by_name: dict[str, Placeholder] = {}
        for p in placeholders:
            if not p.filled_value:
                continue
            key = _normalize(p.field_name)
            first = by_name.setdefault(key, p)
            if first is not p and _normalize(first.filled_value) != _normalize(p.filled_value):
                conflicts.append(
                    Conflict(
                        document_id=document.id,
                        conflict_type=ConflictType.INTERNAL,
                        severity=Severity.CRITICAL,
                        field1=first.field_name,
                        field2=p.field_name,
                        value1=first.filled_value,
                        value2=p.filled_value,
                        description=f"{first.field_name} has two different values in this document",
                        suggestion="Use the same value everywhere the field appears",
                    )
                )

        starts = [p for p in placeholders if self._is_date_field(p, START_DATE_TERMS)]
        ends = [p for p in placeholders if self._is_date_field(p, END_DATE_TERMS)]
        for start in starts:
            start_date = _parse_date(start.filled_value)
            if start_date is None:
                continue
            for end in ends:
                end_date = _parse_date(end.filled_value)
                if end_date is not None and end_date < start_date:
                    conflicts.append(
                        Conflict(
                            document_id=document.id,
                            conflict_type=ConflictType.LOGICAL,
                            severity=Severity.CRITICAL,
                            field1=start.field_name,
                            field2=end.field_name,
                            value1=start.filled_value,
                            value2=end.filled_value,
                            description=f"{end.field_name} is before {start.field_name}",
                            suggestion="Check the order of the dates",
                        )
                    )
        return conflicts

    def find_cross_document_conflicts(
        self,
        document: Document,
        placeholders: list[Placeholder],
        related: dict[str, tuple[Document, list[Placeholder]]],
    ) -> list[Conflict]:
        """Fields that carry a different value in another document of the same user."""
        conflicts = []
        for p in placeholders:
            if not p.filled_value:
                continue
            key = _normalize(p.field_name)
            for other_doc, items in related.values():
                for other in items:
                    if _normalize(other.field_name) != key:
                        continue
                    if _normalize(other.filled_value) == _normalize(p.filled_value):
                        continue
                    conflicts.append(
                        Conflict(
                            document_id=document.id,
                            conflict_type=ConflictType.CROSS_DOCUMENT,
                            severity=Severity.WARNING,
                            field1=p.field_name,
                            field2=other.field_name,
                            value1=p.filled_value,
                            value2=other.filled_value,
                            description=(
                                f"{p.field_name} differs from "
                                f"{other_doc.document_type or other_doc.filename}"
                            ),
                            suggestion="Confirm which value is current and update the other document",
                            related_document_id=other_doc.id,
                        )
                    )
        return conflicts

    def update_conflict_status(self, conflict_id: str, status: ConflictStatus | str) -> Conflict:
        try:
            status = ConflictStatus(status)
        except ValueError as e:
            raise InputContractError(f"Invalid conflict status: {status}", original_error=e) from e

        if not self.store.update_conflict_status(conflict_id, status):
            raise NotFoundError("Conflict not found")
        logger.info("conflict_status_updated", conflict_id=conflict_id, status=status.value)
        return self.store.get_conflict(conflict_id)

    def get_conflicts(
        self,
        document_id: str,
        status: ConflictStatus | None = None,
    ) -> list[Conflict]:
        return self.store.get_conflicts(document_id, status)

    # =========================================================================
    # Relationships
    # =========================================================================

    def detect_relationships(self, document_id: str, use_ai: bool = True) -> RelationshipReport:
        """
        Link a document to the user's other documents.

        Strength is the Jaccard similarity of the two documents' entity
        values: values the knowledge graph knows, or values of party fields
        such as company and investor names. Propagation suggestions carry
        this document's values into empty fields of the same name elsewhere;
        a value known to the knowledge graph takes the entity's confidence.
        """
        document = self._get_document(document_id)
        placeholders = self.store.get_placeholders(document_id)
        others = self.store.list_documents(document.user_id, exclude_id=document.id)
        other_fields = {doc.id: (doc, self.store.get_placeholders(doc.id)) for doc in others}

        filled = [p for p in placeholders if p.filled_value]
        values = {p.filled_value for p in filled}
        for _, items in other_fields.values():
            values.update(p.filled_value for p in items if p.filled_value)
        known = self.store.find_entities_by_values(sorted(values))
        known_values = {_normalize(v) for v in known}

        def entity_values(items: list[Placeholder]) -> dict[str, Placeholder]:
            return {
                _normalize(p.filled_value): p
                for p in items
                if p.filled_value
                and (_normalize(p.filled_value) in known_values or self._is_party_field(p))
            }

        relationships: dict[str, Relationship] = {}
        suggestions: dict[tuple[str, str], CrossDocumentSuggestion] = {}

        own_values = entity_values(filled)
        for doc, items in other_fields.values():
            their_values = entity_values(items)
            shared = own_values.keys() & their_values.keys()
            if shared:
                shared_values = sorted(own_values[v].filled_value for v in shared)
                relationships[doc.id] = Relationship(
                    source_document_id=document.id,
                    related_document_id=doc.id,
                    related_document_type=doc.document_type,
                    relationship_type=self._relationship_type(
                        [own_values[v] for v in shared]
                    ),
                    strength=round(len(shared) / len(own_values.keys() | their_values.keys()), 4),
                    shared_entities=sorted(
                        shared_values, key=lambda v: (v not in known, v)
                    ),
                    description=f"Shares {len(shared)} entities with {doc.document_type or doc.filename}",
                )

            for target in items:
                if target.filled_value:
                    continue
                source = next(
                    (p for p in filled if _normalize(p.field_name) == _normalize(target.field_name)),
                    None,
                )
                if source is None:
                    continue
                entity = known.get(source.filled_value)
                confidence = entity.confidence if entity else 0.7
                suggestions[(doc.id, target.field_name)] = CrossDocumentSuggestion(
                    target_document_id=doc.id,
                    target_field_name=target.field_name,
                    suggested_value=source.filled_value,
                    source_field_name=source.field_name,
                    reasoning=f"Same field is filled in {document.document_type or document.filename}",
                    confidence=confidence,
                    auto_apply=True,
                )

        insights: list[str] = []
        potential_issues: list[dict] = []
        used_fallback = False

        if use_ai and self.agents is not None and other_fields:
            task = self.agents.run(
                "MultiDocIntelligence",
                {
                    "document_id": document.id,
                    "document_type": document.document_type or "document",
                    "placeholders": _snapshot(placeholders),
                    "other_documents": [
                        {
                            "document_id": doc.id,
                            "document_type": doc.document_type,
                            "status": doc.status.value,
                            "placeholders": _snapshot(items),
                        }
                        for doc, items in other_fields.values()
                    ],
                },
            )
            output = task.output or {}
            used_fallback = task.used_fallback
            insights = list(output.get("insights", []))
            if not used_fallback:
                potential_issues = list(output.get("potentialIssues", []))
                self._merge_skill_relationships(document, relationships, output, other_fields)
                for item in output.get("suggestions", []):
                    key = (item["targetDocumentId"], item["targetFieldName"])
                    if item["targetDocumentId"] not in other_fields or key in suggestions:
                        continue
                    suggestions[key] = CrossDocumentSuggestion(
                        target_document_id=item["targetDocumentId"],
                        target_field_name=item["targetFieldName"],
                        suggested_value=item["suggestedValue"],
                        source_field_name=item.get("sourceFieldName"),
                        reasoning=item["reasoning"],
                        confidence=item["confidence"],
                        auto_apply=item["autoApply"],
                    )

        final_suggestions = [self.enforce_auto_apply(s) for s in suggestions.values()]
        ordered = sorted(relationships.values(), key=lambda r: r.strength, reverse=True)

        self.store.delete_relationships(document.id)
        self.store.save_relationships(ordered)

        logger.info(
            "relationships_detected",
            document_id=document.id,
            relationships=len(ordered),
            suggestions=len(final_suggestions),
            used_fallback=used_fallback,
        )
        return RelationshipReport(
            document_id=document.id,
            relationships=ordered,
            suggestions=final_suggestions,
            insights=insights,
            potential_issues=potential_issues,
            used_fallback=used_fallback,
        )

    def enforce_auto_apply(self, suggestion: CrossDocumentSuggestion) -> CrossDocumentSuggestion:
        """auto_apply survives only above the threshold and on a non-critical field."""
        allowed = suggestion.auto_apply and auto_apply_allowed(
            suggestion.confidence, suggestion.target_field_name, self.auto_apply_threshold
        )
        if allowed == suggestion.auto_apply:
            return suggestion
        return suggestion.model_copy(update={"auto_apply": allowed})

    # =========================================================================
    # Health
    # =========================================================================

    def validate_compliance(self, document_id: str) -> dict:
        """Run the ComplianceValidator over a document's fields."""
        if self.agents is None:
            raise InputContractError("Compliance validation requires an agent service")
        document = self._get_document(document_id)
        task = self.agents.run(
            "ComplianceValidator",
            {
                "document_id": document.id,
                "document_type": document.document_type or "document",
                "placeholders": _snapshot(self.store.get_placeholders(document.id)),
            },
        )
        return {**(task.output or {}), "usedFallback": task.used_fallback}

    def score_health(
        self,
        document_id: str,
        use_skill: bool = True,
        issue_severities: list[Severity] | None = None,
    ) -> HealthCheck:
        """
        Score a document and persist the result.

        Validation issues come from ``issue_severities`` when given, else
        from the ComplianceValidator when the skill path is enabled. The
        HealthScoreCalculator result is used unless it fell back, in which
        case the local calculation is stored instead.
        """
        document = self._get_document(document_id)
        placeholders = self.store.get_placeholders(document.id)
        total = len(placeholders)
        filled = sum(1 for p in placeholders if p.is_filled)
        conflict_count = len(self.store.get_conflicts(document.id, ConflictStatus.OPEN))

        use_skill = use_skill and self.agents is not None
        issues: list[dict] = []
        if issue_severities is not None:
            issues = [{"severity": s.value, "issue": ""} for s in issue_severities]
        elif use_skill:
            compliance = self.validate_compliance(document.id)
            # A failed validation reports a synthetic critical issue; ignore it
            if not compliance["usedFallback"]:
                issues = [
                    {"severity": i["severity"], "issue": i["issue"]}
                    for i in compliance.get("issues", [])
                ]

        score = None
        source = "local"
        if use_skill:
            task = self.agents.run(
                "HealthScoreCalculator",
                {
                    "document_id": document.id,
                    "document_type": document.document_type,
                    "total_placeholders": total,
                    "filled_placeholders": filled,
                    "validation_issues": issues,
                    "conflict_count": conflict_count,
                },
            )
            if not task.used_fallback:
                score = HealthScore.model_validate(
                    {
                        "overall_score": task.output["overallScore"],
                        "completeness_score": task.output["completenessScore"],
                        "consistency_score": task.output["consistencyScore"],
                        "risk_score": task.output["riskScore"],
                        "issues": task.output["issues"],
                        "recommendations": task.output["recommendations"],
                        "status": task.output["status"],
                    }
                )
                source = "skill"
            else:
                logger.warning("health_skill_fallback", document_id=document.id)

        if score is None:
            score = calculate_health(
                total,
                filled,
                [Severity(i["severity"]) for i in issues],
                conflict_count,
            )

        check = self.store.save_health_check(
            HealthCheck(document_id=document.id, source=source, **score.model_dump())
        )
        logger.info(
            "health_scored",
            document_id=document.id,
            overall=check.overall_score,
            status=check.status.value,
            source=source,
        )
        return check

    def get_latest_health(self, document_id: str) -> HealthCheck | None:
        return self.store.get_latest_health_check(document_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_document(self, document_id: str) -> Document:
        document = self.store.get_document(document_id)
        if document is None:
            raise NotFoundError("Document not found")
        return document

    def _related_filled(self, document: Document) -> dict[str, tuple[Document, list[Placeholder]]]:
        related: dict[str, tuple[Document, list[Placeholder]]] = {}
        for doc, placeholder in self.store.get_filled_placeholders_for_user(
            document.user_id, exclude_document_id=document.id
        ):
            related.setdefault(doc.id, (doc, []))[1].append(placeholder)
        return related

    @staticmethod
    def _is_date_field(placeholder: Placeholder, terms: tuple[str, ...]) -> bool:
        name = placeholder.field_name.lower()
        return any(t in name for t in terms) and (
            placeholder.field_type.value == "date" or "date" in name
        )

    @staticmethod
    def _is_party_field(placeholder: Placeholder) -> bool:
        name = placeholder.field_name.lower()
        return any(t in name for t in PARTY_TERMS)

    @classmethod
    def _relationship_type(cls, shared: list[Placeholder]) -> RelationshipType:
        for p in shared:
            if cls._is_party_field(p):
                return RelationshipType.SAME_PARTY
        return RelationshipType.RELATED_TRANSACTION

    @staticmethod
    def _conflict_from_skill(document_id: str, item: dict) -> Conflict:
        return Conflict(
            document_id=document_id,
            conflict_type=item["type"],
            severity=item["severity"],
            field1=item["field1"],
            field2=item.get("field2"),
            value1=item.get("value1"),
            value2=item.get("value2"),
            description=item["description"],
            suggestion=item["suggestion"],
            related_document_id=item.get("relatedDocumentId"),
        )

    @staticmethod
    def _merge_conflicts(local: list[Conflict], found: list[Conflict]) -> list[Conflict]:
        seen = {
            (c.conflict_type, _normalize(c.field1), _normalize(c.field2), c.related_document_id)
            for c in local
        }
        merged = list(local)
        for c in found:
            key = (c.conflict_type, _normalize(c.field1), _normalize(c.field2), c.related_document_id)
            if key not in seen:
                seen.add(key)
                merged.append(c)
        return merged

    @staticmethod
    def _merge_skill_relationships(
        document: Document,
        relationships: dict[str, Relationship],
        output: dict,
        other_fields: dict[str, tuple[Document, list[Placeholder]]],
    ) -> None:
        for item in output.get("relationships", []):
            related_id = item["relatedDocumentId"]
            if related_id not in other_fields:
                continue
            existing = relationships.get(related_id)
            if existing is not None:
                relationships[related_id] = existing.model_copy(
                    update={
                        "relationship_type": RelationshipType(item["relationshipType"]),
                        "strength": max(existing.strength, item["strength"]),
                        "shared_entities": sorted(
                            set(existing.shared_entities) | set(item["sharedEntities"])
                        ),
                        "description": item["description"],
                    }
                )
            else:
                relationships[related_id] = Relationship(
                    source_document_id=document.id,
                    related_document_id=related_id,
                    related_document_type=item["relatedDocumentType"],
                    relationship_type=item["relationshipType"],
                    strength=item["strength"],
                    shared_entities=item["sharedEntities"],
                    description=item["description"],
                )
