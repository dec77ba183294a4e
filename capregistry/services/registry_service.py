"""
Capability Service - registry operations over store, schemas and embeddings

Ties the pieces together:
    text -> parse -> (transform) -> validate -> embed -> normalize -> store

Validation problems are reported, not raised, unless strict mode is on
(per call, falling back to ``default_strict``). Stored content keeps the
syntax it was uploaded in (YAML stays YAML, JSON stays JSON); conversion
to another protocol version happens on read.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from capregistry.config.settings import RegistrySettings
from capregistry.core.content.parser import JSON, detect_syntax, dump_content, parse_content
from capregistry.core.exceptions import (
    EmbeddingError,
    NotFoundError,
    ParseError,
    NormalizationError,
    RegistryError,
    ValidationError,
)
from capregistry.core.models import CapabilityWrapper
from capregistry.core.normalize.fields import as_text
from capregistry.core.normalize.normalizer import CapabilityNormalizer, source_version
from capregistry.core.normalize.transformer import VersionTransformer
from capregistry.core.schema.loader import build_default_registry
from capregistry.core.schema.registry import SchemaRegistry
from capregistry.core.validation.consistency import check_consistency
from capregistry.core.validation.validator import ValidationResult, validate_document
from capregistry.providers.embeddings import EmbeddingProvider, NullEmbeddingProvider, build_embedding_provider
from capregistry.store.capability_store import CapabilityStore, StoredCapability

logger = logging.getLogger(__name__)


@dataclass
class CreateResult:
    """Outcome of create/update"""
    wrapper: CapabilityWrapper
    format_version: str
    warnings: List[str] = field(default_factory=list)


@dataclass
class ConversionResult:
    """A stored capability expressed in another protocol version (not stored)"""
    id: str
    document: Dict[str, Any]
    source_format: str
    target_format: str

    @property
    def converted(self) -> bool:
        return self.source_format != self.target_format


@dataclass
class ValidationReport:
    """Validation outcome for content that is not stored"""
    result: ValidationResult
    format_version: str
    consistency: List[str] = field(default_factory=list)
    schema_version: str = ""  # registered schema the document was checked against

    @property
    def valid(self) -> bool:
        return self.result.valid

    def to_dict(self) -> Dict[str, Any]:
        data = self.result.to_dict()
        data["format"] = self.format_version
        data["schemaVersion"] = self.schema_version or self.format_version
        data["consistency"] = list(self.consistency)
        return data


@dataclass
class SearchHit:
    """One semantic search result"""
    id: str
    description: str
    version: str
    type: str
    format_version: str
    similarity: float
    content: Optional[str] = None  # set when a format version was requested


@dataclass
class ImportItem:
    """One entry of a batch import"""
    id: str
    content: Union[str, Dict[str, Any]]
    format_version: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportItem":
        return cls(
            id=as_text(data.get("id")),
            content=data.get("content", ""),
            format_version=data.get("format") or data.get("format_version"),
        )


@dataclass
class ImportFailure:
    id: str
    error: str


@dataclass
class ImportReport:
    """Per-batch counters; one failing item never aborts the batch"""
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[ImportFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": [{"id": e.id, "error": e.error} for e in self.errors],
        }


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _declared_version(document: Dict[str, Any]) -> str:
    """``enact`` the document itself declares, or empty"""
    version = as_text(document.get("enact"))
    if not version and isinstance(document.get("protocolDetails"), dict):
        version = as_text(document["protocolDetails"].get("enact"))
    return version


class CapabilityService:
    """Registry operations"""

    def __init__(
        self,
        store: CapabilityStore,
        schemas: SchemaRegistry,
        embeddings: Optional[EmbeddingProvider] = None,
        default_strict: bool = False,
        normalizer: Optional[CapabilityNormalizer] = None,
    ):
        self.store = store
        self.schemas = schemas
        self.embeddings = embeddings or NullEmbeddingProvider()
        self.default_strict = default_strict
        self.normalizer = normalizer or CapabilityNormalizer()
        self.transformer: VersionTransformer = self.normalizer.transformer

    @classmethod
    def from_settings(cls, settings: RegistrySettings) -> "CapabilityService":
        """Build the service and its collaborators from settings"""
        return cls(
            store=CapabilityStore(settings.db_path),
            schemas=build_default_registry(settings.schema_dir),
            embeddings=build_embedding_provider(
                settings.openai_api_key,
                model=settings.embedding_model,
                base_url=settings.openai_base_url,
            ),
            default_strict=settings.strict,
        )

    def _strict(self, strict: Optional[bool]) -> bool:
        return self.default_strict if strict is None else strict

    def _parse_object(self, content: str) -> Dict[str, Any]:
        document = parse_content(content)
        if not isinstance(document, dict):
            raise ParseError(f"Capability content must be a mapping, got {type(document).__name__}")
        return document

    def _schema_version(self, version: str) -> str:
        """Registered schema version used for ``version``, logging any fallback"""
        if self.schemas.has(version):
            return version
        resolved = self.schemas.resolved_version(version)
        logger.warning(f"No schema registered for version {version}, validating against {resolved}")
        return resolved

    def _check(self, document: Dict[str, Any], version: str, strict: bool, action: str) -> ValidationResult:
        self._schema_version(version)
        result = validate_document(document, self.schemas, strict=strict, version=version)
        if result.warnings:
            logger.warning(f"Schema validation warnings: {', '.join(result.warnings)}")
        if not result.valid and strict:
            message = f"Invalid {action}: {', '.join(result.errors)}"
            logger.error(message)
            raise ValidationError(message, result)
        return result

    def _embed(self, text: str) -> List[float]:
        embedding = self.embeddings.generate_embedding(text or "")
        if embedding:
            logger.info("Generated embedding for capability")
        return embedding

    def _persist(
        self,
        document: Dict[str, Any],
        content: str,
        format_version: str,
        warnings: List[str],
    ) -> CreateResult:
        """Embed, normalize and store one validated document"""
        wrapper = self.normalizer.normalize(document)
        if not wrapper.id:
            raise ValidationError("Capability has no id")

        embedding = self._embed(wrapper.description)
        self.store.store(
            wrapper.id,
            content,
            description=wrapper.description,
            version=wrapper.version,
            type_=wrapper.protocol_details.type,
            embedding=embedding,
            format_version=format_version,
        )
        return CreateResult(wrapper=wrapper, format_version=format_version, warnings=warnings)

    def _require(self, capability_id: str) -> StoredCapability:
        row = self.store.get(capability_id)
        if row is None:
            raise NotFoundError(f"Capability not found: {capability_id}")
        return row

    def _stored_version(self, row: StoredCapability, document: Dict[str, Any]) -> str:
        return _declared_version(document) or row.format_version

    # ============================================
    # single-document operations
    # ============================================

    def create(
        self,
        content: str,
        strict: Optional[bool] = None,
        format_version: Optional[str] = None,
    ) -> CreateResult:
        """
        Parse, validate, normalize and store a capability

        Args:
            content: YAML or JSON text
            strict: Fail on validation errors (default: service setting)
            format_version: Store the document in this protocol version;
                the document is migrated when it declares another one

        Raises:
            ParseError: content is not a YAML/JSON mapping
            ValidationError: strict mode and the document has errors
        """
        logger.info("Processing new capability")
        document = self._parse_object(content)
        source = source_version(document)
        target = format_version or source

        if target != source:
            document = self.transformer.transform(document, source, target)
            stored_content = dump_content(document, detect_syntax(content))
        else:
            stored_content = content

        result = self._check(document, target, self._strict(strict), "capability")
        created = self._persist(document, stored_content, target, list(result.warnings))
        logger.info(f"Stored capability {created.wrapper.id} with format version {target}")
        return created

    def get(self, capability_id: str, format_version: Optional[str] = None) -> str:
        """
        Stored content, optionally migrated to another protocol version

        The converted document keeps the stored syntax.

        Raises:
            NotFoundError: unknown id
        """
        row = self._require(capability_id)
        if not format_version or format_version == row.format_version:
            return row.content

        document = self._parse_object(row.content)
        source = self._stored_version(row, document)
        if source == format_version:
            return row.content

        converted = self.transformer.transform(document, source, format_version)
        return dump_content(converted, detect_syntax(row.content))

    def get_wrapper(self, capability_id: str, format_version: Optional[str] = None) -> CapabilityWrapper:
        row = self._require(capability_id)
        document = self._parse_object(row.content)
        return self.normalizer.normalize(document, format_version)

    def update(
        self,
        capability_id: str,
        content: str,
        target_format: Optional[str] = None,
        strict: Optional[bool] = None,
        preserve_metadata: bool = False,
    ) -> CreateResult:
        """
        Replace a stored capability

        Args:
            capability_id: Existing id; always wins over an id in ``content``
            content: New YAML or JSON text
            target_format: Protocol version to store; defaults to the
                version the new content declares, else the stored one
            strict: Fail on validation errors
            preserve_metadata: Start from the stored document and overlay
                the new content, so fields the update omits survive

        Raises:
            NotFoundError: unknown id
            ValidationError: strict mode and the document has errors
        """
        row = self._require(capability_id)
        updated = self._parse_object(content)
        source = _declared_version(updated) or row.format_version
        final = target_format or source

        if preserve_metadata:
            existing = self._parse_object(row.content)
            merged = {**existing, **updated}
            merged["version"] = updated.get("version") or existing.get("version")
        else:
            merged = dict(updated)
        merged["id"] = capability_id

        document = self.transformer.transform(merged, source, final) if final != source else merged

        result = self._check(document, final, self._strict(strict), "updated capability")
        stored_content = dump_content(document, detect_syntax(content))
        saved = self._persist(document, stored_content, final, list(result.warnings))
        logger.info(f"Updated capability {capability_id} with format version {final}")
        return saved

    def convert(self, capability_id: str, target_format: str) -> ConversionResult:
        """
        Express a stored capability in another protocol version without storing it

        Raises:
            NotFoundError: unknown id
        """
        if not target_format:
            raise ValidationError("Target format is required")

        row = self._require(capability_id)
        document = self._parse_object(row.content)
        source = self._stored_version(row, document)

        if source == target_format:
            return ConversionResult(capability_id, document, source, target_format)

        logger.info(f"Converting capability {capability_id} from {source} to {target_format}")
        converted = self.transformer.transform(document, source, target_format)
        converted["id"] = capability_id
        return ConversionResult(capability_id, converted, source, target_format)

    def validate(
        self,
        content: str,
        strict: Optional[bool] = None,
        format_version: Optional[str] = None,
    ) -> ValidationReport:
        """
        Validate content without storing it

        Also runs the consistency checks on the normalized form. Never
        raises for invalid documents; only unparseable content raises.
        """
        document = self._parse_object(content)
        version = format_version or source_version(document)
        result = validate_document(document, self.schemas, strict=self._strict(strict), version=version)
        consistency = check_consistency(self.normalizer.normalize(document))
        return ValidationReport(
            result=result,
            format_version=version,
            consistency=consistency,
            schema_version=self._schema_version(version),
        )

    def delete(self, capability_id: str) -> bool:
        logger.info(f"Deleting capability: {capability_id}")
        return self.store.delete(capability_id)

    # ============================================
    # registry-wide operations
    # ============================================

    def _default_wrapper(self, row: StoredCapability) -> CapabilityWrapper:
        """Wrapper built from indexed columns when stored content is unusable"""
        return self.normalizer.normalize({
            "enact": row.format_version,
            "id": row.id,
            "description": row.description,
            "version": row.version,
            "type": row.type,
        })

    def list(self, format_version: Optional[str] = None) -> List[CapabilityWrapper]:
        """All capabilities as wrappers, optionally migrated to ``format_version``"""
        wrappers = []
        for row in self.store.list_all():
            try:
                document = self._parse_object(row.content)
                wrappers.append(self.normalizer.normalize(document, format_version))
            except (ParseError, NormalizationError) as e:
                logger.error(f"Error parsing content for capability {row.id}: {e}")
                wrappers.append(self._default_wrapper(row))
        return wrappers

    def search(
        self,
        query: str,
        limit: int = 10,
        format_version: Optional[str] = None,
    ) -> List[SearchHit]:
        """
        Semantic search over capability descriptions

        Raises:
            ValidationError: empty query
            EmbeddingError: no embedding provider is configured
        """
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Invalid search query")
        if not self.embeddings.enabled:
            raise EmbeddingError("Semantic search requires an embedding provider (set OPENAI_API_KEY)")

        logger.info(f"Searching capabilities with query: \"{query}\"")
        embedding = self.embeddings.generate_embedding(query)

        hits = []
        for similar in self.store.find_similar(embedding, limit):
            hit = SearchHit(
                id=similar.id,
                description=similar.description,
                version=similar.version,
                type=similar.type,
                format_version=similar.format_version,
                similarity=similar.similarity,
            )
            if format_version:
                try:
                    hit.content = self.get(similar.id, format_version)
                except RegistryError as e:
                    logger.error(f"Error converting capability {similar.id} to format {format_version}: {e}")
            hits.append(hit)
        return hits

    def statistics(self) -> Dict[str, Any]:
        """Totals by type and document revision, plus stored format versions"""
        capabilities = self.list()

        types: Dict[str, int] = {}
        versions: Dict[str, int] = {}
        for wrapper in capabilities:
            type_ = wrapper.protocol_details.type
            types[type_] = types.get(type_, 0) + 1
            version = wrapper.version or "unknown"
            versions[version] = versions.get(version, 0) + 1

        return {
            "totalCapabilities": len(capabilities),
            "types": types,
            "versions": versions,
            "formatVersions": self.store.distinct_format_versions(),
            "lastUpdated": _utc_now_iso(),
        }

    def import_batch(
        self,
        items: Iterable[Union[ImportItem, Dict[str, Any]]],
        strict: Optional[bool] = None,
        skip_existing: bool = False,
    ) -> ImportReport:
        """
        Import many capabilities

        Each item's id overrides the id inside its content. Failures are
        recorded per item and the batch carries on.

        Raises:
            ValidationError: no items were given
        """
        entries = [item if isinstance(item, ImportItem) else ImportItem.from_dict(item) for item in items]
        if not entries:
            raise ValidationError("No capabilities provided for import")

        logger.info(f"Starting batch import of {len(entries)} capabilities")
        report = ImportReport(total=len(entries))
        strict_mode = self._strict(strict)

        for entry in entries:
            if skip_existing and self.store.exists(entry.id):
                logger.info(f"Skipping existing capability: {entry.id}")
                report.skipped += 1
                continue

            try:
                self._import_one(entry, strict_mode)
            except RegistryError as e:
                logger.error(f"Error importing capability {entry.id}: {e}")
                report.failed += 1
                report.errors.append(ImportFailure(id=entry.id, error=str(e)))
                continue

            logger.info(f"Successfully imported capability: {entry.id}")
            report.successful += 1

        logger.info(
            f"Batch import completed: {report.successful} successful, "
            f"{report.failed} failed, {report.skipped} skipped"
        )
        return report

    def _import_one(self, entry: ImportItem, strict: bool) -> CreateResult:
        if isinstance(entry.content, str):
            document = self._parse_object(entry.content)
            stored_content = entry.content
        elif isinstance(entry.content, dict):
            document = dict(entry.content)
            stored_content = None
        else:
            raise ParseError(f"Unsupported content for {entry.id}: {type(entry.content).__name__}")

        if entry.id and as_text(document.get("id")) != entry.id:
            document["id"] = entry.id
            stored_content = None

        version = entry.format_version or source_version(document)
        result = self._check(document, version, strict, "capability")

        if stored_content is None:
            syntax = detect_syntax(entry.content) if isinstance(entry.content, str) else JSON
            stored_content = dump_content(document, syntax)
        return self._persist(document, stored_content, version, list(result.warnings))

    def health(self) -> Dict[str, Any]:
        """Store and schema registry status"""
        registered = self.schemas.versions()
        database = self.store.check_health()
        return {
            "status": "ok" if database.get("status") == "ok" else database.get("status", "error"),
            "timestamp": _utc_now_iso(),
            "components": {
                "database": database,
                "schemaRegistry": {
                    "status": "ok" if registered else "warning",
                    "registeredSchemas": registered,
                },
                "embeddings": {"enabled": self.embeddings.enabled},
            },
        }
