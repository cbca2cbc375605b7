"""
ShipmentService -- receive, dispatch and delete workflows.

Responsibility:
    Runs each stock movement as a fixed sequence of named steps.  A step
    starts only after the previous one has finished or been reported as
    failed:

        receive:  VALIDATE -> CONVERT -> UPLOAD -> LOAD_LEVEL
                  -> UPDATE_LEVEL -> INSERT_TRANSACTION -> RELOAD
        dispatch: VALIDATE -> CHECK_STOCK -> UPLOAD -> LOAD_LEVEL
                  -> UPDATE_LEVEL -> INSERT_TRANSACTION -> RELOAD
        delete:   DELETE_TRANSACTION -> UPDATE_LEVEL -> RELOAD

Architecture position:
    Services -- imperative shell.  Composes LedgerEngine (pure), the
    kernel's LedgerWriter/selectors (flush-only) and a BlobStore.  Owns the
    commit boundaries through ``session_scope``.

Invariants enforced:
    - Input and stock errors abort before any upload or write.
    - An upload failure is non-fatal.  It comes back as a warning and the
      transaction is recorded without an attachment.
    - Delete removes the ledger row first; if that fails the level is not
      touched.
    - With ``atomic_writes`` off, UPDATE_LEVEL and INSERT_TRANSACTION commit
      separately, so a failure between them leaves level and ledger
      diverged.  The raised PersistenceError names the step that failed.
      With ``atomic_writes`` on, both share one transaction.

Concurrency:
    No locking.  Two dispatches can both pass CHECK_STOCK against the same
    level before either writes.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from materials_config.schema import LedgerConfig, StorageConfig
from materials_engines.ledger import Conversion, LedgerEngine, LevelChange
from materials_engines.specs import normalize_variant
from materials_kernel.db.engine import session_scope
from materials_kernel.domain.clock import Clock, SystemClock
from materials_kernel.domain.dtos import (
    Attachment,
    InventoryLevel,
    LedgerTransaction,
    MaterialKind,
    SiteRecord,
    TransactionType,
)
from materials_kernel.exceptions import (
    InvalidInputError,
    PersistenceError,
    SiteNotFoundError,
    StorageError,
    TransactionNotFoundError,
)
from materials_kernel.logging_config import LogContext, get_logger
from materials_kernel.selectors.inventory_selector import (
    InventorySelector,
    TransactionSelector,
)
from materials_kernel.selectors.site_selector import SiteSelector
from materials_kernel.services.ledger_writer import LedgerWriter
from materials_services.storage import BlobStore, UploadFile

logger = get_logger("services.shipment")


class WorkflowStep(str, Enum):
    VALIDATE = "validate"
    CONVERT = "convert"
    CHECK_STOCK = "check_stock"
    UPLOAD = "upload"
    LOAD_LEVEL = "load_level"
    UPDATE_LEVEL = "update_level"
    INSERT_TRANSACTION = "insert_transaction"
    DELETE_TRANSACTION = "delete_transaction"
    RELOAD = "reload"


@dataclass(frozen=True)
class ShipmentResult:
    transaction: LedgerTransaction
    conversion: Conversion
    level_change: LevelChange
    ledger: tuple[LedgerTransaction, ...]
    warnings: tuple[str, ...] = ()
    steps: tuple[WorkflowStep, ...] = ()

    @property
    def level(self) -> InventoryLevel:
        return self.level_change.after


@dataclass(frozen=True)
class DeleteResult:
    removed: LedgerTransaction
    level_change: LevelChange
    ledger: tuple[LedgerTransaction, ...]
    warnings: tuple[str, ...] = ()
    steps: tuple[WorkflowStep, ...] = ()


@dataclass
class _Trail:
    """Steps completed so far and warnings gathered along the way."""

    steps: list[WorkflowStep] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def done(self, step: WorkflowStep) -> None:
        self.steps.append(step)
        logger.debug("workflow_step_completed", extra={"step": step.value})


def _as_uuid(value, field_name: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise InvalidInputError(field_name, f"not a valid id: {value!r}") from None


def _required_text(value, field_name: str) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise InvalidInputError(field_name, "is required")
    return text


@contextmanager
def _persistence_step(step: WorkflowStep) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error(
            "persistence_step_failed",
            extra={"step": step.value},
            exc_info=True,
        )
        raise PersistenceError(step.value, str(exc)) from exc


class ShipmentService:
    """
    Stock movement workflows for one deployment.

    Takes a session factory rather than a session: in the default
    non-atomic mode each write step commits on its own.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        blob_store: BlobStore | None = None,
        clock: Clock | None = None,
        ledger_config: LedgerConfig | None = None,
        storage_config: StorageConfig | None = None,
        engine: LedgerEngine | None = None,
    ):
        self._factory = session_factory
        self._blob_store = blob_store
        self._clock = clock or SystemClock()
        self._config = ledger_config or LedgerConfig()
        self._storage = storage_config or StorageConfig()
        self._engine = engine or LedgerEngine(self._config.standard_rod_length)

    @property
    def engine(self) -> LedgerEngine:
        return self._engine

    # -----------------------------------------------------------------
    # Shared steps
    # -----------------------------------------------------------------

    def _load_site(self, site_id: UUID) -> SiteRecord:
        with _persistence_step(WorkflowStep.VALIDATE):
            with session_scope(self._factory) as session:
                site = SiteSelector(session).get(site_id)
        if site is None:
            raise SiteNotFoundError(site_id)
        return site

    def _upload(
        self,
        site: SiteRecord,
        kind: MaterialKind,
        direction: TransactionType,
        upload: UploadFile | None,
        trail: _Trail,
    ) -> Attachment | None:
        if upload is None:
            return None
        if self._blob_store is None:
            trail.warnings.append("No file storage configured; saved without attachment")
            logger.warning("file_upload_skipped", extra={"reason": "no_blob_store"})
            return None
        folder = self._storage.folder_for(kind, direction)
        try:
            stored = self._blob_store.upload(folder, site.site_code, upload)
        except StorageError as exc:
            logger.warning(
                "file_upload_failed",
                extra={"folder": folder, "original_name": upload.file_name},
                exc_info=True,
            )
            trail.warnings.append(
                f"File upload failed, transaction saved without file: {exc}"
            )
            return None
        trail.done(WorkflowStep.UPLOAD)
        return stored.to_attachment()

    def _reload(self, site_id: UUID, kind: MaterialKind, trail: _Trail) -> tuple[LedgerTransaction, ...]:
        with _persistence_step(WorkflowStep.RELOAD):
            with session_scope(self._factory) as session:
                ledger = tuple(TransactionSelector(session).for_site(site_id, kind))
        trail.done(WorkflowStep.RELOAD)
        return ledger

    def _write_movement(
        self,
        site_id: UUID,
        tx: LedgerTransaction,
        actor_id: UUID | None,
        trail: _Trail,
    ) -> tuple[LedgerTransaction, LevelChange]:
        """LOAD_LEVEL, UPDATE_LEVEL and INSERT_TRANSACTION."""
        if self._config.atomic_writes:
            step = WorkflowStep.LOAD_LEVEL
            try:
                with session_scope(self._factory) as session:
                    level = InventorySelector(session).level(
                        site_id, tx.kind, tx.variant, tx.length,
                    )
                    change = self._engine.apply_transaction(level, tx)
                    writer = LedgerWriter(session)
                    step = WorkflowStep.UPDATE_LEVEL
                    writer.upsert_level(site_id, change.after, actor_id)
                    step = WorkflowStep.INSERT_TRANSACTION
                    stored = writer.insert_transaction(tx, actor_id)
            except SQLAlchemyError as exc:
                logger.error(
                    "persistence_step_failed",
                    extra={"step": step.value, "atomic": True},
                    exc_info=True,
                )
                raise PersistenceError(step.value, str(exc)) from exc
            trail.done(WorkflowStep.LOAD_LEVEL)
            trail.done(WorkflowStep.UPDATE_LEVEL)
            trail.done(WorkflowStep.INSERT_TRANSACTION)
            return stored, change

        with _persistence_step(WorkflowStep.LOAD_LEVEL):
            with session_scope(self._factory) as session:
                level = InventorySelector(session).level(
                    site_id, tx.kind, tx.variant, tx.length,
                )
        trail.done(WorkflowStep.LOAD_LEVEL)
        change = self._engine.apply_transaction(level, tx)

        with _persistence_step(WorkflowStep.UPDATE_LEVEL):
            with session_scope(self._factory) as session:
                LedgerWriter(session).upsert_level(site_id, change.after, actor_id)
        trail.done(WorkflowStep.UPDATE_LEVEL)

        # Level is committed; a failure below leaves it ahead of the ledger.
        with _persistence_step(WorkflowStep.INSERT_TRANSACTION):
            with session_scope(self._factory) as session:
                stored = LedgerWriter(session).insert_transaction(tx, actor_id)
        trail.done(WorkflowStep.INSERT_TRANSACTION)
        return stored, change

    def _build_transaction(
        self,
        site_id: UUID,
        conversion: Conversion,
        counterparty: str,
        attachment: Attachment | None,
    ) -> LedgerTransaction:
        return LedgerTransaction(
            site_id=site_id,
            kind=conversion.kind,
            type=conversion.type,
            variant=conversion.variant,
            quantity_units=conversion.quantity_units,
            weight=conversion.weight,
            timestamp=self._clock.now_utc(),
            counterparty=counterparty,
            length=conversion.length,
            input_weight=conversion.input_weight,
            weight_unit=conversion.weight_unit,
            wastage=conversion.wastage,
            attachment=attachment,
        )

    def _clamp_warning(self, change: LevelChange, trail: _Trail) -> None:
        if change.clamped:
            trail.warnings.append(
                "Inventory level was clamped at zero; ledger and stock have diverged"
            )

    # -----------------------------------------------------------------
    # Workflows
    # -----------------------------------------------------------------

    def receive(
        self,
        site_id,
        kind: MaterialKind | str,
        variant,
        amount,
        unit=None,
        imported_from: str | None = None,
        length=None,
        attachment: UploadFile | None = None,
        actor_id: UUID | None = None,
    ) -> ShipmentResult:
        """Record an incoming shipment and add it to the site's stock."""
        kind = MaterialKind(kind)
        site_id = _as_uuid(site_id, "site_id")
        trail = _Trail()

        with LogContext.bind(site_id=site_id, material=kind.value, actor_id=actor_id):
            supplier = _required_text(imported_from, "imported_from")
            normalize_variant(kind, variant)
            if attachment is not None and self._blob_store is not None:
                self._blob_store.validate(attachment)
            site = self._load_site(site_id)
            trail.done(WorkflowStep.VALIDATE)

            conversion = self._engine.convert_incoming(
                kind, variant, amount, unit, length,
            )
            trail.done(WorkflowStep.CONVERT)
            if conversion.wastage is not None and conversion.wastage > self._config.wastage_warning:
                trail.warnings.append(
                    f"Wastage of {conversion.wastage} t could not be stocked as whole pieces"
                )

            stored_file = self._upload(site, kind, TransactionType.INCOMING, attachment, trail)
            tx = self._build_transaction(site_id, conversion, supplier, stored_file)

            stored, change = self._write_movement(site_id, tx, actor_id, trail)
            self._clamp_warning(change, trail)
            ledger = self._reload(site_id, kind, trail)

            logger.info(
                "shipment_received",
                extra={
                    "transaction_id": str(stored.id),
                    "variant": stored.variant,
                    "quantity_units": stored.quantity_units,
                    "weight": stored.weight,
                    "wastage": stored.wastage,
                    "imported_from": supplier,
                    "has_attachment": stored.attachment is not None,
                },
            )
            return ShipmentResult(
                transaction=stored,
                conversion=conversion,
                level_change=change,
                ledger=ledger,
                warnings=tuple(trail.warnings),
                steps=tuple(trail.steps),
            )

    def dispatch(
        self,
        site_id,
        kind: MaterialKind | str,
        variant,
        quantity,
        recipient: str | None = None,
        length=None,
        unit=None,
        attachment: UploadFile | None = None,
        actor_id: UUID | None = None,
    ) -> ShipmentResult:
        """Record an outgoing shipment after checking it against current stock."""
        kind = MaterialKind(kind)
        site_id = _as_uuid(site_id, "site_id")
        trail = _Trail()

        with LogContext.bind(site_id=site_id, material=kind.value, actor_id=actor_id):
            contractor = _required_text(recipient, "recipient")
            key = normalize_variant(kind, variant)
            if attachment is not None and self._blob_store is not None:
                self._blob_store.validate(attachment)
            site = self._load_site(site_id)
            trail.done(WorkflowStep.VALIDATE)

            rod_length = self._engine.resolve_length(length) if kind is MaterialKind.STEEL else None
            with _persistence_step(WorkflowStep.CHECK_STOCK):
                with session_scope(self._factory) as session:
                    current = InventorySelector(session).level(site_id, kind, key, rod_length)
            conversion = self._engine.convert_outgoing(
                kind, key, quantity, current, rod_length, unit,
            )
            trail.done(WorkflowStep.CHECK_STOCK)

            stored_file = self._upload(site, kind, TransactionType.OUTGOING, attachment, trail)
            tx = self._build_transaction(site_id, conversion, contractor, stored_file)

            stored, change = self._write_movement(site_id, tx, actor_id, trail)
            self._clamp_warning(change, trail)
            ledger = self._reload(site_id, kind, trail)

            logger.info(
                "shipment_dispatched",
                extra={
                    "transaction_id": str(stored.id),
                    "variant": stored.variant,
                    "quantity_units": stored.quantity_units,
                    "weight": stored.weight,
                    "recipient": contractor,
                    "has_attachment": stored.attachment is not None,
                },
            )
            return ShipmentResult(
                transaction=stored,
                conversion=conversion,
                level_change=change,
                ledger=ledger,
                warnings=tuple(trail.warnings),
                steps=tuple(trail.steps),
            )

    def delete(
        self,
        site_id,
        kind: MaterialKind | str,
        transaction_id,
        actor_id: UUID | None = None,
    ) -> DeleteResult:
        """Remove a ledger row, then reverse its effect on the level."""
        kind = MaterialKind(kind)
        site_id = _as_uuid(site_id, "site_id")
        transaction_id = _as_uuid(transaction_id, "transaction_id")
        trail = _Trail()

        with LogContext.bind(
            site_id=site_id,
            material=kind.value,
            transaction_id=transaction_id,
            actor_id=actor_id,
        ):
            step = WorkflowStep.DELETE_TRANSACTION
            try:
                with session_scope(self._factory) as session:
                    existing = TransactionSelector(session).get(kind, transaction_id)
                    if existing is None or existing.site_id != site_id:
                        raise TransactionNotFoundError(kind.value, transaction_id)
                    removed = LedgerWriter(session).delete_transaction(kind, transaction_id)
                    if self._config.atomic_writes:
                        step = WorkflowStep.UPDATE_LEVEL
                        change = self._reverse_in(session, site_id, removed, actor_id)
            except SQLAlchemyError as exc:
                logger.error(
                    "persistence_step_failed",
                    extra={"step": step.value},
                    exc_info=True,
                )
                raise PersistenceError(step.value, str(exc)) from exc
            trail.done(WorkflowStep.DELETE_TRANSACTION)

            if not self._config.atomic_writes:
                with _persistence_step(WorkflowStep.UPDATE_LEVEL):
                    with session_scope(self._factory) as session:
                        change = self._reverse_in(session, site_id, removed, actor_id)
            trail.done(WorkflowStep.UPDATE_LEVEL)
            self._clamp_warning(change, trail)

            ledger = self._reload(site_id, kind, trail)
            logger.info(
                "transaction_deleted",
                extra={
                    "transaction_type": removed.type.value,
                    "variant": removed.variant,
                    "quantity_units": removed.quantity_units,
                    "weight": removed.weight,
                    "clamped": change.clamped,
                },
            )
            return DeleteResult(
                removed=removed,
                level_change=change,
                ledger=ledger,
                warnings=tuple(trail.warnings),
                steps=tuple(trail.steps),
            )

    def _reverse_in(
        self,
        session: Session,
        site_id: UUID,
        removed: LedgerTransaction,
        actor_id: UUID | None,
    ) -> LevelChange:
        level = InventorySelector(session).level(
            site_id, removed.kind, removed.variant, removed.length,
        )
        change = self._engine.reverse_transaction(level, removed)
        LedgerWriter(session).upsert_level(site_id, change.after, actor_id)
        return change
