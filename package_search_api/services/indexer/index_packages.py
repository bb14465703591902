import os
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from pydantic import ValidationError
from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_fixed

from package_search_api.services.indexer.document_builder import (
    build_document,
    build_virtual_document,
    is_spam,
)
from package_search_api.services.indexer.database_manager import row_to_package
from package_search_api.services.search.exceptions import PackageNotFound, StoreWriteLocked
from package_search_api.services.search.models.document import SearchDocument
from package_search_api.services.search.models.package import Package
from package_search_api.services.search.solr_client import UpdateRequest

logger = logging.getLogger(__name__)

DEPLOY_LOCK_FILE = 'deploy.globallock'
BATCH_SIZE = 50
MARK_ATTEMPTS = 5
MARK_RETRY_WAIT = 2

STATUS_DONE = 'done'
STATUS_ABORTED = 'aborted'

@dataclass
class IndexRequest:
    """Options of one indexing run."""
    package: Optional[str] = None
    force: bool = False
    index_all: bool = False

@dataclass(frozen=True)
class ItemOutcome:
    """What happened to one package of a batch."""
    package_id: int
    name: str
    documents: Tuple[SearchDocument, ...] = ()
    deleted: bool = False
    error: Optional[str] = None
    skipped_providers: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

@dataclass
class BatchOutcome:
    ids: List[int]
    items: List[ItemOutcome] = field(default_factory=list)
    committed: bool = False
    error: Optional[str] = None

    @property
    def processed_ids(self) -> List[int]:
        return [item.package_id for item in self.items if item.ok]

    @property
    def marked_ids(self) -> List[int]:
        return self.processed_ids if self.committed else []

@dataclass
class IndexRunReport:
    status: str = STATUS_DONE
    reason: Optional[str] = None
    batches: List[BatchOutcome] = field(default_factory=list)

    @property
    def marked_ids(self) -> List[int]:
        return [package_id for batch in self.batches for package_id in batch.marked_ids]

    @property
    def failed_batches(self) -> List[BatchOutcome]:
        return [batch for batch in self.batches if not batch.committed]

    @property
    def skipped(self) -> List[ItemOutcome]:
        return [item for batch in self.batches for item in batch.items if not item.ok]

class PackageIndexer:
    """
    Batch job pushing package documents from the relational store into Solr.

    A run is serialized by a named lock and skipped entirely while a deploy
    marker file exists. Packages are processed in batches; a batch that
    fails to commit leaves its packages stale so the next run picks them up.
    """

    def __init__(
        self,
        repository,
        solr,
        popularity_source,
        locker,
        cache_dir: str,
        lock_name: str,
        batch_size: int = BATCH_SIZE,
        mark_attempts: int = MARK_ATTEMPTS,
        mark_retry_wait: float = MARK_RETRY_WAIT,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.solr = solr
        self.popularity = popularity_source
        self.locker = locker
        self.cache_dir = cache_dir
        self.lock_name = lock_name
        self.batch_size = batch_size
        self.mark_attempts = mark_attempts
        self.mark_retry_wait = mark_retry_wait
        self.clock = clock

    @property
    def deploy_lock_path(self) -> str:
        return os.path.join(self.cache_dir, DEPLOY_LOCK_FILE)

    def run(self, request: IndexRequest) -> IndexRunReport:
        if os.path.exists(self.deploy_lock_path):
            logger.info(f"Aborting, {self.deploy_lock_path} file present")
            return IndexRunReport(status=STATUS_ABORTED, reason='deploy')

        if not self.locker.lock_command(self.lock_name):
            logger.info("Aborting, another task is running already")
            return IndexRunReport(status=STATUS_ABORTED, reason='locked')

        report = IndexRunReport()
        try:
            ids = self._select_ids(request)

            # clear index before a full-update
            if request.force and not request.package:
                logger.info("Deleting existing index")
                self.solr.delete_all()

            total = len(ids)
            logger.info(f"Indexing {total} packages")
            for offset in range(0, total, self.batch_size):
                batch = self._process_batch(ids[offset:offset + self.batch_size], offset, total)
                report.batches.append(batch)
                # keep the run lock alive for runs outlasting its TTL
                self.locker.refresh_command(self.lock_name)
        finally:
            self.locker.unlock_command(self.lock_name)

        logger.info(
            f"Indexing finished: {len(report.marked_ids)} packages marked indexed, "
            f"{len(report.failed_batches)} failed batches, {len(report.skipped)} skipped packages"
        )
        return report

    def _select_ids(self, request: IndexRequest) -> List[int]:
        if request.package:
            package_id = self.repository.find_id_by_name(request.package)
            if package_id is None:
                raise PackageNotFound(request.package)
            return [package_id]

        if request.force or request.index_all:
            ids = self.repository.get_all_ids()
            self.repository.reset_indexed_at()
            return ids

        return self.repository.get_stale_ids()

    def _process_batch(self, batch_ids: List[int], offset: int, total: int) -> BatchOutcome:
        index_time = self.clock()
        rows = self.repository.find_rows_by_ids(batch_ids)
        update = UpdateRequest()
        outcome = BatchOutcome(ids=list(batch_ids))

        width = len(str(total))
        for position, row in enumerate(rows, start=offset + 1):
            item = self._build_item(row, f"[{position:>{width}}/{total}]")
            outcome.items.append(item)
            if not item.ok:
                logger.error(f"Exception: {item.error}, skipping package {item.name}.")
                continue

            if item.deleted:
                update.add_delete_by_id(item.package_id)
            for document in item.documents:
                update.add_document(document)

        update.add_commit()
        try:
            self.solr.update(update)
        except Exception as e:
            logger.error(
                f"{type(e).__name__}: {e}, occurred while processing packages: "
                f"{','.join(str(package_id) for package_id in batch_ids)}"
            )
            outcome.error = str(e)
            return outcome

        outcome.committed = True
        ids_to_update = outcome.processed_ids
        if ids_to_update:
            logger.debug("Updating package indexed_at column")
            self._mark_indexed(ids_to_update, index_time)
        return outcome

    def _build_item(self, row: Tuple[Any, ...], progress: str) -> ItemOutcome:
        try:
            package = row_to_package(row)
        except ValidationError as e:
            return ItemOutcome(package_id=row[0], name=str(row[1]), error=str(e))

        logger.debug(f"{progress} Indexing {package.name}")

        # spam packages are removed from the search index
        if is_spam(package):
            return ItemOutcome(package_id=package.id, name=package.name, deleted=True)

        try:
            document = build_document(
                package,
                self.repository.get_tags(package.id),
                self.popularity.get_downloads(package.id),
                self.popularity.get_faver_count(package.id),
                self.popularity.get_trending_score(package.id),
            )
        except Exception as e:
            return ItemOutcome(package_id=package.id, name=package.name, error=str(e))

        documents = [document]
        skipped = []
        for provided in self._get_providers(package):
            try:
                documents.append(build_virtual_document(provided))
            except Exception as e:
                logger.error(f"{type(e).__name__}: {e}, skipping package {package.name}:provide:{provided}")
                skipped.append(provided)

        return ItemOutcome(
            package_id=package.id,
            name=package.name,
            documents=tuple(documents),
            skipped_providers=tuple(skipped),
        )

    def _get_providers(self, package: Package) -> List[str]:
        try:
            return self.repository.get_providers(package.id)
        except Exception as e:
            logger.error(f"{type(e).__name__}: {e}, skipping provides of package {package.name}")
            return []

    def _mark_indexed(self, ids: List[int], index_time: datetime) -> None:
        """Write indexed_at, retrying on lock conflicts; the last failure is fatal."""
        retrying = Retrying(
            stop=stop_after_attempt(self.mark_attempts),
            wait=wait_fixed(self.mark_retry_wait),
            retry=retry_if_exception_type(StoreWriteLocked),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                self.repository.update_indexed_at(ids, index_time)
