"""
Ingestion pipeline orchestration.

Turns one backup folder into a freshly built local index. Every run is a
full rebuild: the index is cleared before anything is written, so an
interrupted run leaves a consistent (if incomplete) index and never a mix
of two backups.

Pipeline Steps:
    1. Validate the backup (folder, manifest, message store, encryption);
       this builds the manifest map and resolves the message store once
    2. Open the index and clear it
    3. Extract and load contacts
    4. Extract and load messages
    5. Extract and load links
    6. Recompute contact item counts
    7. Record backup_path and last_scan metadata

Steps 3-6 run strictly in order on one index connection: links and
messages refer to contacts, and the count update needs both.

Progress reporting is best-effort. Reports go to a plain callback or to a
ProgressChannel, which drops reports instead of blocking the pipeline when
nobody is reading.
"""

import queue
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Union
import logging

from message_archive.backup.integrity import BackupInfo, BackupIntegrityCheck
from message_archive.etl.extractors import MessageStoreParser
from message_archive.index_store import IndexStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

META_BACKUP_PATH = "backup_path"
META_LAST_SCAN = "last_scan"


@dataclass
class IngestionResult:
    """Result of an ingestion run."""

    success: bool
    contacts_loaded: int = 0
    messages_loaded: int = 0
    links_loaded: int = 0
    backup_info: Optional[BackupInfo] = None
    error: Optional[str] = None
    error_details: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def is_encrypted(self) -> bool:
        return bool(self.backup_info and self.backup_info.is_encrypted)

    def __str__(self) -> str:
        if not self.success:
            return f"Ingestion FAILED: {self.error}"
        return (
            f"Ingestion SUCCESS\n"
            f"  Contacts: {self.contacts_loaded}\n"
            f"  Messages: {self.messages_loaded}\n"
            f"  Links: {self.links_loaded}\n"
            f"  Duration: {self.duration_seconds:.2f}s"
        )


class ProgressChannel:
    """
    Bounded, lossy progress queue between the pipeline and a reader.

    report() never blocks: when the queue is full the report is dropped.
    Instances are callable, so they can be passed wherever a progress
    callback is accepted.
    """

    def __init__(self, maxsize: int = 100):
        self._queue: "queue.Queue[str]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def report(self, message: str) -> None:
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self.dropped += 1

    __call__ = report

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """Next report, or None if none arrives within `timeout` seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[str]:
        """All reports currently queued, oldest first."""
        messages = []
        while True:
            try:
                messages.append(self._queue.get_nowait())
            except queue.Empty:
                return messages


class _Reporter:
    """Wraps a progress callback so a failing consumer can't break ingestion."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self._callback = callback

    def __call__(self, message: str) -> None:
        logger.debug(f"Progress: {message}")
        if self._callback is None:
            return
        try:
            self._callback(message)
        except Exception as e:
            logger.warning(f"Progress callback raised {e!r}; report dropped")


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def run_ingestion(
    backup_path: Union[str, Path],
    index_db_path: Optional[Union[str, Path]] = None,
    progress: Optional[ProgressCallback] = None,
    extract_phone_numbers: bool = False,
) -> IngestionResult:
    """
    Rebuild the local index from a backup folder.

    Never raises: validation failures and unexpected errors are reported in
    the returned IngestionResult (with a traceback in error_details for the
    latter).

    Args:
        backup_path: Path to the unencrypted backup folder.
        index_db_path: Index file; defaults to the configured location.
        progress: Optional callback receiving coarse status lines.
        extract_phone_numbers: Also record phone numbers found in text.

    Returns:
        IngestionResult with counts and success status.
    """
    start_time = datetime.now()
    report = _Reporter(progress)

    def elapsed() -> float:
        return (datetime.now() - start_time).total_seconds()

    try:
        # Step 1
        logger.info("Step 1: Validating backup...")
        report("Validating backup...")
        info = BackupIntegrityCheck().validate(backup_path, progress=report)
        if not info.is_valid:
            report(info.error_message or "Backup is not valid")
            return IngestionResult(
                success=False,
                backup_info=info,
                error=info.error_message,
                duration_seconds=elapsed(),
            )

        # Step 2
        with IndexStore(index_db_path) as store:
            logger.info("Step 2: Clearing index...")
            store.clear_all()

            parser = MessageStoreParser(
                info.message_store_path, extract_phone_numbers=extract_phone_numbers
            )

            # Step 3
            logger.info("Step 3: Extracting contacts...")
            report("Reading contacts...")
            contacts_loaded = store.insert_contacts(parser.get_contacts())

            # Step 4
            logger.info("Step 4: Extracting messages...")
            messages_loaded = store.insert_messages(parser.get_messages(report))
            report(f"Saved {messages_loaded} messages")

            # Step 5
            logger.info("Step 5: Extracting links...")
            links_loaded = store.insert_links(parser.extract_links(report))

            # Step 6
            logger.info("Step 6: Updating contact counts...")
            store.update_contact_counts()

            # Step 7
            store.set_meta(META_BACKUP_PATH, str(info.path))
            store.set_meta(META_LAST_SCAN, _now_iso())

        result = IngestionResult(
            success=True,
            contacts_loaded=contacts_loaded,
            messages_loaded=messages_loaded,
            links_loaded=links_loaded,
            backup_info=info,
            duration_seconds=elapsed(),
        )
        logger.info(f"Ingestion completed successfully in {result.duration_seconds:.2f}s")
        report("Scan complete")
        return result

    except Exception as e:
        logger.exception(f"Ingestion failed: {e}")
        report(f"Scan failed: {e}")
        return IngestionResult(
            success=False,
            error=str(e),
            error_details=traceback.format_exc(),
            duration_seconds=elapsed(),
        )


_executor: Optional[ThreadPoolExecutor] = None


def _get_executor() -> ThreadPoolExecutor:
    # One worker: ingestion passes never overlap
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingestion")
    return _executor


def start_ingestion(
    backup_path: Union[str, Path],
    index_db_path: Optional[Union[str, Path]] = None,
    progress: Optional[ProgressCallback] = None,
    extract_phone_numbers: bool = False,
) -> "Future[IngestionResult]":
    """
    Run run_ingestion() on the background worker.

    Submitted passes run one after another, never in parallel.

    Returns:
        Future resolving to the IngestionResult.
    """
    return _get_executor().submit(
        run_ingestion,
        backup_path,
        index_db_path,
        progress,
        extract_phone_numbers,
    )
