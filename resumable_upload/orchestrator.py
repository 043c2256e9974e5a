"""
Module for orchestrating a resumable multipart upload of one file.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Dict, List, Optional

from .control import CancelToken, PauseController
from .exceptions import CollaboratorError, FinalizeError, UploadStateError
from .models import (
    ChunkDescriptor,
    CompletedPart,
    ProgressSnapshot,
    RemoteSession,
    UploadOutcome,
    UploadState,
    UploadTarget
)
from .planner import DEFAULT_CHUNK_SIZE, plan_chunks
from .progress import ProgressTracker
from .retry import DEFAULT_MAX_ATTEMPTS, RetryPolicy
from .scheduler import DEFAULT_CONCURRENCY, ConcurrencyScheduler, ScheduleOutcome
from .session_store import SessionStore
from .transfer import PartTransferClient, read_chunk

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressSnapshot], None]

ABORTABLE_STATES = (
    UploadState.IDLE,
    UploadState.PLANNING,
    UploadState.TRANSFERRING,
    UploadState.PAUSED,
    UploadState.FAILED
)


@dataclass
class UploadContext:
    """Mutable state of one upload, owned by a single orchestrator."""
    target: UploadTarget
    session: Optional[RemoteSession] = None
    chunks: List[ChunkDescriptor] = field(default_factory=list)
    parts: Dict[int, CompletedPart] = field(default_factory=dict)
    progress: Optional[ProgressTracker] = None
    token: Optional[CancelToken] = None

    def sorted_parts(self) -> List[CompletedPart]:
        return [self.parts[n] for n in sorted(self.parts)]

    def uploaded_bytes(self) -> int:
        return sum(self.chunks[n - 1].size for n in self.parts)


class UploadOrchestrator:
    """Drives one file through plan, transfer, and finalize.

    ``start``/``resume`` block until the upload completes, pauses, or fails.
    ``pause`` and ``abort`` may be called from another thread or a signal
    handler while a run is in progress.
    """

    def __init__(self, backend, store: Optional[SessionStore] = None,
                 transfer: Optional[PartTransferClient] = None,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 concurrency: int = DEFAULT_CONCURRENCY,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 on_progress: Optional[ProgressCallback] = None,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize the upload orchestrator.

        Args:
            backend: UploadApiClient or S3UploadBackend
            store: Session persistence; in-memory when omitted
            transfer: Part transfer client; built from ``backend`` when omitted
            chunk_size: Size of each part in bytes
            concurrency: Number of parts uploaded at once
            max_attempts: Attempts per part before giving up
            on_progress: Called with a ProgressSnapshot whenever progress changes
            clock: Monotonic clock used for throughput sampling
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be > 0, got {chunk_size}")
        self.backend = backend
        self.store = store or SessionStore()
        self.transfer = transfer or PartTransferClient(backend)
        self.chunk_size = chunk_size
        self.scheduler = ConcurrencyScheduler(concurrency)
        self.retry_policy = RetryPolicy(max_attempts)
        self.pause_controller = PauseController()
        self._on_progress = on_progress
        self._clock = clock
        self._state = UploadState.IDLE
        self._lock = threading.Lock()
        self._context: Optional[UploadContext] = None

    @property
    def state(self) -> UploadState:
        with self._lock:
            return self._state

    @property
    def progress(self) -> Optional[ProgressSnapshot]:
        ctx = self._context
        if ctx is None or ctx.progress is None:
            return None
        return ctx.progress.snapshot()

    def _transition(self, new_state: UploadState) -> bool:
        """Move to ``new_state`` unless the upload was aborted meanwhile."""
        with self._lock:
            if self._state is UploadState.ABORTED:
                return False
            logger.debug(f"Upload state {self._state.value} -> {new_state.value}")
            self._state = new_state
            return True

    def _require_state(self, *allowed: UploadState) -> None:
        with self._lock:
            if self._state not in allowed:
                raise UploadStateError(f"Operation not allowed in state {self._state.value}")

    def _emit(self, snapshot: ProgressSnapshot) -> None:
        if self._on_progress is not None:
            self._on_progress(snapshot)

    def start(self, target: UploadTarget) -> UploadOutcome:
        """Upload ``target``, resuming a persisted session when one matches.

        Args:
            target: File to upload; must have a path and at least one byte

        Returns:
            UploadOutcome with status COMPLETED, PAUSED or ABORTED

        Raises:
            ExhaustedRetries: if a part kept failing; the session is kept
            FinalizeError: if the storage side refused to assemble the object
            CollaboratorError: if the session could not be opened or listed
        """
        if target.path is None:
            raise ValueError("UploadTarget.path is required to read chunk data")
        if target.file_size == 0:
            raise ValueError(f"{target.file_name} is empty; multipart uploads need at least one byte")
        self._require_state(UploadState.IDLE)

        self._context = UploadContext(target=target)
        return self._run(self._context)

    def resume(self) -> UploadOutcome:
        """Continue a paused or failed upload from its recorded parts."""
        self._require_state(UploadState.PAUSED, UploadState.FAILED)
        return self._run(self._context)

    def pause(self) -> None:
        """Stop dispatching parts and cancel in-flight transfers.

        The blocked ``start``/``resume`` call returns a paused outcome once
        running transfers have wound down.
        """
        self.pause_controller.pause()
        ctx = self._context
        if ctx is not None and ctx.progress is not None:
            ctx.progress.pause()

    def abort(self) -> None:
        """Abandon the upload and release the remote session.

        Works on the persisted session too when nothing has been started in
        this process. A session opened by a run that is still planning is
        released by that run as soon as the storage side returns it.

        Not allowed while FINALIZING: the complete call is already in
        flight and cannot be withdrawn. A rejected complete aborts the
        session on its own.
        """
        with self._lock:
            if self._state not in ABORTABLE_STATES:
                raise UploadStateError(f"Operation not allowed in state {self._state.value}")
            self._state = UploadState.ABORTED
            ctx = self._context
            session = ctx.session if ctx is not None else None
        self.pause_controller.pause()

        if ctx is None:
            session = self._persisted_session()
        if session is not None:
            self.backend.abort(session)
            logger.info(f"Aborted multipart upload {session.upload_id}")
        self.store.clear()

    def _persisted_session(self) -> Optional[RemoteSession]:
        record = self.store.snapshot()
        if not record:
            return None
        try:
            return RemoteSession(upload_id=record["uploadId"], object_key=record["key"])
        except KeyError:
            return None

    def _run(self, ctx: UploadContext) -> UploadOutcome:
        ctx.token = self.pause_controller.resume()

        if not self._transition(UploadState.PLANNING):
            return UploadOutcome(status=UploadState.ABORTED)
        try:
            self._plan(ctx)
        except Exception:
            self._transition(UploadState.FAILED)
            raise

        if not self._transition(UploadState.TRANSFERRING):
            return UploadOutcome(status=UploadState.ABORTED)
        pending = [c for c in ctx.chunks if c.part_number not in ctx.parts]
        logger.info(
            f"Uploading {len(pending)} of {len(ctx.chunks)} parts of {ctx.target.file_name} "
            f"to {ctx.session.object_key}"
        )
        tasks = [partial(self._upload_chunk, ctx, chunk) for chunk in pending]
        try:
            outcome = self.scheduler.run_all(tasks, ctx.token, on_result=partial(self._commit, ctx))
        except Exception as e:
            if self._transition(UploadState.FAILED):
                logger.error(f"Upload of {ctx.target.file_name} failed: {e}")
                raise
            return UploadOutcome(status=UploadState.ABORTED)

        if outcome is ScheduleOutcome.PAUSED:
            if not self._transition(UploadState.PAUSED):
                return UploadOutcome(status=UploadState.ABORTED)
            self._emit(ctx.progress.pause())
            logger.info(f"Upload paused with {len(ctx.parts)}/{len(ctx.chunks)} parts done")
            return UploadOutcome(status=UploadState.PAUSED, object_key=ctx.session.object_key,
                                 parts=ctx.sorted_parts())

        return self._finalize(ctx)

    def _plan(self, ctx: UploadContext) -> None:
        """Recover or create the remote session and seed completed parts."""
        target = ctx.target
        ctx.chunks = plan_chunks(target.file_size, self.chunk_size)

        if ctx.session is None:
            loaded = self.store.load(target)
            if loaded is not None and not self._adopt(ctx, loaded):
                return
        resumed = ctx.session is not None

        if resumed:
            try:
                self._reconcile(ctx)
            except CollaboratorError as e:
                if e.status_code != 404:
                    raise
                logger.warning(f"Session {ctx.session.upload_id} no longer exists remotely, starting over")
                self.store.clear()
                ctx.session = None
                resumed = False

        if not resumed:
            session = self.backend.start_session(target.file_name, target.content_type)
            ctx.parts = {}
            self.store.save(target, session)
            if not self._adopt(ctx, session):
                return
            logger.info(f"Started upload session {session.upload_id} for {target.file_name}")

        ctx.progress = ProgressTracker(target.file_size, len(ctx.chunks), clock=self._clock)
        self._emit(ctx.progress.start(ctx.uploaded_bytes(), len(ctx.parts)))

    def _adopt(self, ctx: UploadContext, session: RemoteSession) -> bool:
        """Attach ``session`` to the run, releasing it if an abort got there first.

        Returns:
            False when the upload was aborted and the session released
        """
        with self._lock:
            aborted = self._state is UploadState.ABORTED
            if not aborted:
                ctx.session = session
        if aborted:
            logger.info(f"Upload aborted while planning, releasing session {session.upload_id}")
            self._release(session)
        return not aborted

    def _reconcile(self, ctx: UploadContext) -> None:
        """Replace local part records with the storage side's listing."""
        remote = self.backend.list_parts(ctx.session)
        total = len(ctx.chunks)
        parts = {}
        for part in remote:
            if 1 <= part.part_number <= total:
                parts[part.part_number] = part
            else:
                logger.warning(f"Ignoring part {part.part_number} outside 1..{total}")
        ctx.parts = parts
        self.store.replace_parts(list(parts.values()))
        logger.info(
            f"Resuming session {ctx.session.upload_id}: {len(parts)}/{total} parts already uploaded"
        )

    def _upload_chunk(self, ctx: UploadContext, chunk: ChunkDescriptor) -> CompletedPart:
        def attempt() -> CompletedPart:
            data = read_chunk(ctx.target.path, chunk)
            return self.transfer.upload_part(ctx.session, chunk, data, ctx.token)

        return self.retry_policy.run(
            attempt,
            ctx.token,
            part_number=chunk.part_number
        )

    def _commit(self, ctx: UploadContext, part: CompletedPart) -> None:
        """Record a finished part; runs on the orchestrating thread only."""
        if part.part_number in ctx.parts:
            return
        ctx.parts[part.part_number] = part
        self.store.record_part(part)
        self._emit(ctx.progress.update(ctx.chunks[part.part_number - 1].size))

    def _finalize(self, ctx: UploadContext) -> UploadOutcome:
        missing = [c.part_number for c in ctx.chunks if c.part_number not in ctx.parts]
        if missing:
            raise UploadStateError(f"Cannot finalize, parts missing: {missing}")
        if not self._transition(UploadState.FINALIZING):
            return UploadOutcome(status=UploadState.ABORTED)

        parts = ctx.sorted_parts()
        session = ctx.session
        try:
            self.backend.complete(session, parts)
        except CollaboratorError as e:
            logger.error(f"Completing upload {session.upload_id} failed: {e}")
            self._release(session)
            with self._lock:
                self._state = UploadState.ABORTED
            raise FinalizeError(f"Could not complete {session.object_key}: {e}") from e

        self.store.clear()
        self._transition(UploadState.COMPLETED)
        self._emit(ctx.progress.pause())
        logger.info(f"Upload finished: {session.object_key} ({len(parts)} parts)")
        return UploadOutcome(status=UploadState.COMPLETED, object_key=session.object_key, parts=parts)

    def _release(self, session: RemoteSession) -> None:
        """Best-effort abort of a session that can no longer be completed."""
        try:
            self.backend.abort(session)
        except CollaboratorError as e:
            logger.error(f"Error aborting multipart upload {session.upload_id}: {e}")
        self.store.clear()
