"""Capture-to-resolution pipeline for cigar band photos.

Flow per scan operation:
    Idle → Capturing → Compressing → Analyzing → Matching
         → Resolved | FallbackSearch | Failed → Idle

The transition rules live in ``transition`` (a pure function of state and
event returning the next state plus the outcomes to surface). ``ScanPipeline``
drives one asyncio task per operation and feeds events into it.

Operations are guarded by a monotonic sequence number. Starting a scan
supersedes the previous one; cancelling also aborts its task. Every event an
operation produces after capture is dropped silently once that operation is
stale, and outcomes are re-checked at the moment they are dispatched.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple, Union

from .candidates import build_text_candidates
from .catalog import CatalogPermissionError, CigarRecord
from .preprocessing import ImageCompressor, ImageQuality
from .resolver import CatalogResolver
from .vision import VisionClient, VisionNetworkError, VisionResult, VisionTimeoutError

from ..config import get_settings

logger = logging.getLogger(__name__)


class ScanState(str, Enum):
    """States of the capture pipeline."""
    IDLE = "idle"
    CAPTURING = "capturing"
    COMPRESSING = "compressing"
    ANALYZING = "analyzing"
    MATCHING = "matching"
    RESOLVED = "resolved"
    FALLBACK_SEARCH = "fallback_search"
    FAILED = "failed"


class EventType(str, Enum):
    """Inputs to the state machine."""
    START = "start"
    PHOTO_CAPTURED = "photo_captured"
    IMAGE_COMPRESSED = "image_compressed"
    FEATURES_EXTRACTED = "features_extracted"
    CIGAR_RESOLVED = "cigar_resolved"
    MATCH_MISSED = "match_missed"
    FAILED = "failed"
    CANCEL = "cancel"
    FINISH = "finish"


class FailureCategory(str, Enum):
    """User-facing failure categories."""
    TIMEOUT = "timeout"
    NETWORK = "network"
    PERMISSION = "permission"
    NO_SIGNAL = "no_signal"
    GENERIC = "generic"


class InvalidTransitionError(Exception):
    """An event arrived in a state that does not accept it."""


@dataclass(frozen=True)
class ScanEvent:
    """An event with its payload (only the fields its type needs are set)."""
    type: EventType
    record: Optional[CigarRecord] = None
    prefill: Optional[str] = None
    ocr_clues: Optional[str] = None
    category: Optional[FailureCategory] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class Resolved:
    """A catalog record was identified."""
    record: CigarRecord


@dataclass(frozen=True)
class Fallback:
    """Open manual search pre-filled with the best guess."""
    prefill: str
    ocr_clues: Optional[str] = None


@dataclass(frozen=True)
class Failed:
    """The scan produced no record; ``prefill`` is set when a search is still offered."""
    category: FailureCategory
    message: str
    prefill: Optional[str] = None


ScanOutcome = Union[Resolved, Fallback, Failed]

ACTIVE_STATES = frozenset({
    ScanState.CAPTURING,
    ScanState.COMPRESSING,
    ScanState.ANALYZING,
    ScanState.MATCHING,
})

TERMINAL_STATES = frozenset({
    ScanState.RESOLVED,
    ScanState.FALLBACK_SEARCH,
    ScanState.FAILED,
})

_FORWARD = {
    (ScanState.CAPTURING, EventType.PHOTO_CAPTURED): ScanState.COMPRESSING,
    (ScanState.COMPRESSING, EventType.IMAGE_COMPRESSED): ScanState.ANALYZING,
    (ScanState.ANALYZING, EventType.FEATURES_EXTRACTED): ScanState.MATCHING,
    (ScanState.MATCHING, EventType.CIGAR_RESOLVED): ScanState.RESOLVED,
    (ScanState.MATCHING, EventType.MATCH_MISSED): ScanState.FALLBACK_SEARCH,
}

# User-facing messages
MESSAGES = {
    FailureCategory.TIMEOUT: "Identifying the band took too long. Try again or search manually.",
    FailureCategory.NETWORK: "Couldn't reach the identification service. Check your connection or search manually.",
    FailureCategory.PERMISSION: "Cannot read the cigar catalog. Try searching manually.",
    FailureCategory.NO_SIGNAL: "No logo or text detected on the band.",
    FailureCategory.GENERIC: "Band identification failed. Try again or search manually.",
}


def transition(state: ScanState, event: ScanEvent) -> Tuple[ScanState, Tuple[ScanOutcome, ...]]:
    """
    Compute the next state and the outcomes to surface.

    START is accepted from any state (a new operation supersedes the
    current one) and CANCEL always returns to IDLE without outcomes.

    Raises:
        InvalidTransitionError: If the state does not accept the event
    """
    if event.type == EventType.START:
        return ScanState.CAPTURING, ()

    if event.type == EventType.CANCEL:
        return ScanState.IDLE, ()

    if event.type == EventType.FINISH:
        if state in TERMINAL_STATES:
            return ScanState.IDLE, ()
        raise InvalidTransitionError(f"Cannot finish from {state.value}")

    if event.type == EventType.FAILED:
        if state not in ACTIVE_STATES:
            raise InvalidTransitionError(f"Cannot fail from {state.value}")
        category = event.category or FailureCategory.GENERIC
        message = event.message or MESSAGES[category]
        return ScanState.FAILED, (Failed(category, message, event.prefill),)

    next_state = _FORWARD.get((state, event.type))
    if next_state is None:
        raise InvalidTransitionError(f"{event.type.value} not accepted in {state.value}")

    if event.type == EventType.CIGAR_RESOLVED:
        return next_state, (Resolved(event.record),)
    if event.type == EventType.MATCH_MISSED:
        return next_state, (Fallback(event.prefill or "", event.ocr_clues),)
    return next_state, ()


class Camera:
    """Source of band photos."""

    async def take_picture(self) -> bytes:
        raise NotImplementedError


class StaticCamera(Camera):
    """Camera that returns an already-captured photo (uploads)."""

    def __init__(self, photo: bytes):
        self.photo = photo

    async def take_picture(self) -> bytes:
        return self.photo


class ScanListener:
    """Receives pipeline outcomes. Override the callbacks you need."""

    def on_resolved(self, record: CigarRecord) -> None:
        pass

    def on_fallback(self, prefill: str, ocr_clues: Optional[str]) -> None:
        pass

    def on_failed(self, category: FailureCategory, message: str, prefill: Optional[str] = None) -> None:
        pass


@dataclass
class ScanOperation:
    """One capture-to-resolution attempt."""
    sequence: int
    cancelled: bool = False
    task: Optional["asyncio.Task"] = None
    outcome: Optional[ScanOutcome] = None

    def abort(self) -> None:
        """Interrupt whatever the operation is awaiting."""
        if self.task is not None and not self.task.done():
            self.task.cancel()


class OperationTracker:
    """Owns the sequence counter and the current operation."""

    def __init__(self):
        self._sequence = 0
        self._current: Optional[ScanOperation] = None

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def current(self) -> Optional[ScanOperation]:
        return self._current

    def begin(self) -> ScanOperation:
        """Allocate a new operation; all earlier ones become stale."""
        self._sequence += 1
        self._current = ScanOperation(sequence=self._sequence)
        return self._current

    def cancel(self) -> Optional[ScanOperation]:
        """Cancel the current operation (if any) and abort its task."""
        op = self._current
        self._sequence += 1
        self._current = None
        if op is not None:
            op.cancelled = True
            op.abort()
        return op

    def finish(self, op: ScanOperation) -> None:
        if self._current is op:
            self._current = None

    def is_stale(self, op: ScanOperation) -> bool:
        return op.cancelled or op.sequence != self._sequence


class ScanPipeline:
    """Drives scan operations through the state machine."""

    def __init__(
        self,
        resolver: CatalogResolver,
        vision: VisionClient,
        compressor: Optional[ImageCompressor] = None,
        listener: Optional[ScanListener] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = get_settings()
        self.resolver = resolver
        self.vision = vision
        self.compressor = compressor or ImageCompressor()
        self.listener = listener or ScanListener()
        self.tracker = OperationTracker()
        self.state = ScanState.IDLE
        self._clock = clock
        self._barcode_blocked_until = 0.0

    @property
    def in_progress(self) -> bool:
        return self.tracker.current is not None

    def start_scan(self, camera: Camera) -> ScanOperation:
        """
        Begin a new operation, superseding any in flight.

        Must be called from a running event loop.
        """
        op = self.tracker.begin()
        self.state, _ = transition(self.state, ScanEvent(EventType.START))
        logger.info(f"Scan #{op.sequence} started")
        op.task = asyncio.get_running_loop().create_task(self._run(op, camera))
        return op

    def cancel_scan(self) -> None:
        """Cancel the current operation. Safe to call repeatedly."""
        op = self.tracker.cancel()
        self.state, _ = transition(self.state, ScanEvent(EventType.CANCEL))
        if op is not None:
            self._barcode_blocked_until = self._clock() + self.settings.barcode_cooldown_seconds
            logger.info(f"Scan #{op.sequence} cancelled")

    async def scan(self, camera: Camera) -> Optional[ScanOutcome]:
        """Start an operation and wait for it. Returns None if it never surfaced an outcome."""
        op = self.start_scan(camera)
        try:
            await op.task
        except asyncio.CancelledError:
            if not op.cancelled:
                raise
        return op.outcome

    def handle_barcode(self, value: str) -> bool:
        """
        Route a decoded barcode straight to manual search.

        Ignored while a scan is in progress and during the cooldown that
        follows a cancellation or a handled barcode.

        Returns:
            True if the barcode was routed
        """
        value = (value or "").strip()
        if not value:
            return False
        if self.in_progress:
            logger.debug(f"Barcode {value!r} ignored: scan in progress")
            return False
        now = self._clock()
        if now < self._barcode_blocked_until:
            logger.debug(f"Barcode {value!r} ignored: cooldown")
            return False

        self._barcode_blocked_until = now + self.settings.barcode_cooldown_seconds
        logger.info(f"Barcode {value!r} routed to manual search")
        self._notify(Fallback(prefill=value))
        return True

    async def _run(self, op: ScanOperation, camera: Camera) -> None:
        try:
            photo = await camera.take_picture()
            if not self._advance(op, ScanEvent(EventType.PHOTO_CAPTURED)):
                return

            compressed = await asyncio.to_thread(self.compressor.compress, photo)
            if not self._advance(op, ScanEvent(EventType.IMAGE_COMPRESSED)):
                return

            result = await asyncio.wait_for(
                self.vision.annotate(compressed.base64),
                timeout=self.settings.vision_timeout_seconds
            )
            if not self._advance(op, ScanEvent(EventType.FEATURES_EXTRACTED)):
                return

            await self._match(op, result, compressed.quality)

        except asyncio.CancelledError:
            logger.info(f"Scan #{op.sequence} aborted")
            raise
        except (asyncio.TimeoutError, VisionTimeoutError) as e:
            logger.warning(f"Scan #{op.sequence} timed out: {e}")
            self._fail(op, FailureCategory.TIMEOUT)
        except VisionNetworkError as e:
            logger.warning(f"Scan #{op.sequence} network failure: {e}")
            self._fail(op, FailureCategory.NETWORK)
        except Exception as e:
            logger.error(f"Scan #{op.sequence} failed: {e}", exc_info=True)
            self._fail(op, FailureCategory.GENERIC)
        finally:
            self.tracker.finish(op)

    async def _match(self, op: ScanOperation, result: VisionResult, quality: ImageQuality) -> None:
        """Resolve the strongest signal; logo first, then OCR text."""
        if not result.has_signal:
            self._no_signal(op, quality)
            return

        ocr_clues = result.full_text or None
        best_guess: Optional[str] = None

        try:
            if result.logos:
                best_guess = result.best_logo.description
                logger.info(f"Scan #{op.sequence}: matching logo '{best_guess}'")
                record = await self.resolver.resolve_to_cigar(best_guess)
                if self.tracker.is_stale(op):
                    return
                if record is not None:
                    self._advance(op, ScanEvent(EventType.CIGAR_RESOLVED, record=record))
                else:
                    self._advance(op, ScanEvent(EventType.MATCH_MISSED, prefill=best_guess, ocr_clues=ocr_clues))
                return

            candidates = build_text_candidates(result.full_text)
            if candidates:
                best_guess = candidates[0]
                logger.info(f"Scan #{op.sequence}: matching {len(candidates)} text candidates")
                for candidate in candidates:
                    record = await self.resolver.resolve_to_cigar(candidate)
                    if self.tracker.is_stale(op):
                        return
                    if record is not None:
                        self._advance(op, ScanEvent(EventType.CIGAR_RESOLVED, record=record))
                        return
                self._advance(op, ScanEvent(EventType.MATCH_MISSED, prefill=best_guess, ocr_clues=ocr_clues))
                return

        except CatalogPermissionError as e:
            logger.error(f"Scan #{op.sequence}: catalog read denied: {e}")
            self._fail(op, FailureCategory.PERMISSION, prefill=best_guess)
            return

        # Text was detected but nothing in it survives normalization
        self._no_signal(op, quality)

    def _no_signal(self, op: ScanOperation, quality: ImageQuality) -> None:
        message = MESSAGES[FailureCategory.NO_SIGNAL]
        if quality.recommendation:
            message = f"{message} {quality.recommendation}"
        self._fail(op, FailureCategory.NO_SIGNAL, message=message)

    def _fail(
        self,
        op: ScanOperation,
        category: FailureCategory,
        message: Optional[str] = None,
        prefill: Optional[str] = None
    ) -> None:
        self._advance(op, ScanEvent(EventType.FAILED, category=category, message=message, prefill=prefill))

    def _advance(self, op: ScanOperation, event: ScanEvent) -> bool:
        """Apply an event for ``op``. Returns False (and does nothing) if ``op`` is stale."""
        if self.tracker.is_stale(op):
            logger.debug(f"Scan #{op.sequence}: dropped stale {event.type.value}")
            return False

        self.state, outcomes = transition(self.state, event)
        logger.debug(f"Scan #{op.sequence}: {event.type.value} -> {self.state.value}")
        for outcome in outcomes:
            self._dispatch(op, outcome)

        if self.state in TERMINAL_STATES:
            self.state, _ = transition(self.state, ScanEvent(EventType.FINISH))
        return True

    def _dispatch(self, op: ScanOperation, outcome: ScanOutcome) -> None:
        # Re-validate at the moment of delivery
        if self.tracker.is_stale(op):
            logger.debug(f"Scan #{op.sequence}: suppressed {type(outcome).__name__}")
            return
        op.outcome = outcome
        logger.info(f"Scan #{op.sequence} outcome: {type(outcome).__name__}")
        self._notify(outcome)

    def _notify(self, outcome: ScanOutcome) -> None:
        try:
            if isinstance(outcome, Resolved):
                self.listener.on_resolved(outcome.record)
            elif isinstance(outcome, Fallback):
                self.listener.on_fallback(outcome.prefill, outcome.ocr_clues)
            else:
                self.listener.on_failed(outcome.category, outcome.message, outcome.prefill)
        except Exception as e:
            logger.error(f"Scan listener failed: {e}", exc_info=True)
