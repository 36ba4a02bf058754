"""
Virtual fitting session: the controller that owns one fitting form.

A session holds the upload slots, the progress simulator and the state of the
current run, and drives a run through

    idle -> validating -> awaiting_image -> image_ready [-> awaiting_video -> video_ready]

Every failure ends the run with a status message; nothing is retried.
"""
import asyncio
import logging
from typing import Optional

from bogofit.core.config import settings
from bogofit.schemas.virtual_fitting import (
    FittingState,
    GenerationResult,
    ImageSuccess,
    MissingFilesError,
    ProgressState,
    SlotName,
    StatusTone,
    VideoSuccess,
)
from bogofit.services.preview_resolver import PreviewResolver
from bogofit.services.progress import ProgressSimulator
from bogofit.utils.fitting_workflow import (
    VideoInvoker,
    WorkflowInvoker,
    WorkflowRequest,
    make_connection_info,
)

logger = logging.getLogger(__name__)


class FittingSession:
    def __init__(
        self,
        slots: Optional[PreviewResolver] = None,
        progress: Optional[ProgressSimulator] = None,
        workflow: Optional[WorkflowInvoker] = None,
        video: Optional[VideoInvoker] = None,
        client_id: str = settings.FITTING_CLIENT_ID,
    ):
        self.progress = progress or ProgressSimulator()
        self.slots = slots or PreviewResolver()
        self.workflow = workflow or WorkflowInvoker(self.progress)
        self.video = video or VideoInvoker(self.progress)
        self.client_id = client_id

        self.pro_mode = False
        self.is_processing = False
        self.state = FittingState.IDLE
        self.status_message = ""
        self.status_tone = StatusTone.NONE
        self.result = GenerationResult()
        self.connection_info: Optional[str] = None
        self._run_task: Optional[asyncio.Task] = None

    @property
    def progress_state(self) -> ProgressState:
        return self.progress.state

    def _set_status(self, message: str, tone: StatusTone) -> None:
        self.status_message = message
        self.status_tone = tone
        self.progress.set_status(message)

    def _fail(self, message: str) -> GenerationResult:
        self.progress.cancel()
        self.state = FittingState.IDLE
        self.result = GenerationResult(error_message=message)
        self._set_status(message, StatusTone.ERROR)
        return self.result

    def build_request(self) -> WorkflowRequest:
        files = self.slots.files()
        self.connection_info = make_connection_info(self.client_id)
        return WorkflowRequest(
            human=files[SlotName.HUMAN],
            garment=files[SlotName.GARMENT],
            lower=files[SlotName.LOWER],
            background=files[SlotName.BACKGROUND],
            connection_info=self.connection_info,
            pro_mode=self.pro_mode,
        )

    async def run(self) -> GenerationResult:
        """
        Run one fitting: generate the image and, in pro mode, the video.

        Returns:
            The fresh GenerationResult of this run. Errors are reported in
            result.error_message, never raised.
        """
        if self.is_processing:
            logger.warning("[FittingSession.run] A run is already in progress, ignoring")
            return self.result

        self.state = FittingState.VALIDATING
        self.result = GenerationResult()
        request = self.build_request()
        missing = request.missing_slots()
        if missing:
            return self._fail(MissingFilesError(missing=missing).message)

        # Guard must be up before the first await
        self.is_processing = True
        task = asyncio.current_task()
        self._run_task = task
        try:
            return await self._run(request)
        except asyncio.CancelledError:
            logger.info(f"[FittingSession.run] Run {request.connection_info} cancelled")
            if self._run_task is task:
                self.state = FittingState.IDLE
            raise
        finally:
            # A run replaced after reset() must not touch its successor
            if self._run_task is task:
                self.progress.cancel()
                self.is_processing = False
                self._run_task = None

    async def _run(self, request: WorkflowRequest) -> GenerationResult:
        self.state = FittingState.AWAITING_IMAGE
        self.progress.set_percent(0)
        if request.has_background:
            self._set_status("Background image included, processing may take longer...", StatusTone.INFO)
        else:
            self._set_status("Communicating with the AI server...", StatusTone.INFO)

        outcome = await self.workflow.invoke(request)
        if not isinstance(outcome, ImageSuccess):
            logger.info(f"[FittingSession.run] Image generation failed: {outcome.kind}")
            return self._fail(outcome.message)

        self.result = GenerationResult(image_url=outcome.image_url)
        self.progress.set_percent(settings.IMAGE_DONE_PERCENT)
        self.state = FittingState.IMAGE_READY
        self._set_status(outcome.message, StatusTone.SUCCESS)

        if not request.pro_mode:
            self.progress.set_percent(100)
            return self.result

        self.state = FittingState.AWAITING_VIDEO
        self._set_status("Generating video...", StatusTone.INFO)
        video = await self.video.invoke(outcome.image_url, request.connection_info)

        if isinstance(video, VideoSuccess):
            self.result = self.result.model_copy(update={"video_url": video.video_url})
            self.progress.set_percent(100)
            self.state = FittingState.VIDEO_READY
            self._set_status(video.message, StatusTone.SUCCESS)
        else:
            # The image stays: a failed video never rolls back the image result
            self.progress.cancel()
            self.result = self.result.model_copy(update={"error_message": video.message})
            self.state = FittingState.IMAGE_READY
            self._set_status(video.message, StatusTone.ERROR)
        return self.result

    def reset(self) -> None:
        """Drop the current run and its result; uploaded slots are kept."""
        self.teardown()
        self._run_task = None
        self.is_processing = False
        self.state = FittingState.IDLE
        self.result = GenerationResult()
        self.status_message = ""
        self.status_tone = StatusTone.NONE
        self.progress.reset()

    def teardown(self) -> None:
        """Stop the ramp and cancel an in-flight run."""
        self.progress.cancel()
        if self._run_task is not None and not self._run_task.done():
            self._run_task.cancel()
