import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from bogofit.schemas.virtual_fitting import (
    BackgroundError,
    GenericParseError,
    HtmlError,
    ImageSuccess,
    MinimumBodyError,
    MissingFilesError,
    NetworkFailure,
    ServerError,
    SlotName,
    TimeoutFailure,
    UpstreamError,
    VideoFailure,
    VideoSuccess,
)
from bogofit.services.progress import ProgressSimulator
from bogofit.utils.fitting_workflow import (
    VideoInvoker,
    WorkflowInvoker,
    WorkflowRequest,
    classify_video_response,
    classify_workflow_response,
    make_connection_info,
)

CDN_URL = "https://cdn.klingai.com/bs2/upload-kling-api/7/result_1.png"


class TestClassifyWorkflowResponse:
    def test_json_success(self):
        outcome = classify_workflow_response(200, json.dumps({"image_url": "https://x.test/a.png"}), False)
        assert outcome == ImageSuccess(image_url="https://x.test/a.png")
        assert outcome.message == "Image generation complete!"

    @pytest.mark.parametrize("has_background,expected", [(True, BackgroundError), (False, ServerError)])
    def test_bare_server_fault(self, has_background, expected):
        outcome = classify_workflow_response(500, "Internal Server Error\n", has_background)
        assert isinstance(outcome, expected)

    def test_bare_fault_text_with_other_status_is_not_a_server_fault(self):
        outcome = classify_workflow_response(502, "Internal Server Error", False)
        assert isinstance(outcome, GenericParseError)

    def test_json_error_with_background(self):
        outcome = classify_workflow_response(500, json.dumps({"error": "compositing failed"}), True)
        assert isinstance(outcome, BackgroundError)

    def test_json_error_detail(self):
        outcome = classify_workflow_response(400, json.dumps({"error": "bad pose"}), False)
        assert outcome == UpstreamError(detail="bad pose")
        assert outcome.message == "Image generation failed: bad pose"

    def test_json_without_error_uses_status(self):
        outcome = classify_workflow_response(503, "{}", False)
        assert outcome == UpstreamError(detail="HTTP 503")

    def test_json_success_status_without_image_url(self):
        outcome = classify_workflow_response(200, json.dumps({"status": "ok"}), False)
        assert isinstance(outcome, UpstreamError)

    def test_json_fault_marker_means_minimum_body(self):
        outcome = classify_workflow_response(500, json.dumps({"error": "Internal Server Error"}), False)
        assert isinstance(outcome, MinimumBodyError)

    def test_recovers_cdn_url_from_malformed_body(self):
        text = 'result: {"image_url": "' + CDN_URL + '", truncated'
        outcome = classify_workflow_response(200, text, False)
        assert outcome == ImageSuccess(image_url=CDN_URL, recovered=True)

    def test_cdn_recovery_wins_over_html(self):
        text = f"<!DOCTYPE html><html><body><img src=\"{CDN_URL}\"></body></html>"
        outcome = classify_workflow_response(200, text, False)
        assert isinstance(outcome, ImageSuccess)
        assert outcome.recovered

    def test_cdn_recovery_can_be_disabled(self):
        outcome = classify_workflow_response(200, f"oops {CDN_URL}", False, cdn_pattern="")
        assert isinstance(outcome, GenericParseError)

    def test_html_page(self):
        outcome = classify_workflow_response(502, "<html><body>Bad gateway</body></html>", False)
        assert isinstance(outcome, HtmlError)

    def test_truncated_fault_means_minimum_body(self):
        outcome = classify_workflow_response(500, "Error: Internal S", False)
        assert isinstance(outcome, MinimumBodyError)
        assert outcome.message == "The person image must include at least the upper body."

    def test_generic_parse_error_snippet(self):
        text = "x" * 300
        outcome = classify_workflow_response(418, text, False)
        assert outcome == GenericParseError(status=418, snippet="x" * 100)
        assert outcome.message == f"Failed to parse server response (418): {'x' * 100}..."


class TestClassifyVideoResponse:
    def test_success(self):
        outcome = classify_video_response(200, json.dumps({"video_url": "https://x.test/v.mp4"}))
        assert outcome == VideoSuccess(video_url="https://x.test/v.mp4")
        assert outcome.message == "Video generation complete!"

    def test_error_field(self):
        outcome = classify_video_response(500, json.dumps({"error": "queue full"}))
        assert outcome.message == "Video generation failed: queue full"

    def test_missing_error_field(self):
        outcome = classify_video_response(500, "{}")
        assert outcome.message == "Video generation failed: unknown error"

    def test_unparseable_body(self):
        outcome = classify_video_response(502, "<html>gateway</html>")
        assert isinstance(outcome, VideoFailure)
        assert outcome.message == "Video generation server error: <html>gateway</html>..."


class TestWorkflowRequest:
    def test_missing_slots(self, person_image):
        request = WorkflowRequest(human=person_image, connection_info="c_1")
        assert request.missing_slots() == [SlotName.GARMENT]
        assert not request.has_background

    def test_connection_info_format(self):
        assert make_connection_info("abc", now=1700000000.5) == "abc_1700000000500"


class TestWorkflowInvoker:
    @pytest.fixture
    def progress(self):
        return ProgressSimulator(tick_ms=1)

    @pytest.mark.asyncio
    async def test_missing_files_makes_no_request(self, progress, person_image):
        post = AsyncMock()
        with patch("bogofit.utils.fitting_workflow._post_form", post):
            outcome = await WorkflowInvoker(progress).invoke(WorkflowRequest(human=person_image, connection_info="c"))

        assert outcome == MissingFilesError(missing=[SlotName.GARMENT])
        post.assert_not_called()
        assert progress.percent == 0

    @pytest.mark.asyncio
    async def test_success_cancels_ramp(self, progress, person_image, garment_image):
        post = AsyncMock(return_value=(200, json.dumps({"image_url": CDN_URL})))
        request = WorkflowRequest(human=person_image, garment=garment_image, connection_info="c")
        with patch("bogofit.utils.fitting_workflow._post_form", post):
            outcome = await WorkflowInvoker(progress, base_url="http://up.test/").invoke(request)

        assert outcome.image_url == CDN_URL
        assert post.await_args.args[0] == "http://up.test/api/virtual-fitting/run_workflow"
        assert progress.active_ramps == 0

    @pytest.mark.asyncio
    async def test_timeout(self, progress, person_image, garment_image):
        post = AsyncMock(side_effect=asyncio.TimeoutError())
        request = WorkflowRequest(human=person_image, garment=garment_image, connection_info="c")
        with patch("bogofit.utils.fitting_workflow._post_form", post):
            outcome = await WorkflowInvoker(progress).invoke(request)

        assert isinstance(outcome, TimeoutFailure)
        assert outcome.message == "The request timed out. Please try again."
        assert progress.active_ramps == 0

    @pytest.mark.asyncio
    async def test_network_error(self, progress, person_image, garment_image):
        post = AsyncMock(side_effect=ConnectionResetError("peer reset"))
        request = WorkflowRequest(human=person_image, garment=garment_image, connection_info="c")
        with patch("bogofit.utils.fitting_workflow._post_form", post):
            outcome = await WorkflowInvoker(progress).invoke(request)

        assert outcome == NetworkFailure(cause="peer reset")
        assert outcome.message == "Network error: peer reset"

    def test_background_gets_longer_timeout(self, person_image, garment_image, background_image):
        invoker = WorkflowInvoker(timeout=60, background_timeout=120)
        plain = WorkflowRequest(human=person_image, garment=garment_image, connection_info="c")
        with_bg = WorkflowRequest(
            human=person_image, garment=garment_image, background=background_image, connection_info="c"
        )
        assert invoker.timeout_for(plain) == 60
        assert invoker.timeout_for(with_bg) == 120


class TestAgainstLocalServer:
    """Round trips through a real HTTP server standing in for the workflow upstream."""

    @pytest.mark.asyncio
    async def test_multipart_payload(self, person_image, garment_image, background_image):
        received = {}

        async def run_workflow(request):
            form = await request.post()
            for key, value in form.items():
                if isinstance(value, web.FileField):
                    received[key] = (value.filename, value.file.read())
                else:
                    received[key] = value
            return web.json_response({"image_url": CDN_URL})

        app = web.Application()
        app.router.add_post("/api/virtual-fitting/run_workflow", run_workflow)
        server = TestServer(app)
        await server.start_server()
        try:
            request = WorkflowRequest(
                human=person_image,
                garment=garment_image,
                background=background_image,
                connection_info="client_1",
                pro_mode=True,
            )
            invoker = WorkflowInvoker(ProgressSimulator(tick_ms=1), base_url=str(server.make_url("/")))
            outcome = await invoker.invoke(request)
        finally:
            await server.close()

        assert isinstance(outcome, ImageSuccess)
        assert received["connection_info"] == "client_1"
        assert received["is_pro"] == "true"
        assert received["human_file"] == ("person.png", person_image.data)
        assert received["background_file"][0] == "bg.png"
        assert "lower_file" not in received

    @pytest.mark.asyncio
    async def test_slow_upstream_times_out(self, person_image, garment_image):
        async def run_workflow(request):
            await asyncio.sleep(2)
            return web.json_response({"image_url": CDN_URL})

        app = web.Application()
        app.router.add_post("/api/virtual-fitting/run_workflow", run_workflow)
        server = TestServer(app)
        await server.start_server()
        try:
            progress = ProgressSimulator(tick_ms=1)
            invoker = WorkflowInvoker(progress, base_url=str(server.make_url("/")), timeout=0.2)
            request = WorkflowRequest(human=person_image, garment=garment_image, connection_info="c")
            outcome = await invoker.invoke(request)
        finally:
            await server.close()

        assert isinstance(outcome, TimeoutFailure)
        assert progress.active_ramps == 0

    @pytest.mark.asyncio
    async def test_video_call(self):
        received = {}

        async def run_i2v(request):
            form = await request.post()
            received.update(form)
            return web.json_response({"video_url": "https://x.test/v.mp4"})

        app = web.Application()
        app.router.add_post("/api/virtual-fitting/run_i2v", run_i2v)
        server = TestServer(app)
        await server.start_server()
        try:
            progress = ProgressSimulator(tick_ms=1)
            outcome = await VideoInvoker(progress, base_url=str(server.make_url("/"))).invoke(CDN_URL, "client_1")
        finally:
            await server.close()

        assert outcome == VideoSuccess(video_url="https://x.test/v.mp4")
        assert received == {"image_url": CDN_URL, "connection_info": "client_1"}
        assert progress.active_ramps == 0
