"""Tests for Pydantic model parsing with BridgeBaseModel."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from obsbridge.models.command import CommandRequest, ZoomRequest
from obsbridge.models.events import EventsPage, PolledEvent
from obsbridge.models.geometry import CropMargins

# ------------------------------------------------------------------
# CommandRequest
# ------------------------------------------------------------------


class TestCommandRequest:
    def test_camel_case_payload(self) -> None:
        command = CommandRequest.model_validate(
            {"requestType": "SetCurrentProgramScene", "requestData": {"sceneName": "Main"}}
        )
        assert command.request_type == "SetCurrentProgramScene"
        assert command.request_data == {"sceneName": "Main"}

    def test_missing_or_null_data_is_empty(self) -> None:
        assert CommandRequest.model_validate({"requestType": "GetVersion"}).request_data == {}
        assert CommandRequest.model_validate({"requestType": "GetVersion", "requestData": None}).request_data == {}

    @pytest.mark.parametrize("body", [{}, {"requestType": ""}, {"requestType": "   "}, {"requestType": 5}])
    def test_request_type_required(self, body: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            CommandRequest.model_validate(body)

    def test_to_wire_uses_camel_case(self) -> None:
        command = CommandRequest(request_type="StartRecord")
        assert command.to_wire() == {"requestType": "StartRecord", "requestData": {}}


# ------------------------------------------------------------------
# ZoomRequest
# ------------------------------------------------------------------


class TestZoomRequest:
    def test_defaults_zoom_to_two(self) -> None:
        zoom = ZoomRequest.model_validate({"scene": "Cam", "source": "Webcam", "x": 0.25, "y": 1})
        assert zoom.zoom == 2.0
        assert zoom.y == 1.0

    @pytest.mark.parametrize(
        "body",
        [
            {"source": "Webcam", "x": 0.5, "y": 0.5},
            {"scene": "Cam", "source": "", "x": 0.5, "y": 0.5},
            {"scene": "Cam", "source": "Webcam", "x": "0.5", "y": 0.5},
            {"scene": "Cam", "source": "Webcam", "x": 1.5, "y": 0.5},
            {"scene": "Cam", "source": "Webcam", "x": 0.5, "y": -0.1},
            {"scene": "Cam", "source": "Webcam", "x": 0.5, "y": 0.5, "zoom": 0.5},
            {"scene": "Cam", "source": "Webcam", "x": True, "y": 0.5},
        ],
    )
    def test_invalid_bodies_rejected(self, body: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            ZoomRequest.model_validate(body)


# ------------------------------------------------------------------
# Events
# ------------------------------------------------------------------


class TestEvents:
    def test_event_keeps_raw_object(self) -> None:
        data = {"id": 17, "method": "tip", "object": {"tip": {"tokens": 25}}, "extra": [1, 2]}
        event = PolledEvent.model_validate(data)
        assert event.id == 17
        assert event.kind == "tip"
        assert event.raw == data

    def test_numeric_string_id_is_coerced(self) -> None:
        assert PolledEvent.model_validate({"id": "42"}).id == 42

    @pytest.mark.parametrize("event_id", [None, True, "abc", 1.5])
    def test_non_integer_id_rejected(self, event_id: object) -> None:
        with pytest.raises(ValidationError):
            PolledEvent.model_validate({"id": event_id})

    def test_kind_falls_back_to_type_then_unknown(self) -> None:
        assert PolledEvent.model_validate({"id": 1, "type": "follow"}).kind == "follow"
        assert PolledEvent.model_validate({"id": 1}).kind == "unknown"

    def test_page_normalizes_empty_values(self) -> None:
        page = EventsPage.model_validate({"events": None, "nextUrl": ""})
        assert page.events == []
        assert page.next_url is None

    def test_page_with_next_url(self) -> None:
        page = EventsPage.model_validate({"events": [{"id": 3}, {"id": 1}], "nextUrl": "https://e/next?i=3"})
        assert [event.id for event in page.events] == [3, 1]
        assert page.next_url == "https://e/next?i=3"

    def test_page_rejects_invalid_event(self) -> None:
        with pytest.raises(ValidationError):
            EventsPage.model_validate({"events": [{"method": "tip"}]})


def test_crop_margins_transform_fragment() -> None:
    margins = CropMargins(crop_left=1, crop_right=2, crop_top=3, crop_bottom=4)
    assert margins.to_transform() == {"cropLeft": 1, "cropRight": 2, "cropTop": 3, "cropBottom": 4}
