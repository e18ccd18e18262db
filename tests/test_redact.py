from __future__ import annotations

from obsbridge._redact import redact_for_log
from obsbridge.models.command import CommandRequest


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "requestType": "SetStreamServiceSettings",
        "requestData": {
            "streamServiceType": "rtmp_custom",
            "streamServiceSettings": {"server": "rtmp://live", "key": "live_abc123", "streamKey": "sk"},
        },
        "password": "pw",
        "Authorization": "Bearer t0ken",
    }

    redacted = redact_for_log(payload)
    settings = redacted["requestData"]["streamServiceSettings"]
    assert settings["key"] == "<redacted>"
    assert settings["streamKey"] == "<redacted>"
    assert settings["server"] == "rtmp://live"
    assert redacted["password"] == "<redacted>"
    assert redacted["Authorization"] == "<redacted>"
    assert redacted["requestType"] == "SetStreamServiceSettings"
    # The input is not modified.
    assert payload["password"] == "pw"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"imageData": long_value}, max_string=10)
    assert redacted["imageData"].startswith("x" * 10)
    assert "<truncated>" in redacted["imageData"]


def test_redact_for_log_handles_sequences_and_bytes() -> None:
    redacted = redact_for_log([{"token": "a"}, b"\x00\x01", 3, None])
    assert redacted == [{"token": "<redacted>"}, "<bytes:2b>", 3, None]


def test_redact_for_log_summarizes_screenshot_data_uri() -> None:
    image = "data:image/jpeg;base64," + "A" * 4000
    redacted = redact_for_log({"imageData": image, "imageFormat": "jpeg"})
    assert redacted == {"imageData": "<image/jpeg data-uri:4000b>", "imageFormat": "jpeg"}


def test_redact_for_log_matches_key_variants() -> None:
    redacted = redact_for_log({"stream_key": "a", "X-Api-Token": "b", "obsPassword": "c", "sceneName": "Main"})
    assert redacted == {
        "stream_key": "<redacted>",
        "X-Api-Token": "<redacted>",
        "obsPassword": "<redacted>",
        "sceneName": "Main",
    }


def test_redact_for_log_dumps_models_with_wire_keys() -> None:
    command = CommandRequest(request_type="SetStreamServiceSettings", request_data={"streamKey": "live_x"})
    assert redact_for_log(command) == {
        "requestType": "SetStreamServiceSettings",
        "requestData": {"streamKey": "<redacted>"},
    }
